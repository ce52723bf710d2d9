"""
Messages from content scripts injected into our own web pages and from the
in-page alert box.
"""

from __future__ import annotations

import logging
from typing import Any

from shieldcore.router import Origin
from shieldcore.router import Sender
from shieldcore.router import handler
from shieldcore.utils import asyncio_utils

logger = logging.getLogger(__name__)


class PlatformPages:
    def __init__(self, master) -> None:
        self.master = master

    @handler("platformPageLoaded", Origin.PLATFORM_PAGES)
    def platform_page_loaded(self, message: Any, sender: Sender) -> None:
        # load the bearer token from the auth cookie if there is one
        asyncio_utils.spawn(
            self.master.services.accounts.set_login_info_from_auth_cookie(
                sender.tab_url
            ),
            name="login from auth cookie",
            tab_id=sender.tab_id,
        )


class GhosteryDotCom:
    def __init__(self, master) -> None:
        self.master = master

    @handler("appsPageLoaded", Origin.GHOSTERY_DOT_COM)
    def apps_page_loaded(self, message: dict[str, Any], sender: Sender) -> None:
        asyncio_utils.spawn(
            self.send_apps_page_data(message["id"], sender.tab_id),
            name="appsPageData",
            tab_id=sender.tab_id,
        )

    async def send_apps_page_data(self, app_id: int | str, tab_id: int | None) -> None:
        if not tab_id:
            tab = await self.master.services.tabs.get_active_tab()
            if not tab:
                return
            tab_id = tab["id"]
        blocked = self.master.options.selected_app_ids.get(str(app_id)) == 1
        self.master.services.messenger.send_message(
            tab_id, "appsPageData", {"blocked": blocked}
        )

    @handler("panelSelectedAppsUpdate", Origin.GHOSTERY_DOT_COM)
    def panel_selected_apps_update(self, message: dict[str, Any], sender: Sender) -> None:
        """Block or unblock a tracker from the apps pages of the website."""
        selected = dict(self.master.options.selected_app_ids)
        app_id = str(message["app_id"])
        if message.get("app_selected"):
            selected[app_id] = 1
        else:
            selected.pop(app_id, None)
        self.master.options.selected_app_ids = selected


class PagePerformance:
    def __init__(self, master) -> None:
        self.master = master

    @handler("recordPageInfo", Origin.PAGE_PERFORMANCE)
    def record_page_info(self, message: dict[str, Any], sender: Sender) -> None:
        self.master.services.tab_info.set_tab_info(
            sender.tab_id, "pageTiming", message.get("performanceAPI")
        )


class Purplebox:
    def __init__(self, master) -> None:
        self.master = master

    @handler("updateAlertConf", Origin.PURPLEBOX)
    def update_alert_conf(self, message: dict[str, Any], sender: Sender) -> None:
        opts = self.master.options
        opts.update(
            alert_expanded=message["alert_expanded"],
            alert_bubble_pos=message["alert_bubble_pos"],
            alert_bubble_timeout=message["alert_bubble_timeout"],
        )
        asyncio_utils.spawn(
            self.master.services.accounts.push_user_settings(
                {"conf": opts.user_settings()}
            ),
            name="push user settings",
        )
