"""
Messages from the click-to-play overlays and the blocked-redirect page.
"""

from __future__ import annotations

from typing import Any

from shieldcore.router import Origin
from shieldcore.router import Sender
from shieldcore.router import Unhandled
from shieldcore.router import handler
from shieldcore.utils import asyncio_utils


class ClickToPlay:
    def __init__(self, master) -> None:
        self.master = master

    @handler("processC2P", Origin.CLICK_TO_PLAY)
    def process_c2p(self, message: dict[str, Any], sender: Sender) -> None:
        c2p = self.master.services.click_to_play
        action = message.get("action")
        if action == "always":
            # the overlay does not offer "always" on restricted sites
            host = self.master.services.tab_info.get_tab_info(sender.tab_id, "host")
            for app_id in message["app_ids"]:
                c2p.allow_always(app_id, host)
        elif action == "once":
            c2p.allow_once(message["app_ids"], sender.tab_id)
        else:
            raise Unhandled(f"Unknown click-to-play action: {action!r}")


class BlockedRedirect:
    def __init__(self, master) -> None:
        self.master = master

    @handler("getBlockedRedirectData", Origin.BLOCKED_REDIRECT)
    def get_blocked_redirect_data(self, message: Any, sender: Sender) -> dict[str, Any]:
        return self.master.session.blocked_redirect_data

    @handler("allow_always_page_c2p_tracker", Origin.BLOCKED_REDIRECT)
    def allow_always(self, message: dict[str, Any], sender: Sender) -> None:
        host = self.master.services.tab_info.get_tab_info(sender.tab_id, "host")
        self.master.services.click_to_play.allow_always(message["app_id"], host)
        self.navigate(sender.tab_id, message["url"])

    @handler("allow_once_page_c2p_tracker", Origin.BLOCKED_REDIRECT)
    def allow_once(self, message: dict[str, Any], sender: Sender) -> None:
        self.master.session.let_redirects_through = True
        self.navigate(sender.tab_id, message["url"])

    def navigate(self, tab_id: int | None, url: str) -> None:
        asyncio_utils.spawn(
            self.master.services.tabs.update_tab(tab_id, url),
            name="follow redirect",
            tab_id=tab_id,
        )
