"""
Universal messages: sent by the panel, the setup pages and the settings pages,
which do not identify themselves with an origin.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

from shieldcore import exceptions
from shieldcore import module
from shieldcore import version
from shieldcore.handlers.notifications import export_settings
from shieldcore.router import Sender
from shieldcore.router import handler
from shieldcore.utils import asyncio_utils

logger = logging.getLogger(__name__)

SETUP_DONE_URL = (
    "https://www.ghostery.com/blog/product-releases/browse-smarter-with-ghostery-8/"
)
ANDROID_PANEL_URL = "app/templates/panel_android.html"

BLOCK_ALL = "UPDATE_BLOCK_ALL"
BLOCK_NONE = "UPDATE_BLOCK_NONE"
BLOCK_ADS = "UPDATE_BLOCK_ADS"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _is_web_tab(tab: dict[str, Any] | None) -> bool:
    return bool(tab and tab.get("id") and (tab.get("url") or "").startswith("http"))


class Universal:
    def __init__(self, master) -> None:
        self.master = master

    @property
    def services(self):
        return self.master.services

    # settings toggles

    @handler("disableShowAlert")
    def disable_show_alert(self, message: Any, sender: Sender) -> None:
        self.master.options.show_alert = False

    @handler("updateDataCollection")
    def update_data_collection(self, message: Any, sender: Sender) -> None:
        opts = self.master.options
        info = self.master.browser
        if not info.bundled and not info.is_legacy:
            opts.enable_human_web = bool(message)
        opts.enable_metrics = bool(message)

    @handler("updateDisplayMode")
    def update_display_mode(self, message: bool, sender: Sender) -> None:
        self.master.options.is_expert = message

    @handler("updateAntiTrack")
    def update_anti_track(self, message: bool, sender: Sender) -> None:
        self.master.options.enable_anti_tracking = message

    @handler("updateSmartBlock")
    def update_smart_block(self, message: bool, sender: Sender) -> None:
        self.master.options.enable_smart_block = message

    @handler("updateAdBlock")
    def update_ad_block(self, message: bool, sender: Sender) -> None:
        self.master.options.enable_ad_block = message

    @handler("updateBlocking")
    def update_blocking(self, message: str, sender: Sender) -> None:
        apps = self.services.tracker_db.apps
        if message == BLOCK_ALL:
            selected = {app_id: 1 for app_id in apps}
        elif message == BLOCK_NONE:
            selected = {}
        elif message == BLOCK_ADS:
            selected = {
                app_id: 1
                for app_id, app in apps.items()
                if app.get("cat") == "advertising"
            }
        else:
            return
        self.master.options.selected_app_ids = selected

    @handler("setupStep")
    def setup_step(self, message: dict[str, Any], sender: Sender) -> None:
        if not self.master.session.just_installed:
            return
        opts = self.master.options
        if message.get("final"):
            logger.debug("Setup complete")
        elif message.get("setup_block") is not None:
            opts.setup_block = message["setup_block"]
        elif message.get("setup_path") is not None:
            opts.setup_path = message["setup_path"]
        elif message.get("setup_step") is not None:
            if message["setup_step"] > opts.setup_step:
                opts.setup_step = message["setup_step"]

    @handler("skipSetup")
    def skip_setup(self, message: Any, sender: Sender) -> None:
        asyncio_utils.spawn(self.close_setup_tab(sender.tab_id), name="skip setup")

    @handler("closeSetup")
    def close_setup(self, message: Any, sender: Sender) -> None:
        asyncio_utils.spawn(self.close_setup_tab(sender.tab_id), name="close setup")

    async def close_setup_tab(self, tab_id: int | None) -> None:
        if tab_id is not None:
            await self.services.tabs.remove_tabs(tab_id)
        await self.services.tabs.open_new_tab(SETUP_DONE_URL, True)

    # panel

    @handler("getPanelData")
    async def get_panel_data(self, message: dict[str, Any], sender: Sender) -> dict[str, Any]:
        tabs = self.services.tabs
        if message.get("tabId"):
            tab = await tabs.get_tab(int(message["tabId"]))
        else:
            tab = await tabs.get_active_tab()
        data = self.services.panel_data.get(message.get("view"), tab)
        asyncio_utils.spawn(
            self.services.accounts.pull_user_settings(), name="pull user settings"
        )
        return data

    @handler("setPanelData")
    def set_panel_data(self, message: dict[str, Any], sender: Sender) -> None:
        self.services.panel_data.set(message)

    @handler("getModuleData")
    async def get_module_data(self, message: Any, sender: Sender) -> dict[str, Any]:
        """Blocking statistics of the anti-tracking and ad-block modules for the active tab."""
        modules: dict[str, Any] = {"adblock": {}, "antitracking": {}}
        tab = await self.services.tabs.get_active_tab()
        if not tab:
            return modules
        opts = self.master.options
        host = self.master.host
        if opts.enable_anti_tracking:
            try:
                modules["antitracking"] = await _maybe_await(
                    host.modules[module.ANTITRACKING].action(
                        "aggregatedBlockingStats", tab["id"]
                    )
                )
            except Exception as e:
                logger.debug(f"No anti-tracking stats for tab {tab['id']}: {e}")
                return modules
        if opts.enable_ad_block:
            modules["adblock"] = await _maybe_await(
                host.modules[module.ADBLOCKER].action("getAdBlockInfoForTab", tab["id"])
            )
        return modules

    @handler("getSiteData")
    async def get_site_data(self, message: Any, sender: Sender) -> dict[str, Any]:
        tab = await self.services.tabs.get_active_tab()
        if not tab:
            raise exceptions.ShieldException("Tab not found. Cannot gather page data")
        info = self.master.browser
        return {
            "url": tab.get("url", ""),
            "extensionVersion": version.VERSION,
            "browserDisplayName": info.display_name,
            "browserVersion": info.version,
            "categories": self.services.tracker_db.categories(tab["id"]),
            "os": info.os,
            "language": self.master.options.language,
            "dbVersion": self.services.tracker_db.version,
        }

    @handler("getTrackerDescription")
    async def get_tracker_description(self, message: dict[str, Any], sender: Sender) -> str:
        try:
            result = await self.master.fetch_json(message["url"])
        except exceptions.FetchError as e:
            logger.debug(f"Could not fetch tracker description: {e}")
            return ""
        if not result:
            return ""
        return (
            result.get("company_description")
            or result.get("company_in_their_own_words")
            or ""
        )

    # accounts

    @handler("pullUserSettings")
    async def pull_user_settings(self, message: Any, sender: Sender) -> dict[str, Any] | None:
        try:
            return await self.services.accounts.pull_user_settings()
        except Exception as e:
            logger.info(f"Could not pull user settings: {e}")
            return None

    @handler("getLoginInfo")
    async def get_login_info(self, message: Any, sender: Sender) -> dict[str, Any] | None:
        try:
            result = await self.services.accounts.get_login_info()
        except Exception as e:
            logger.info(f"Could not get login info: {e}")
            return None
        self.services.messenger.send_message_to_panel("onLoginInfoUpdated", result)
        return result

    @handler("setLoginInfo")
    async def set_login_info(self, message: dict[str, Any], sender: Sender) -> dict[str, Any] | None:
        """An empty message logs the user out."""
        try:
            return await self.services.accounts.set_login_info(message or {})
        except Exception as e:
            logger.info(f"Could not set login info: {e}")
            return None

    @handler("sendVerificationEmail")
    async def send_verification_email(self, message: Any, sender: Sender) -> Any:
        return await self.services.accounts.send_verification_email()

    @handler("update_database")
    async def update_database(self, message: Any, sender: Sender) -> dict[str, bool]:
        result = await self.master.library.check_library_version()
        return result._asdict()

    # tabs

    @handler("openNewTab")
    def open_new_tab(self, message: dict[str, Any], sender: Sender) -> None:
        asyncio_utils.spawn(
            self.services.tabs.open_new_tab(
                message["url"], message.get("become_active", True)
            ),
            name="open tab",
        )

    @handler("reloadTab")
    def reload_tab(self, message: dict[str, Any] | None, sender: Sender) -> None:
        tab_id = (message or {}).get("tab_id")
        asyncio_utils.spawn(self._reload_tab(tab_id), name="reload tab", tab_id=tab_id)

    async def _reload_tab(self, tab_id: int | None) -> None:
        tabs = self.services.tabs
        tab = None
        if tab_id:
            tab = await tabs.get_tab(tab_id)
        if not tab:
            tab = await tabs.get_active_tab()
        if tab and tab.get("url"):
            await tabs.update_tab(tab["id"], tab["url"])
        await self.close_android_panel_tabs()

    async def close_android_panel_tabs(self) -> None:
        if not self.master.browser.is_android:
            return
        tabs = await self.services.tabs.query_tabs(f"{ANDROID_PANEL_URL}*", active=True)
        await self.services.tabs.remove_tabs(*(t["id"] for t in tabs))

    # settings export

    @handler("getSettingsForExport")
    async def get_settings_for_export(self, message: Any, sender: Sender) -> bool:
        tab = await self.services.tabs.get_active_tab()
        if not _is_web_tab(tab):
            return False
        assert tab
        backup = export_settings(self.master.options)
        if await self.services.tabs.inject_notifications(tab["id"]):
            self.services.messenger.send_message(tab["id"], "exportFile", backup)
        return True

    @handler("showBrowseWindow")
    async def show_browse_window(self, message: Any, sender: Sender) -> bool | str:
        tab = await self.services.tabs.get_active_tab()
        if not _is_web_tab(tab):
            return "not_http_page"
        assert tab
        if not await self.services.tabs.inject_notifications(tab["id"]):
            return "refresh_and_try_again"
        self.services.messenger.send_message(tab["id"], "showBrowseWindow", {})
        return True
