import logging
from unittest import mock

from shieldcore import browser
from shieldcore import module
from shieldcore import version
from shieldcore.handlers import notifications
from shieldcore.handlers import universal
from shieldcore.test import tservices

APPS = {
    "1": {"name": "Ad Network", "cat": "advertising"},
    "2": {"name": "Analytics", "cat": "site_analytics"},
    "3": {"name": "Another Ad Network", "cat": "advertising"},
}


async def ask(tctx, name, payload=None, **kwargs):
    """Send a message and return the response delivered to the sender."""
    respond = mock.Mock()
    tctx.message(name, payload, respond=respond, **kwargs)
    await tctx.settle()
    respond.assert_called_once()
    return respond.call_args.args[0]


async def test_toggles():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.message("disableShowAlert")
        assert tctx.options.show_alert is False
        tctx.message("updateDisplayMode", True)
        assert tctx.options.is_expert is True
        tctx.message("updateSmartBlock", False)
        assert tctx.options.enable_smart_block is False

        tctx.message("updateAdBlock", False)
        tctx.message("updateAntiTrack", False)
        assert tctx.options.enable_ad_block is False
        await tctx.settle()
        assert tctx.module(module.ADBLOCKER).is_disabled
        assert tctx.module(module.ANTITRACKING).is_disabled


async def test_update_data_collection():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.message("updateDataCollection", False)
        assert tctx.options.enable_human_web is False
        assert tctx.options.enable_metrics is False
        await tctx.settle()
        assert tctx.module(module.HUMAN_WEB).is_disabled

        tctx.message("updateDataCollection", True)
        assert tctx.options.enable_human_web is True
        assert tctx.options.enable_metrics is True


async def test_update_data_collection_legacy():
    async with tservices.context(info=browser.BrowserInfo(name="edge")) as tctx:
        await tctx.start()
        tctx.message("updateDataCollection", True)
        assert tctx.options.enable_human_web is False
        assert tctx.options.enable_metrics is True


async def test_update_blocking():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.services.tracker_db.apps = APPS
        tctx.message("updateBlocking", universal.BLOCK_ALL)
        assert tctx.options.selected_app_ids == {"1": 1, "2": 1, "3": 1}
        assert tctx.services.tracker_db.all_selected

        tctx.message("updateBlocking", universal.BLOCK_ADS)
        assert tctx.options.selected_app_ids == {"1": 1, "3": 1}

        tctx.message("updateBlocking", "UPDATE_BLOCK_SOMETHING")
        assert tctx.options.selected_app_ids == {"1": 1, "3": 1}

        tctx.message("updateBlocking", universal.BLOCK_NONE)
        assert tctx.options.selected_app_ids == {}
        assert tctx.services.tracker_db.none_selected


async def test_setup_step():
    async with tservices.context() as tctx:
        await tctx.start()
        assert tctx.session.just_installed
        tctx.message("setupStep", {"setup_step": 3})
        assert tctx.options.setup_step == 3
        # the furthest step is kept
        tctx.message("setupStep", {"setup_step": 2})
        assert tctx.options.setup_step == 3
        tctx.message("setupStep", {"setup_path": 2})
        assert tctx.options.setup_path == 2
        tctx.message("setupStep", {"setup_block": 1})
        assert tctx.options.setup_block == 1
        tctx.message("setupStep", {"final": True, "setup_step": 9})
        assert tctx.options.setup_step == 3

        tctx.session.just_installed = False
        tctx.message("setupStep", {"setup_step": 8})
        assert tctx.options.setup_step == 3


async def test_close_setup():
    async with tservices.context() as tctx:
        await tctx.start()
        tabs = tctx.services.tabs
        tctx.message("skipSetup", tab_id=12)
        await tctx.settle()
        tabs.remove_tabs.assert_awaited_once_with(12)
        tabs.open_new_tab.assert_awaited_with(universal.SETUP_DONE_URL, True)

        tabs.remove_tabs.reset_mock()
        tctx.message("closeSetup", tab_id=None)
        await tctx.settle()
        tabs.remove_tabs.assert_not_called()
        tabs.open_new_tab.assert_awaited_with(universal.SETUP_DONE_URL, True)


async def test_panel_data():
    async with tservices.context() as tctx:
        await tctx.start()
        panel_data = tctx.services.panel_data
        panel_data.get.return_value = {"summary": {"trackerCounts": 3}}
        pull = tctx.services.accounts.pull_user_settings
        pull.reset_mock()

        assert await ask(tctx, "getPanelData", {"view": "panel"}) == {
            "summary": {"trackerCounts": 3}
        }
        panel_data.get.assert_called_once_with("panel", tservices.ACTIVE_TAB)
        pull.assert_awaited_once()

        other = {"id": 5, "url": "https://other.test/"}
        tctx.services.tabs.get_tab.return_value = other
        await ask(tctx, "getPanelData", {"view": "settings", "tabId": "5"})
        tctx.services.tabs.get_tab.assert_awaited_once_with(5)
        panel_data.get.assert_called_with("settings", other)

        tctx.message("setPanelData", {"expand": True})
        panel_data.set.assert_called_once_with({"expand": True})


async def test_module_data():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.module(module.ANTITRACKING).actions[
            "aggregatedBlockingStats"
        ].return_value = {"blocked": 4}
        tctx.module(module.ADBLOCKER).actions["getAdBlockInfoForTab"].return_value = {
            "totalCount": 2
        }
        assert await ask(tctx, "getModuleData") == {
            "adblock": {"totalCount": 2},
            "antitracking": {"blocked": 4},
        }

        tctx.options.enable_ad_block = False
        await tctx.settle()
        assert await ask(tctx, "getModuleData") == {
            "adblock": {},
            "antitracking": {"blocked": 4},
        }

        tctx.services.tabs.get_active_tab.return_value = None
        assert await ask(tctx, "getModuleData") == {"adblock": {}, "antitracking": {}}


async def test_module_data_antitracking_unavailable():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.module(module.ANTITRACKING).actions[
            "aggregatedBlockingStats"
        ].side_effect = RuntimeError("not ready")
        assert await ask(tctx, "getModuleData") == {"adblock": {}, "antitracking": {}}


async def test_site_data(caplog):
    info = browser.BrowserInfo(
        name="firefox", display_name="Firefox", version="119.0", os="mac"
    )
    async with tservices.context(info=info) as tctx:
        await tctx.start()
        tctx.services.tracker_db.categories.return_value = [{"id": "advertising"}]
        data = await ask(tctx, "getSiteData")
        assert data == {
            "url": tservices.ACTIVE_TAB["url"],
            "extensionVersion": version.VERSION,
            "browserDisplayName": "Firefox",
            "browserVersion": "119.0",
            "categories": [{"id": "advertising"}],
            "os": "mac",
            "language": "en",
            "dbVersion": 1,
        }

        tctx.services.tabs.get_active_tab.return_value = None
        assert await ask(tctx, "getSiteData") is None
        assert "Tab not found" in caplog.text


async def test_tracker_description():
    async with tservices.context() as tctx:
        await tctx.start()
        url = "https://apps.example/1.json"
        assert await ask(tctx, "getTrackerDescription", {"url": url}) == ""

        tctx.fetch_json.side_effect = None
        tctx.fetch_json.return_value = {"company_in_their_own_words": "We count visits."}
        assert (
            await ask(tctx, "getTrackerDescription", {"url": url}) == "We count visits."
        )
        tctx.fetch_json.assert_awaited_with(url)


async def test_accounts(caplog):
    caplog.set_level(logging.INFO)
    async with tservices.context() as tctx:
        await tctx.start()
        accounts = tctx.services.accounts
        accounts.get_login_info.return_value = {"logged_in": True, "email": "a@b.c"}
        assert await ask(tctx, "getLoginInfo") == {"logged_in": True, "email": "a@b.c"}
        tctx.services.messenger.send_message_to_panel.assert_called_once_with(
            "onLoginInfoUpdated", {"logged_in": True, "email": "a@b.c"}
        )

        accounts.set_login_info.return_value = {"logged_in": False}
        assert await ask(tctx, "setLoginInfo") == {"logged_in": False}
        accounts.set_login_info.assert_awaited_once_with({})

        accounts.pull_user_settings.return_value = {"conf": {}}
        assert await ask(tctx, "pullUserSettings") == {"conf": {}}
        accounts.pull_user_settings.side_effect = ConnectionError("offline")
        assert await ask(tctx, "pullUserSettings") is None
        assert "Could not pull user settings: offline" in caplog.text

        accounts.send_verification_email.return_value = "sent"
        assert await ask(tctx, "sendVerificationEmail") == "sent"


async def test_update_database():
    async with tservices.context() as tctx:
        await tctx.start()
        assert await ask(tctx, "update_database") == {"success": False, "updated": False}

        tctx.fetch_json.side_effect = None
        tctx.fetch_json.return_value = {"bugsVersion": 2}
        tctx.services.tracker_db.update.return_value = True
        assert await ask(tctx, "update_database") == {"success": True, "updated": True}


async def test_open_new_tab():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.message("openNewTab", {"url": "https://example.com/help"})
        await tctx.settle()
        tctx.services.tabs.open_new_tab.assert_awaited_with("https://example.com/help", True)


async def test_reload_tab():
    async with tservices.context() as tctx:
        await tctx.start()
        tabs = tctx.services.tabs
        tabs.get_tab.return_value = {"id": 5, "url": "https://other.test/"}
        tctx.message("reloadTab", {"tab_id": 5})
        await tctx.settle()
        tabs.update_tab.assert_awaited_once_with(5, "https://other.test/")
        tabs.query_tabs.assert_not_called()

        tabs.update_tab.reset_mock()
        tctx.message("reloadTab", None)
        await tctx.settle()
        tabs.update_tab.assert_awaited_once_with(
            tservices.ACTIVE_TAB["id"], tservices.ACTIVE_TAB["url"]
        )


async def test_reload_tab_android():
    async with tservices.context(info=browser.BrowserInfo(os="android")) as tctx:
        await tctx.start()
        tabs = tctx.services.tabs
        tabs.query_tabs.return_value = [{"id": 20}, {"id": 21}]
        tctx.message("reloadTab", {})
        await tctx.settle()
        tabs.query_tabs.assert_awaited_once_with(
            f"{universal.ANDROID_PANEL_URL}*", active=True
        )
        tabs.remove_tabs.assert_awaited_once_with(20, 21)


async def test_settings_export():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.options.show_alert = False
        assert await ask(tctx, "getSettingsForExport") is True
        tab_id, name, backup = tctx.services.messenger.send_message.call_args.args
        assert (tab_id, name) == (tservices.ACTIVE_TAB["id"], "exportFile")
        assert notifications.parse_backup(backup)["show_alert"] is False

        tctx.services.tabs.get_active_tab.return_value = {"id": 2, "url": "about:addons"}
        assert await ask(tctx, "getSettingsForExport") is False


async def test_show_browse_window():
    async with tservices.context() as tctx:
        await tctx.start()
        tabs = tctx.services.tabs
        assert await ask(tctx, "showBrowseWindow") is True
        tctx.services.messenger.send_message.assert_called_once_with(
            tservices.ACTIVE_TAB["id"], "showBrowseWindow", {}
        )

        tabs.inject_notifications.return_value = False
        assert await ask(tctx, "showBrowseWindow") == "refresh_and_try_again"

        tabs.get_active_tab.return_value = {"id": 2, "url": "chrome://extensions"}
        assert await ask(tctx, "showBrowseWindow") == "not_http_page"
