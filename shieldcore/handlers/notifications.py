"""
Messages from the notification scripts: the notification feed, tab opening and
the settings import window.

Exported settings files look like this:

    {"hash": -1234, "settings": {"conf": {"enable_ad_block": true, ...}}}

where the hash is the 32-bit string hash of the compact JSON encoding of the
"settings" member. Files with a mismatching hash are rejected.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from shieldcore import exceptions
from shieldcore import offers
from shieldcore import optmanager
from shieldcore import options
from shieldcore.router import Origin
from shieldcore.router import Sender
from shieldcore.router import handler
from shieldcore.utils import asyncio_utils
from shieldcore.utils import strutils

logger = logging.getLogger(__name__)


def export_settings(opts: optmanager.OptManager) -> str:
    settings = {"conf": opts.user_settings()}
    h = strutils.hash_code(strutils.compact_json(settings))
    return strutils.compact_json({"hash": h, "settings": settings})


def parse_backup(text: str) -> dict[str, Any]:
    """
    Parse and verify an exported settings file. Returns the settings it
    contains, or raises SettingsImportError.
    """
    try:
        backup = json.loads(text)
    except (TypeError, ValueError) as e:
        raise exceptions.SettingsImportError(f"Not a settings file: {e}") from e
    if not isinstance(backup, dict):
        raise exceptions.SettingsImportError("Not a settings file.")
    settings = backup.get("settings")
    if backup.get("hash") != strutils.hash_code(strutils.compact_json(settings)):
        raise exceptions.SettingsImportError("Invalid hash")
    conf = (settings or {}).get("conf") or {}
    if not isinstance(conf, dict):
        raise exceptions.SettingsImportError("Malformed settings.")
    return dict(conf)


class Notifications:
    def __init__(self, master) -> None:
        self.master = master

    @handler("dismissCMPMessage", Origin.NOTIFICATIONS)
    def dismiss_cmp_message(self, message: dict[str, Any], sender: Sender) -> None:
        if offers.is_offer(message.get("cmp_data")):
            self.master.offers.report(message)
        elif self.master.services.cmp.entries:
            self.master.services.cmp.entries.pop(0)

    @handler("cmpMessageShown", Origin.NOTIFICATIONS)
    def cmp_message_shown(self, message: dict[str, Any], sender: Sender) -> None:
        if offers.is_offer(message.get("cmp_data")):
            self.master.offers.report(message)

    @handler("openTab", Origin.NOTIFICATIONS)
    def open_tab(self, message: dict[str, Any], sender: Sender) -> None:
        asyncio_utils.spawn(
            self.master.services.tabs.open_new_tab(
                message["url"], message.get("become_active", True)
            ),
            name="open tab",
        )

    @handler("importFile", Origin.NOTIFICATIONS)
    def import_file(self, message: str, sender: Sender) -> None:
        """
        Import a settings file read by the content script. The outcome is
        reported to the active tab with an onFileImported message.
        """
        opts = self.master.options
        try:
            data = parse_backup(message)
            timeout = data.get("alert_bubble_timeout")
            if isinstance(timeout, int) and timeout > options.MAX_ALERT_BUBBLE_TIMEOUT:
                data["alert_bubble_timeout"] = options.MAX_ALERT_BUBBLE_TIMEOUT
            ignored = opts.import_settings(data)
        except (exceptions.SettingsImportError, exceptions.OptionsError) as e:
            logger.warning(f"Could not import settings: {e}")
            self.notify(
                sender, {"type": "error", "text": "The settings file could not be imported."}
            )
            return
        if ignored:
            logger.debug(f"Ignored imported settings: {', '.join(ignored)}")
        opts.settings_last_imported = int(time.time() * 1000)
        when = time.strftime("%B %d, %Y %H:%M", time.localtime(time.time()))
        self.notify(sender, {"type": "message", "text": f"Settings imported {when}"})

    def notify(self, sender: Sender, result: dict[str, str]) -> None:
        asyncio_utils.spawn(
            self._notify(sender.tab_id, result),
            name="onFileImported",
            tab_id=sender.tab_id,
        )

    async def _notify(self, tab_id: int | None, result: dict[str, str]) -> None:
        tab = await self.master.services.tabs.get_active_tab()
        if tab:
            tab_id = tab["id"]
        self.master.services.messenger.send_message(tab_id, "onFileImported", result)
