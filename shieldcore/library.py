"""
Keeps the tracker, click-to-play and compatibility lists up to date.

A version document lists the latest version of every list; each database
decides on its own whether it needs to fetch a newer copy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any
from typing import NamedTuple

from shieldcore import exceptions
from shieldcore import options
from shieldcore import services

logger = logging.getLogger(__name__)

VERSION_CHECK_URL = "https://cdn.ghostery.com/update/version"

AUTOUPDATE_INTERVAL = 15 * 60 * 1000
"""Minimum time between two automatic checks, in milliseconds."""


class UpdateResult(NamedTuple):
    success: bool
    updated: bool


FAILED = UpdateResult(success=False, updated=False)


def now_ms() -> int:
    return int(time.time() * 1000)


class LibraryUpdater:
    def __init__(
        self,
        opts: options.Options,
        svc: services.Services,
        fetch_json: Callable[[str], Awaitable[Any]],
        url: str = VERSION_CHECK_URL,
    ) -> None:
        self.options = opts
        self.services = svc
        self.fetch_json = fetch_json
        self.url = url

    def due(self) -> bool:
        last = self.options.bugs_last_checked
        return not last or now_ms() > last + AUTOUPDATE_INTERVAL

    async def auto_update(self) -> UpdateResult | None:
        """
        Check for new lists if auto-update is on and the last check is long
        enough ago. Returns None if no check was made.
        """
        if not self.options.enable_autoupdate or not self.due():
            return None
        logger.debug("Checking for list updates")
        return await self.check_library_version()

    async def check_library_version(self) -> UpdateResult:
        try:
            data = await self.fetch_json(self.url)
        except exceptions.FetchError as e:
            logger.warning(f"Could not check list versions: {e}")
            return FAILED
        if not isinstance(data, dict):
            logger.warning(f"Unexpected version document: {data!r}")
            return FAILED
        logger.debug(f"List versions: {data}")

        svc = self.services
        others = await asyncio.gather(
            svc.click_to_play.update(data.get("click2playVersion")),
            svc.compatibility_db.update(data.get("compatibilityVersion")),
            return_exceptions=True,
        )
        for r in others:
            if isinstance(r, Exception):
                logger.warning(f"List update failed: {r}")

        try:
            updated = await svc.tracker_db.update(data.get("bugsVersion"))
        except Exception as e:
            logger.warning(f"Tracker list update failed: {e}")
            return FAILED
        now = now_ms()
        self.options.bugs_last_checked = now
        if updated:
            logger.info("Tracker list updated")
            self.options.bugs_last_updated = now
        return UpdateResult(success=True, updated=bool(updated))
