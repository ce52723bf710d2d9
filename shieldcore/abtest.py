from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

from shieldcore import options

logger = logging.getLogger(__name__)

ABTEST_URL = "https://abtestserver.privacy-shield.net/abtest"


class ABTest:
    """
    Holds the names of the A/B tests this installation is enrolled in. The
    server picks tests based on the install bucket and the opt-in state.
    """

    def __init__(
        self,
        opts: options.Options,
        fetch_json: Callable[[str], Awaitable[Any]],
        url: str = ABTEST_URL,
    ) -> None:
        self.options = opts
        self.fetch_json = fetch_json
        self.url = url
        self.tests: set[str] = set()

    def has_test(self, name: str) -> bool:
        return name in self.tests

    def query_url(self) -> str:
        params = {
            "ir": self.options.install_random_number,
            "ih": int(self.options.enable_human_web),
        }
        return f"{self.url}?{urlencode(params)}"

    async def fetch(self) -> None:
        """
        Replace the enrolled tests with the server's answer. Raises FetchError
        if the server is unreachable, leaving the current tests in place.
        """
        data = await self.fetch_json(self.query_url())
        tests = set()
        for entry in data or []:
            if isinstance(entry, dict) and "name" in entry:
                tests.add(entry["name"])
        logger.debug(f"Enrolled A/B tests: {sorted(tests)}")
        self.tests = tests
