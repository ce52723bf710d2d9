"""
Minimal JSON-over-HTTP client for the periodic refresh jobs.

urllib is blocking, so requests run in a worker thread to keep the event loop free.
The opener bypasses system proxy settings: the process may be the proxy itself.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any

from shieldcore import exceptions
from shieldcore import version

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_no_proxy_opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def _get(url: str, timeout: float) -> Any:
    req = urllib.request.Request(
        url,
        headers={"Accept": "application/json", "User-Agent": version.SHIELDCORE},
    )
    try:
        with _no_proxy_opener.open(req, timeout=timeout) as resp:
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise exceptions.FetchError(f"{url} returned HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise exceptions.FetchError(f"Cannot reach {url}: {e}") from e
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise exceptions.FetchError(f"Invalid JSON from {url}: {e}") from e


async def get_json(url: str, timeout: float = DEFAULT_TIMEOUT) -> Any:
    """
    Fetch and decode a JSON document. Raises FetchError on any network or decoding failure.
    """
    logger.debug(f"Fetching {url}")
    return await asyncio.to_thread(_get, url, timeout)
