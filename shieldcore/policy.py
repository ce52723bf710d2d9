import enum
from collections.abc import Callable
from urllib.parse import urlsplit

from publicsuffix2 import get_sld

from shieldcore import module
from shieldcore import options
from shieldcore import session


class SitePolicy(enum.IntEnum):
    NONE = 0
    BLACKLISTED = 1
    WHITELISTED = 2


def site_of(url_or_host: str) -> str:
    """
    Registrable domain of a URL or bare hostname, e.g. "news.example.co.uk" -> "example.co.uk".
    """
    if "://" in url_or_host:
        host = urlsplit(url_or_host).hostname or ""
    else:
        host = url_or_host.split("/", 1)[0].split(":", 1)[0]
    host = host.lower().rstrip(".")
    if not host:
        return ""
    return get_sld(host) or host


class Policy:
    """
    Site-level blocking policy. A site is matched by registrable domain, so an
    entry for "example.com" covers "www.example.com" as well.
    """

    def __init__(self, opts: options.Options, sess: session.Session) -> None:
        self.options = opts
        self.session = sess

    def get_site_policy(self, url: str) -> SitePolicy:
        site = site_of(url)
        if not site:
            return SitePolicy.NONE
        if site in {site_of(s) for s in self.options.site_blacklist}:
            return SitePolicy.BLACKLISTED
        if site in {site_of(s) for s in self.options.site_whitelist}:
            return SitePolicy.WHITELISTED
        return SitePolicy.NONE

    def is_whitelisted(self, url: str) -> bool:
        """
        Requests triggered by a whitelisted page must not be blocked or altered
        by any capability module. Pausing blocking whitelists everything.
        """
        return (
            self.session.paused_blocking
            or self.get_site_policy(url) is SitePolicy.WHITELISTED
        )

    def is_host_whitelisted(self, hostname: str) -> bool:
        return self.is_whitelisted(f"http://{hostname}/")

    def whitelist_checks(self) -> dict[str, Callable[[str], bool]]:
        """
        The checks handed to the filtering modules. The ad blocker asks about
        page URLs, anti-tracking about host names.
        """
        return {
            module.ADBLOCKER: self.is_whitelisted,
            module.ANTITRACKING: self.is_host_whitelisted,
        }
