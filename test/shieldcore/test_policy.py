import pytest

from shieldcore import module
from shieldcore import options
from shieldcore import policy
from shieldcore import session
from shieldcore.policy import SitePolicy


@pytest.mark.parametrize(
    "url, site",
    [
        ("https://www.example.com/path", "example.com"),
        ("http://news.example.co.uk:8080/", "example.co.uk"),
        ("example.com", "example.com"),
        ("WWW.Example.COM.", "example.com"),
        ("sub.example.org/path", "example.org"),
        ("", ""),
    ],
)
def test_site_of(url, site):
    assert policy.site_of(url) == site


def test_site_policy():
    opts = options.Options(
        site_whitelist=["example.com", "both.test"],
        site_blacklist=["tracker.test", "both.test"],
    )
    p = policy.Policy(opts, session.Session())

    assert p.get_site_policy("https://www.example.com/") is SitePolicy.WHITELISTED
    assert p.get_site_policy("https://cdn.tracker.test/x.js") is SitePolicy.BLACKLISTED
    # the blacklist wins
    assert p.get_site_policy("https://both.test/") is SitePolicy.BLACKLISTED
    assert p.get_site_policy("https://other.test/") is SitePolicy.NONE
    assert p.get_site_policy("") is SitePolicy.NONE

    assert p.is_whitelisted("https://example.com/")
    assert not p.is_whitelisted("https://other.test/")
    assert p.is_host_whitelisted("www.example.com")
    assert not p.is_host_whitelisted("tracker.test")


def test_paused_blocking():
    sess = session.Session(paused_blocking=True)
    p = policy.Policy(options.Options(), sess)
    assert p.is_whitelisted("https://anything.test/")
    sess.paused_blocking = False
    assert not p.is_whitelisted("https://anything.test/")


def test_whitelist_checks():
    p = policy.Policy(options.Options(), session.Session())
    checks = p.whitelist_checks()
    assert checks[module.ADBLOCKER] == p.is_whitelisted
    assert checks[module.ANTITRACKING] == p.is_host_whitelisted
