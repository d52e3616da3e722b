import pytest

from unbound_blacklister import (
    MalformedLineError,
    build_blacklist,
    build_blacklist_with_stats,
    classify_line,
    is_valid_domain,
    render_directives,
)


# ----------------------------------------
# classify_line
# ----------------------------------------

@pytest.mark.parametrize("line", [
    "",
    "   ",
    "# comment",
    "   # indented comment",
    "127.0.0.1 localhost",
    "127.0.0.1 local.example.com",
    "255.255.255.255 broadcasthost",
    "::1 localhost",
    "fe80::1%lo0 localhost",
    "ff02::1 ip6-allnodes",
    "ff02::2 ip6-allrouters",
])
def test_classify_skips_noise_and_reserved_entries(line):
    assert classify_line(line) is None


def test_classify_extracts_second_field():
    assert classify_line("0.0.0.0 ads.example.com") == "ads.example.com"


def test_classify_lowercases_and_trims():
    assert classify_line("  0.0.0.0   Ads.Example.COM  \n") == "ads.example.com"


def test_classify_splits_on_any_whitespace_run():
    assert classify_line("0.0.0.0\t\ttracker.example.net # inline") == "tracker.example.net"


def test_classify_single_field_is_malformed():
    with pytest.raises(MalformedLineError):
        classify_line("0.0.0.0")


# ----------------------------------------
# is_valid_domain
# ----------------------------------------

@pytest.mark.parametrize("token,expected", [
    ("a.co", True),
    ("ads.example.com", True),
    ("sub_domain.example.org", True),
    ("xn--abc", True),
    ("xn--80ak6aa92e.com", True),
    ("ab", False),
    ("a.b", False),
    ("192.168.1.1", False),
    ("0.0.0.0", False),
    ("255.255.255.255", False),
    ("not_a_domain", False),
    ("example.c", False),
    ("example.", False),
])
def test_is_valid_domain(token, expected):
    assert is_valid_domain(token) is expected


def test_out_of_range_octets_are_not_ipv4():
    # 256 is not an octet, so this falls through to the shape check
    assert is_valid_domain("256.1.1.1") is False
    assert is_valid_domain("1.2.3.4.example.com") is True


# ----------------------------------------
# build_blacklist
# ----------------------------------------

def test_build_blacklist_end_to_end():
    feed = [
        "0.0.0.0 ads.example.com",
        "0.0.0.0 ads.example.com",
        "0.0.0.0 good.example.com",
    ]
    domains = build_blacklist(feed, frozenset({"good.example.com"}))

    assert render_directives(domains) == ['local-data: "ads.example.com. A 127.0.0.1"']


def test_build_blacklist_is_sorted_and_unique():
    feed = [
        "# header",
        "0.0.0.0 zeta.example.com",
        "0.0.0.0 alpha.example.com",
        "0.0.0.0 Zeta.Example.com",
        "0.0.0.0 mid.example.com",
        "0.0.0.0 alpha.example.com",
    ]
    domains = build_blacklist(feed, frozenset())

    assert domains == ["alpha.example.com", "mid.example.com", "zeta.example.com"]
    assert domains == sorted(set(domains))


def test_build_blacklist_whitelist_ignores_case_of_feed():
    feed = ["0.0.0.0 GOOD.example.com", "0.0.0.0 bad.example.com"]

    assert build_blacklist(feed, frozenset({"good.example.com"})) == ["bad.example.com"]


def test_build_blacklist_is_idempotent():
    feed = ["0.0.0.0 b.example.com", "0.0.0.0 a.example.com", "127.0.0.1 localhost"]
    whitelist = frozenset({"c.example.com"})

    assert build_blacklist(feed, whitelist) == build_blacklist(feed, whitelist)


def test_build_blacklist_skips_malformed_lines():
    feed = ["0.0.0.0", "0.0.0.0 ok.example.com"]

    assert build_blacklist(feed, frozenset()) == ["ok.example.com"]


def test_build_blacklist_empty_feed():
    assert build_blacklist([], frozenset({"a.example.com"})) == []


def test_build_stats_counts_every_outcome():
    feed = [
        "# comment",
        "127.0.0.1 localhost",
        "0.0.0.0",
        "0.0.0.0 10.0.0.1",
        "0.0.0.0 good.example.com",
        "0.0.0.0 ads.example.com",
        "0.0.0.0 ads.example.com",
    ]
    domains, stats = build_blacklist_with_stats(feed, frozenset({"good.example.com"}))

    assert domains == ["ads.example.com"]
    assert stats.lines == 7
    assert stats.skipped == 2
    assert stats.malformed == 1
    assert stats.invalid == 1
    assert stats.whitelisted == 1
    assert stats.duplicates == 1
    assert stats.unique == 1
