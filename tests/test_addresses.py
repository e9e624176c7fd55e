import pytest

from instance_attest import AddressMismatch, match_addresses, normalize_addr, parse_prefix

from support import (
    CORRECT_IPV4, CORRECT_IPV6, NAT_IPV4, NAT_IPV6, PROXY_IPV4, PROXY_IPV6,
    WRONG_IPV4, WRONG_IPV6, address_group, make_instance,
)

CASES = [
    # ipv4 / ipv6 only
    (CORRECT_IPV4, "", [CORRECT_IPV4], [], [CORRECT_IPV4], True),
    (CORRECT_IPV6, "", [CORRECT_IPV6], [], [CORRECT_IPV6], True),
    # primary address only, not in the address groups
    (CORRECT_IPV4, "", [], [], [CORRECT_IPV4], True),
    (CORRECT_IPV6, "", [], [], [CORRECT_IPV6], True),
    # only in the address groups
    ("", "", [CORRECT_IPV4], [], [CORRECT_IPV4], True),
    ("", "", [CORRECT_IPV6], [], [CORRECT_IPV6], True),
    ("", "", [CORRECT_IPV4, WRONG_IPV4], [], [CORRECT_IPV4], True),
    ("", "", [CORRECT_IPV4, WRONG_IPV6], [], [CORRECT_IPV4], True),
    ("", "", [WRONG_IPV4, CORRECT_IPV4, WRONG_IPV6], [], [CORRECT_IPV4], True),
    # wrong address
    (WRONG_IPV4, "", [WRONG_IPV4], [], [CORRECT_IPV4], False),
    (WRONG_IPV4, "", [], [], [CORRECT_IPV4], False),
    ("", "", [WRONG_IPV4], [], [CORRECT_IPV4], False),
    ("", "", [WRONG_IPV4, "192.168.1.3"], [], [CORRECT_IPV4], False),
    # proxy: the instance address is a later request address
    (CORRECT_IPV4, "", [CORRECT_IPV4], [], [PROXY_IPV4, CORRECT_IPV4], True),
    (CORRECT_IPV4, "", [], [], [PROXY_IPV4, CORRECT_IPV4], True),
    (CORRECT_IPV6, "", [CORRECT_IPV6], [], [PROXY_IPV6, CORRECT_IPV6], True),
    (CORRECT_IPV6, "", [], [], [PROXY_IPV6, CORRECT_IPV6], True),
    ("", "", [CORRECT_IPV4], [], [PROXY_IPV4, CORRECT_IPV4], True),
    ("", "", [CORRECT_IPV4, WRONG_IPV4], [], [PROXY_IPV4, CORRECT_IPV4], True),
    (WRONG_IPV4, "", [WRONG_IPV4], [], [PROXY_IPV4, CORRECT_IPV4], False),
    (WRONG_IPV4, "", [], [], [PROXY_IPV4, CORRECT_IPV4], False),
    ("", "", [WRONG_IPV4], [], [PROXY_IPV4, CORRECT_IPV4], False),
    ("", "", [WRONG_IPV4, "192.168.1.3"], [], [PROXY_IPV4, CORRECT_IPV4], False),
    # NAT: the request address only falls inside a trusted prefix
    (WRONG_IPV4, WRONG_IPV6, [], [f"{NAT_IPV4}/32"], [NAT_IPV4], True),
    (WRONG_IPV4, WRONG_IPV6, [], ["192.168.99.0/24"], [NAT_IPV4], False),
    (WRONG_IPV4, WRONG_IPV6, [], [f"{NAT_IPV6}/128"], [NAT_IPV6], True),
    (WRONG_IPV4, WRONG_IPV6, [], ["2001:db8:99::1"], [NAT_IPV6], False),
]


@pytest.mark.parametrize("ipv4,ipv6,groups,prefixes,request_addrs,ok", CASES)
def test_match_addresses(ipv4, ipv6, groups, prefixes, request_addrs, ok):
    instance = make_instance(
        access_ipv4=ipv4,
        access_ipv6=ipv6,
        address_groups=address_group(*groups) if groups else {},
    )
    if ok:
        assert match_addresses(instance, request_addrs, prefixes) in request_addrs
    else:
        with pytest.raises(AddressMismatch):
            match_addresses(instance, request_addrs, prefixes)


def test_returns_first_matching_address():
    instance = make_instance(access_ipv4=CORRECT_IPV4, access_ipv6=CORRECT_IPV6)
    assert match_addresses(instance, [PROXY_IPV4, CORRECT_IPV6, CORRECT_IPV4]) == CORRECT_IPV6


def test_ipv6_textual_forms_match():
    instance = make_instance(access_ipv4="", access_ipv6="2001:DB8:0:0::1")
    assert match_addresses(instance, ["2001:db8::1"]) == CORRECT_IPV6


def test_wider_prefix_contains_address():
    instance = make_instance(access_ipv4=WRONG_IPV4)
    assert match_addresses(instance, [NAT_IPV4], ["192.168.0.0/16"]) == NAT_IPV4


def test_ipv4_address_never_matches_ipv6_prefix():
    instance = make_instance(access_ipv4=WRONG_IPV4)
    with pytest.raises(AddressMismatch):
        match_addresses(instance, [NAT_IPV4], ["::/0"])


def test_malformed_prefixes_are_skipped():
    instance = make_instance(access_ipv4=WRONG_IPV4)
    prefixes = ["not-a-prefix", "192.168.3.0/33", "", f"{NAT_IPV4}/32"]
    assert match_addresses(instance, [NAT_IPV4], prefixes) == NAT_IPV4
    with pytest.raises(AddressMismatch):
        match_addresses(instance, [NAT_IPV4], prefixes[:3])


def test_unparsable_request_address_only_matches_exactly():
    instance = make_instance(access_ipv4=WRONG_IPV4)
    with pytest.raises(AddressMismatch):
        match_addresses(instance, ["testclient"], ["0.0.0.0/0"])


def test_no_request_addresses():
    with pytest.raises(AddressMismatch):
        match_addresses(make_instance(), [], ["0.0.0.0/0"])


@pytest.mark.parametrize("request_addr", [NAT_IPV4, "192.168.3.77", "10.1.2.3", CORRECT_IPV4])
def test_widening_prefixes_never_loses_a_match(request_addr):
    instance = make_instance(access_ipv4=CORRECT_IPV4)
    narrow = ["192.168.3.0/24"]
    wide = narrow + ["10.0.0.0/8"]
    widest = wide + ["0.0.0.0/0"]

    results = []
    for prefixes in (narrow, wide, widest):
        try:
            match_addresses(instance, [request_addr], prefixes)
            results.append(True)
        except AddressMismatch:
            results.append(False)
    assert results == sorted(results)
    assert results[-1]


def test_parse_prefix():
    assert str(parse_prefix("192.168.3.1/24")) == "192.168.3.0/24"
    assert str(parse_prefix("2001:db8::1/64")) == "2001:db8::/64"
    assert parse_prefix("192.168.3.1") is None
    assert parse_prefix("bogus/8") is None
    assert parse_prefix(None) is None


def test_normalize_addr():
    assert normalize_addr(" 192.168.1.1 ") == "192.168.1.1"
    assert normalize_addr("2001:0DB8::0001") == "2001:db8::1"
    assert normalize_addr("testclient") == "testclient"
    assert normalize_addr("::ffff:192.168.1.1") == "192.168.1.1"


def test_ipv4_mapped_peer_matches_ipv4_address():
    instance = make_instance(access_ipv4=CORRECT_IPV4)
    assert match_addresses(instance, [f"::ffff:{CORRECT_IPV4}"]) == CORRECT_IPV4

    instance = make_instance(access_ipv4=WRONG_IPV4)
    assert match_addresses(instance, [f"::ffff:{NAT_IPV4}"], ["192.168.3.0/24"]) == NAT_IPV4
