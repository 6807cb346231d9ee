import ipaddress
import re

import dns.flags
import dns.message
import dns.rdataclass
import dns.rdatatype
import pytest

from mosdns.hosts import IPs, Hosts, parse_ips

TEST_HOSTS = """
# comment
     # empty line
dns.google 8.8.8.8 8.8.4.4 2001:4860:4860::8844 2001:4860:4860::8888
regexp:^123456789 192.168.1.1
test.com 1.2.3.4 # will be replaced
test.com 2.3.4.5 
# nxdomain.com 1.2.3.4
"""


class _TextMatcher:
    """Exact-name and regexp matcher over a hosts text, for the tests."""

    def __init__(self, text):
        self._exact = {}
        self._regexps = []
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            pattern, ips = parse_ips(line)
            if pattern.startswith("regexp:"):
                self._regexps.append((re.compile(pattern[len("regexp:"):]), ips))
            else:
                self._exact[pattern] = ips

    def match(self, fqdn):
        name = fqdn.rstrip(".")
        if name in self._exact:
            return self._exact[name]
        for regexp, ips in self._regexps:
            if regexp.search(name):
                return ips
        return None


@pytest.fixture
def hosts():
    return Hosts(_TextMatcher(TEST_HOSTS))


def _answer_ips(reply):
    return {
        str(ipaddress.ip_address(rd.address))
        for rrset in reply.answer
        for rd in rrset
    }


@pytest.mark.parametrize(
    "name, qtype, want_matched, want_addrs",
    [
        ("dns.google.", "A", True, {"8.8.8.8", "8.8.4.4"}),
        ("dns.google.", "AAAA", True, {"2001:4860:4860::8844", "2001:4860:4860::8888"}),
        ("nxdomain.com.", "A", False, None),
        ("sub.dns.google.", "A", False, None),
        ("123456789.test.", "A", True, {"192.168.1.1"}),
        ("0123456789.test.", "A", False, None),
        ("test.com.", "A", True, {"2.3.4.5"}),
        ("test.com.", "AAAA", True, set()),
    ],
)
def test_lookup_msg(hosts, name, qtype, want_matched, want_addrs):
    query = dns.message.make_query(name, qtype)
    reply = hosts.lookup_msg(query)
    if not want_matched:
        assert reply is None
        return
    assert reply is not None
    assert _answer_ips(reply) == want_addrs


def test_lookup_msg_mismatched_type_has_fake_soa(hosts):
    query = dns.message.make_query("test.com.", "AAAA")
    reply = hosts.lookup_msg(query)
    assert reply.answer == []
    assert len(reply.authority) == 1
    soa = reply.authority[0]
    assert soa.rdtype == dns.rdatatype.SOA
    assert soa.name.to_text() == "test.com."


def test_lookup_msg_reply_header(hosts):
    query = dns.message.make_query("dns.google.", "A")
    reply = hosts.lookup_msg(query)
    assert reply.id == query.id
    assert reply.flags & dns.flags.QR
    assert reply.flags & dns.flags.RA
    assert reply.edns == -1
    assert all(rrset.ttl == 10 for rrset in reply.answer)


def test_lookup_msg_ignores_other_types_and_classes(hosts):
    assert hosts.lookup_msg(dns.message.make_query("dns.google.", "MX")) is None
    chaos = dns.message.make_query("dns.google.", "A", rdclass=dns.rdataclass.CH)
    assert hosts.lookup_msg(chaos) is None


def test_lookup_msg_requires_single_question(hosts):
    query = dns.message.make_query("dns.google.", "A")
    query.question.append(dns.message.make_query("test.com.", "A").question[0])
    assert hosts.lookup_msg(query) is None


def test_lookup(hosts):
    ipv4, ipv6 = hosts.lookup("dns.google.")
    assert ipv4 == [ipaddress.ip_address("8.8.8.8"), ipaddress.ip_address("8.8.4.4")]
    assert ipv6 == [
        ipaddress.ip_address("2001:4860:4860::8844"),
        ipaddress.ip_address("2001:4860:4860::8888"),
    ]
    assert hosts.lookup("nxdomain.com.") == ([], [])


def test_parse_ips_splits_families():
    pattern, ips = parse_ips("example.com 1.2.3.4 ::1 5.6.7.8")
    assert pattern == "example.com"
    assert ips == IPs(
        ipv4=[ipaddress.ip_address("1.2.3.4"), ipaddress.ip_address("5.6.7.8")],
        ipv6=[ipaddress.ip_address("::1")],
    )


def test_parse_ips_pattern_only():
    pattern, ips = parse_ips("  example.com  ")
    assert pattern == "example.com"
    assert ips == IPs()


def test_parse_ips_errors():
    with pytest.raises(ValueError, match="empty"):
        parse_ips("   ")
    with pytest.raises(ValueError, match="invalid ip addr"):
        parse_ips("example.com not-an-ip")