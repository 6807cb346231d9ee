"""Answer A and AAAA queries from a hosts table."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Protocol

import dns.flags
import dns.message
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from .dnsutils.msg import fake_soa

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_HOSTS_TTL = 10


@dataclass
class IPs:
    """The addresses of one host, split by family."""

    ipv4: list[ipaddress.IPv4Address] = field(default_factory=list)
    ipv6: list[ipaddress.IPv6Address] = field(default_factory=list)


class DomainMatcher(Protocol):
    """Maps a domain name (fqdn, with trailing dot) to its IPs, or None."""

    def match(self, fqdn: str) -> IPs | None: ...


def parse_ips(line: str) -> tuple[str, IPs]:
    """Parse "pattern ip [ip ...]" into the pattern and its addresses.

    Raises ValueError on an empty line or an invalid address.
    """
    fields = line.split()
    if not fields:
        raise ValueError("empty string")
    pattern, *addresses = fields
    ips = IPs()
    for text in addresses:
        try:
            ip = ipaddress.ip_address(text)
        except ValueError as exc:
            raise ValueError(f"invalid ip addr {text}, {exc}") from exc
        if isinstance(ip, ipaddress.IPv4Address):
            ips.ipv4.append(ip)
        else:
            ips.ipv6.append(ip)
    return pattern, ips


class Hosts:
    """A hosts table backed by a domain matcher."""

    def __init__(self, matcher: DomainMatcher) -> None:
        self._matcher = matcher

    def lookup(self, fqdn: str) -> tuple[list[ipaddress.IPv4Address], list[ipaddress.IPv6Address]]:
        """Return the (IPv4, IPv6) addresses of fqdn; both empty if unknown."""
        ips = self._matcher.match(fqdn)
        if ips is None:
            return [], []
        return list(ips.ipv4), list(ips.ipv6)

    def lookup_msg(self, msg: dns.message.Message) -> dns.message.Message | None:
        """Build a reply to an IN A/AAAA query from the table, or return None.

        A known host with no address of the asked family gets an empty
        reply carrying a fake SOA.
        """
        if len(msg.question) != 1:
            return None
        question = msg.question[0]
        qtype = question.rdtype
        if question.rdclass != dns.rdataclass.IN or qtype not in (
            dns.rdatatype.A,
            dns.rdatatype.AAAA,
        ):
            return None

        fqdn = question.name
        ipv4, ipv6 = self.lookup(fqdn.to_text())
        if not ipv4 and not ipv6:
            return None

        reply = dns.message.make_response(msg)
        reply.use_edns(edns=-1)
        reply.flags |= dns.flags.RA

        addresses: list[IPAddress] = []
        if qtype == dns.rdatatype.A:
            addresses = list(ipv4)
        elif qtype == dns.rdatatype.AAAA:
            addresses = list(ipv6)

        if addresses:
            reply.answer.append(
                dns.rrset.from_text_list(
                    fqdn,
                    _HOSTS_TTL,
                    dns.rdataclass.IN,
                    qtype,
                    [str(ip) for ip in addresses],
                )
            )
        else:
            reply.authority = [fake_soa(fqdn)]
        return reply