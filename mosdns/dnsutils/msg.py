"""Helpers for TTLs, replies and cache keys of DNS messages."""

from __future__ import annotations

from collections.abc import Iterator

import dns.flags
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.rrset

_FAKE_SOA_TTL = 300
_FAKE_SOA_RDATA = (
    "fake-ns.mosdns.fake.root. fake-mbox.mosdns.fake.root. "
    "2021110400 1800 900 604800 86400"
)


def _rrsets(msg: dns.message.Message) -> Iterator[dns.rrset.RRset]:
    """Yield the non-empty RRsets of every section, skipping OPT records."""
    for section in (msg.answer, msg.authority, msg.additional):
        for rrset in section:
            if rrset.rdtype == dns.rdatatype.OPT or len(rrset) == 0:
                continue
            yield rrset


def get_minimal_ttl(msg: dns.message.Message) -> int:
    """Return the smallest TTL in msg, or 0 if msg holds no record."""
    return min((rrset.ttl for rrset in _rrsets(msg)), default=0)


def set_ttl(msg: dns.message.Message, ttl: int) -> None:
    """Set the TTL of every record except OPT."""
    for rrset in _rrsets(msg):
        rrset.ttl = ttl


def apply_maximum_ttl(msg: dns.message.Message, ttl: int) -> None:
    """Lower every TTL above ttl to ttl."""
    for rrset in _rrsets(msg):
        if rrset.ttl > ttl:
            rrset.ttl = ttl


def apply_minimal_ttl(msg: dns.message.Message, ttl: int) -> None:
    """Raise every TTL below ttl to ttl."""
    for rrset in _rrsets(msg):
        if rrset.ttl < ttl:
            rrset.ttl = ttl


def subtract_ttl(msg: dns.message.Message, delta: int) -> bool:
    """Subtract delta from every TTL.

    A TTL not larger than delta becomes 1, and True is returned.
    """
    overflowed = False
    for rrset in _rrsets(msg):
        if rrset.ttl > delta:
            rrset.ttl -= delta
        else:
            rrset.ttl = 1
            overflowed = True
    return overflowed


def qclass_to_string(value: int) -> str:
    """Return the mnemonic of a class, or its number if unknown."""
    text = dns.rdataclass.to_text(value)
    return str(value) if text == f"CLASS{value}" else text


def qtype_to_string(value: int) -> str:
    """Return the mnemonic of a type, or its number if unknown."""
    text = dns.rdatatype.to_text(value)
    return str(value) if text == f"TYPE{value}" else text


def fake_soa(name: str | dns.name.Name) -> dns.rrset.RRset:
    """Return a made-up SOA record owned by name, for empty replies."""
    return dns.rrset.from_text(name, _FAKE_SOA_TTL, "IN", "SOA", _FAKE_SOA_RDATA)


def gen_empty_reply(query: dns.message.Message, rcode: int) -> dns.message.Message:
    """Build a reply to query with rcode, no answer and a fake SOA."""
    reply = dns.message.make_response(query)
    reply.use_edns(edns=-1)
    reply.set_rcode(rcode)
    reply.flags |= dns.flags.RA
    name = query.question[0].name if len(query.question) > 1 else dns.name.root
    reply.authority = [fake_soa(name)]
    return reply


def get_msg_key(msg: dns.message.Message, salt: int) -> bytes:
    """Return the wire form of msg with its id replaced by salt."""
    wire = bytearray(msg.to_wire())
    wire[0:2] = salt.to_bytes(2, "big")
    return bytes(wire)


def get_msg_key_with_bytes_salt(msg: dns.message.Message, salt: bytes) -> bytes:
    """Return the wire form of msg with a zero id, followed by salt."""
    wire = bytearray(msg.to_wire())
    wire[0:2] = b"\x00\x00"
    return bytes(wire) + bytes(salt)


def get_msg_key_with_int64_salt(msg: dns.message.Message, salt: int) -> bytes:
    """Like get_msg_key_with_bytes_salt, with salt as 8 big-endian bytes."""
    return get_msg_key_with_bytes_salt(msg, salt.to_bytes(8, "big", signed=True))