"""EDNS0 helpers: the OPT record, client subnet and padding options."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable

import dns.edns
import dns.message

# The smallest UDP payload size a DNS message must fit in.
MIN_MSG_SIZE = 512

_OPT_RECORD_LEN = 11  # root name, type, class, ttl and rdlength of an OPT RR
_OPTION_HEADER_LEN = 4  # option code and option length

ECS_CODE = dns.edns.OptionType.ECS
PADDING_CODE = dns.edns.OptionType.PADDING


def _options(msg: dns.message.Message) -> list[dns.edns.Option]:
    if msg.edns < 0:
        return []
    return list(msg.options)


def _set_options(msg: dns.message.Message, options: Iterable[dns.edns.Option]) -> None:
    msg.use_edns(
        edns=msg.edns,
        ednsflags=msg.ednsflags,
        payload=msg.payload,
        options=list(options),
    )


def _index_of(options: list[dns.edns.Option], code: int) -> int | None:
    return next((i for i, opt in enumerate(options) if opt.otype == code), None)


def _wire_len(msg: dns.message.Message) -> int:
    return len(msg.to_wire())


def upgrade_edns0(msg: dns.message.Message) -> None:
    """Enable EDNS0 on msg with a UDP payload size of 512.

    msg must not have EDNS0 yet; ValueError is raised otherwise.
    """
    if msg.edns >= 0:
        raise ValueError("message already has an OPT record")
    msg.use_edns(edns=0, payload=MIN_MSG_SIZE, options=[])


def remove_edns0(msg: dns.message.Message) -> None:
    """Remove the OPT record from msg, if any."""
    if msg.edns >= 0:
        msg.use_edns(edns=-1)


def get_edns0_option(msg: dns.message.Message, code: int) -> dns.edns.Option | None:
    """Return the first EDNS0 option of msg with this code, or None."""
    options = _options(msg)
    index = _index_of(options, code)
    return None if index is None else options[index]


def remove_edns0_option(msg: dns.message.Message, code: int) -> None:
    """Remove the first EDNS0 option of msg with this code, if any."""
    options = _options(msg)
    index = _index_of(options, code)
    if index is not None:
        del options[index]
        _set_options(msg, options)


def get_msg_ecs(msg: dns.message.Message) -> dns.edns.Option | None:
    """Return the client subnet option of msg, or None."""
    return get_edns0_option(msg, ECS_CODE)


def remove_msg_ecs(msg: dns.message.Message) -> None:
    """Remove the client subnet option of msg, if any."""
    remove_edns0_option(msg, ECS_CODE)


def add_ecs(msg: dns.message.Message, ecs: dns.edns.Option, overwrite: bool) -> bool:
    """Add a client subnet option to msg.

    EDNS0 is enabled first if msg lacks it. An existing subnet option is
    replaced only when overwrite is true. Returns True if msg had no
    subnet option before.
    """
    if msg.edns < 0:
        upgrade_edns0(msg)
    options = _options(msg)
    index = _index_of(options, ECS_CODE)
    if index is not None:
        if overwrite:
            options[index] = ecs
            _set_options(msg, options)
        return False
    options.append(ecs)
    _set_options(msg, options)
    return True


def new_edns0_subnet(
    ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address, mask: int, v6: bool
) -> dns.edns.ECSOption:
    """Build a client subnet option for a query (scope prefix length 0)."""
    addr = ipaddress.ip_address(ip) if isinstance(ip, str) else ip
    if (addr.version == 6) != v6:
        family = "ipv6" if v6 else "ipv4"
        raise ValueError(f"address {addr} is not an {family} address")
    return dns.edns.ECSOption(str(addr), srclen=mask, scopelen=0)


def _padding(length: int) -> dns.edns.GenericOption:
    return dns.edns.GenericOption(PADDING_CODE, bytes(length))


def pad_to_minimum(msg: dns.message.Message, min_len: int) -> tuple[bool, bool]:
    """Pad msg with an EDNS0 padding option up to min_len wire bytes.

    Nothing happens if msg is already at least min_len long. Returns
    (upgraded, new_padding): whether EDNS0 was enabled on msg, and whether
    the padding option is new to msg.
    """
    length = _wire_len(msg)
    if length >= min_len:
        return False, False

    if msg.edns >= 0:
        options = _options(msg)
        index = _index_of(options, PADDING_CODE)
        if index is not None:
            current = len(options[index].to_wire() or b"")
            padding_len = min_len - length + current
            if padding_len < 0:
                return False, False
            options[index] = _padding(padding_len)
            _set_options(msg, options)
            return False, False
        padding_len = min_len - _OPTION_HEADER_LEN - length
        if padding_len < 0:
            return False, False
        options.append(_padding(padding_len))
        _set_options(msg, options)
        return False, True

    padding_len = min_len - _OPTION_HEADER_LEN - _OPT_RECORD_LEN - length
    if padding_len < 0:
        return False, False
    upgrade_edns0(msg)
    _set_options(msg, [_padding(padding_len)])
    return True, True