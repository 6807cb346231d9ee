"""Reading and writing DNS messages over stream and datagram transports.

Stream readers may offer read(n) (files) or recv(n) (sockets); writers may
offer sendall (sockets) or write (files).
"""

from __future__ import annotations

from typing import Any

import dns.exception
import dns.message

MIN_MSG_SIZE = 512
MAX_MSG_SIZE = 65535


def _read_full(stream: Any, size: int) -> bytes:
    reader = getattr(stream, "read", None) or stream.recv
    chunks = bytearray()
    while len(chunks) < size:
        chunk = reader(size - len(chunks))
        if not chunk:
            raise EOFError(f"unexpected end of stream after {len(chunks)} of {size} bytes")
        chunks += chunk
    return bytes(chunks)


def _write_all(stream: Any, data: bytes) -> int:
    sendall = getattr(stream, "sendall", None)
    if sendall is not None:
        sendall(data)
        return len(data)
    view = memoryview(data)
    while view:
        written = stream.write(view)
        if written is None:
            break
        view = view[written:]
    return len(data)


def _unpack(data: bytes) -> dns.message.Message:
    try:
        return dns.message.from_wire(data)
    except (dns.exception.DNSException, ValueError) as exc:
        raise ValueError(f"failed to unpack msg [{data.hex()}], {exc}") from exc


def read_raw_msg_from_tcp(stream: Any) -> bytes:
    """Read one length-prefixed (RFC 1035) message and return its payload.

    Raises EOFError on a short read and ValueError on a zero length.
    """
    length = int.from_bytes(_read_full(stream, 2), "big")
    if length == 0:
        raise ValueError("zero length msg")
    return _read_full(stream, length)


def read_msg_from_tcp(stream: Any) -> tuple[dns.message.Message, int]:
    """Read and parse one length-prefixed message.

    Returns the message and the number of bytes read.
    """
    data = read_raw_msg_from_tcp(stream)
    return _unpack(data), len(data) + 2


def write_raw_msg_to_tcp(stream: Any, data: bytes) -> int:
    """Write data with a two-byte length prefix; return the bytes written."""
    if len(data) > MAX_MSG_SIZE:
        raise ValueError(f"payload length {len(data)} is greater than dns max msg size")
    return _write_all(stream, len(data).to_bytes(2, "big") + bytes(data))


def write_msg_to_tcp(stream: Any, msg: dns.message.Message) -> int:
    """Pack msg and write it length-prefixed; return the bytes written."""
    return write_raw_msg_to_tcp(stream, msg.to_wire())


def write_msg_to_udp(sock: Any, msg: dns.message.Message) -> int:
    """Send msg as one datagram; return the bytes sent."""
    data = msg.to_wire()
    send = getattr(sock, "send", None)
    if send is not None:
        return send(data)
    return _write_all(sock, data)


def read_msg_from_udp(sock: Any, buf_size: int = MIN_MSG_SIZE) -> tuple[dns.message.Message, int]:
    """Receive one datagram of up to max(buf_size, 512) bytes and parse it.

    Returns the message and the datagram size.
    """
    size = max(buf_size, MIN_MSG_SIZE)
    reader = getattr(sock, "recv", None) or sock.read
    data = bytes(reader(size))
    return _unpack(data), len(data)