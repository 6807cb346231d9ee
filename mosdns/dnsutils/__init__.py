"""Helpers for DNS messages: EDNS0 options, TTLs, cache keys and wire I/O."""