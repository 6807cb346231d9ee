"""Building blocks for a DNS forwarder: caches, hosts lookup, EDNS0 helpers, data providers and query sequences."""

__version__ = "0.1.0"