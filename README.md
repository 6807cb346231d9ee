# mosdns

Building blocks for a DNS forwarder. The package holds the pieces that sit
between a DNS listener and its upstreams: an in-memory and a Redis response
cache, a hosts-table resolver, EDNS0 helpers, wire I/O for DNS messages,
file-backed data providers, logger set-up, and a small language for chaining
asynchronous query handlers into sequences with conditions, load balancing,
parallel execution and fallback.

DNS messages are `dns.message.Message` objects from dnspython, the only
runtime dependency. Python 3.11 or later is required.

## Modules

| Module | Purpose |
| --- | --- |
| `mosdns.linked_list` | `LinkedList` of `Elem` objects, with removal of a known element via `pop_elem`. |
| `mosdns.lru` | `LRU`, a size-bounded least-recently-used map with an optional eviction callback. |
| `mosdns.concurrent_lru` | `ConcurrentLRU`, an `LRU` behind a lock, and `ShardedLRU`, which spreads keys over several of them. |
| `mosdns.ext_exec` | `get_output_from_cmd` runs an external command and returns its standard output. |
| `mosdns.cache` | `Backend`, the interface of cache backends, and `CacheItem`, what `get` returns. |
| `mosdns.mem_cache` | `MemCache`, an in-memory backend with a background cleaner thread. |
| `mosdns.redis_cache` | `RedisCache` on a Redis client you supply, configured by `RedisCacheOpts`; `batch_store` of `KV` entries; `pack_redis_data` / `unpack_redis_value`. |
| `mosdns.dnsutils.edns0` | Enable or remove EDNS0; get, add and remove options, client subnet (ECS) options and padding (`pad_to_minimum`). |
| `mosdns.dnsutils.msg` | TTL helpers, empty replies with a fake SOA, byte-string cache keys for messages. |
| `mosdns.dnsutils.net_io` | Read and write DNS messages over streams (two-byte length prefix) and datagrams. |
| `mosdns.hosts` | `Hosts` answers IN A/AAAA queries from a matcher of `IPs`; `parse_ips` parses hosts-style lines. |
| `mosdns.executable_seq.chain` | `QueryContext`, `Executable`, `Matcher`, `build_executable_logic_tree`, `exec_chain_node`, `wait_first_response`, `register_section_parser`, and the test doubles `DummyExecutable` and `DummyMatcher`. |
| `mosdns.executable_seq.if_node` | `if` sections: `ConditionMatcher`, `ConditionNode`, `parse_condition_node`. |
| `mosdns.executable_seq.load_balance` | `load_balance` sections: `LBNode` rotates through its branches. |
| `mosdns.executable_seq.parallel` | `parallel` sections: `ParallelNode` runs all branches and keeps the first response. |
| `mosdns.executable_seq.fallback` | `primary`/`secondary` sections: `FallbackNode` with `StatusTracker`. |
| `mosdns.data_provider` | `DataProvider` reads a file, optionally polls it for changes and pushes reloads to `DataListener`s; `DataManager` keeps providers by name. |
| `mosdns.mlog` | `new_logger(LogConfig)`, `get_logger`, `set_level`, `parse_level`. |

## Install

Install from a checkout with your usual packaging tool. The `test` extra adds
pytest, pytest-asyncio and PyYAML for running the test suite.

## Examples

A bounded LRU map:

```python
from mosdns.lru import LRU

lru = LRU(max_size=2, on_evict=None)
lru.add("a", 1)
lru.add("b", 2)
lru.add("c", 3)          # "a" is evicted
assert "a" not in lru
assert lru.get("c", None) == 3
assert len(lru) == 2
```

Answering from a hosts table. `Hosts` takes any object with a
`match(fqdn)` method that returns `IPs` or `None`; the fqdn it is given ends
with a dot:

```python
import dns.message
from mosdns.hosts import Hosts, parse_ips

class Table:
    def __init__(self, lines):
        self._entries = dict(parse_ips(line) for line in lines)

    def match(self, fqdn):
        return self._entries.get(fqdn.rstrip("."))

hosts = Hosts(Table(["dns.google 8.8.8.8 8.8.4.4 2001:4860:4860::8888"]))
reply = hosts.lookup_msg(dns.message.make_query("dns.google.", "A"))
assert [rd.to_text() for rd in reply.answer[0]] == ["8.8.8.8", "8.8.4.4"]
```

An executable sequence. Sequences are built from plain data, such as loaded
YAML, and run with asyncio:

```python
import asyncio
import dns.message
from mosdns.executable_seq.chain import (
    DummyExecutable, DummyMatcher, QueryContext,
    build_executable_logic_tree, exec_chain_node,
)

query = dns.message.make_query("example.com.", "A")
answer = dns.message.make_response(query)
execs = {"local": DummyExecutable(want_r=answer), "remote": DummyExecutable()}
matchers = {"is_local": DummyMatcher(matched=True)}

chain = build_executable_logic_tree(
    [{"if": "is_local", "exec": ["local"], "else_exec": ["remote"]}],
    None, execs, matchers,
)
qctx = QueryContext(query)
asyncio.run(exec_chain_node(qctx, chain))
assert qctx.response is answer
```

A spec may be an executable, the tag of one in `execs`, a list (linked in
order), or a mapping section keyed by `if`, `parallel`, `load_balance`,
`primary`/`secondary`, or any key added with `register_section_parser`.
Condition expressions accept `&&`, `||`, `!`, `==`, `!=`, parentheses,
`true`/`false` and matcher tags, bare or in brackets; evaluation
short-circuits and calls each matcher at most once.

## Behaviour worth knowing

- `LRU` and its concurrent variants move an entry to the newest position on
  every successful `get`. `pop_oldest` on an empty `LRU` raises `KeyError`.
- `MemCache` keeps at least 16 entries in each of its 64 shards, refuses
  entries whose expiration time has already passed and drops expired entries
  every `cleaner_interval` seconds (60 when not positive).
- `RedisCache` never raises on client errors: it logs them, disables itself
  and pings Redis in the background with growing backoff until it answers.
- A `ParallelNode` and a `FallbackNode` raise `NoResponseError` when no branch
  produced a response; each branch is bounded by 5 seconds.
- A fallback node runs both sequences together once the primary has failed
  `threshold` times within its last `stat_length` results; with
  `fast_fallback` (milliseconds) it starts the secondary when the primary
  fails or is slower than that.
- `DataProvider` notices file changes by polling and reloads one second after
  the last change; `reload()` does it on demand.

## What the package does not do

It is a library of parts, not a running forwarder. It has no command-line
program, opens no listening sockets and has no configuration-file loader that
starts servers. It does not send queries to upstream resolvers, has no
per-client rate limiter, and ships no domain-rule matcher for `Hosts`: you
supply the matcher object yourself.