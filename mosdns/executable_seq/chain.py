"""Executable chains: nodes, matchers and the builder that links them."""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import dns.message

_log = logging.getLogger(__name__)
_query_ids = itertools.count(1)


class QueryContext:
    """A query in flight and the response chosen for it so far."""

    def __init__(self, query: dns.message.Message) -> None:
        self.query = query
        self.response: dns.message.Message | None = None
        self.id = next(_query_ids)

    def copy(self) -> QueryContext:
        """Return a context with a copy of the query and the same response."""
        dup = QueryContext.__new__(QueryContext)
        dup.query = copy.deepcopy(self.query)
        dup.response = self.response
        dup.id = self.id
        return dup

    def __repr__(self) -> str:
        question = self.query.question[0] if self.query is not None and self.query.question else None
        return f"QueryContext(id={self.id}, question={question})"


class NoResponseError(Exception):
    """None of the concurrent sequences produced a response."""

    def __init__(self, message: str = "no response") -> None:
        super().__init__(message)


class Executable(ABC):
    """Something that acts on a query and then runs the rest of the chain."""

    @abstractmethod
    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        """Act on qctx; call exec_chain_node(qctx, next_node) to continue."""


class Matcher(ABC):
    """Tests a query for some pattern."""

    @abstractmethod
    async def match(self, qctx: QueryContext) -> bool:
        """Return whether qctx matches."""


@runtime_checkable
class ChainNode(Protocol):
    """An executable that is also a node of a singly linked chain."""

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None: ...

    def next(self) -> ChainNode | None: ...

    def link_next(self, node: ChainNode | None) -> None: ...


class NodeLinker:
    """The link to the following node of a chain."""

    _next: ChainNode | None = None

    def next(self) -> ChainNode | None:
        return self._next

    def link_next(self, node: ChainNode | None) -> None:
        self._next = node


class ExecutableNodeWrapper(NodeLinker):
    """Makes a plain executable a chain node."""

    def __init__(self, executable: Any) -> None:
        self.executable = executable

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        await self.executable.execute(qctx, next_node)

    def __repr__(self) -> str:
        return f"ExecutableNodeWrapper({self.executable!r})"


def wrap_executable(executable: Any) -> ChainNode:
    """Return executable itself if it is a chain node, else a wrapper."""
    if isinstance(executable, ChainNode):
        return executable
    return ExecutableNodeWrapper(executable)


def last_node(node: ChainNode) -> ChainNode:
    """Return the last node of the chain starting at node."""
    while (following := node.next()) is not None:
        node = following
    return node


async def exec_chain_node(qctx: QueryContext, node: ChainNode | None) -> None:
    """Run the chain starting at node; a no-op for None."""
    if node is None:
        return
    await node.execute(qctx, node.next())


_background: set[asyncio.Future] = set()


def _settle(fut: asyncio.Future) -> None:
    _background.discard(fut)
    if not fut.cancelled():
        fut.exception()


async def wait_first_response(
    qctx: QueryContext,
    logger: logging.Logger | None,
    tasks: Iterable[Awaitable[QueryContext | None]],
) -> None:
    """Wait for the first of tasks that yields a context with a response.

    Each task resolves to a QueryContext (usually a copy of qctx) or to
    None when it has nothing to report. Its position in tasks numbers it
    in the logs. The winning response is set on qctx; tasks still running
    are left to finish on their own. Raises NoResponseError if none of
    them produced a response.
    """
    logger = logger or _log
    index: dict[asyncio.Future, int] = {}
    for i, task in enumerate(tasks):
        fut = asyncio.ensure_future(task)
        index[fut] = i
        _background.add(fut)
        fut.add_done_callback(_settle)

    pending = set(index)
    while pending:
        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        for fut in sorted(done, key=index.__getitem__):
            seq = index[fut]
            if fut.cancelled():
                logger.warning("sequence cancelled, %r, sequence %d", qctx, seq)
                continue
            exc = fut.exception()
            if exc is not None:
                logger.warning("sequence failed, %r, sequence %d: %s", qctx, seq, exc)
                continue
            result = fut.result()
            if result is None:
                continue
            if result.response is not None:
                logger.debug("sequence returned a response, %r, sequence %d", qctx, seq)
                qctx.response = result.response
                return
            logger.debug("sequence returned with an empty response, %r, sequence %d", qctx, seq)
    raise NoResponseError()


async def logical_and_matcher_group(qctx: QueryContext, matchers: Iterable[Matcher]) -> bool:
    """Return True if every matcher matches; False for an empty group."""
    matchers = list(matchers)
    if not matchers:
        return False
    for matcher in matchers:
        if not await matcher.match(qctx):
            return False
    return True


SectionParser = Callable[
    [Mapping[str, Any], logging.Logger, Mapping[str, Any], Mapping[str, Any]],
    ChainNode,
]

# Sections are recognised by these keys first, in this order.
_SECTION_PRIORITY = ("if", "if_and", "parallel", "load_balance", "primary", "secondary")
_section_parsers: dict[str, SectionParser] = {}
_builtins_loaded = False


def register_section_parser(key: str, parser: SectionParser) -> None:
    """Register parser for mapping sections that contain key.

    parser(section, logger, execs, matchers) returns a chain node. Raises
    ValueError if key already has a parser.
    """
    if key in _section_parsers:
        raise ValueError(f"duplicate section parser for key {key}")
    _section_parsers[key] = parser


def _load_builtin_sections() -> None:
    global _builtins_loaded
    if _builtins_loaded:
        return
    _builtins_loaded = True
    from . import fallback, if_node, load_balance, parallel  # noqa: F401


def _find_section(spec: Mapping[str, Any]) -> tuple[str, SectionParser] | None:
    keys = [k for k in _SECTION_PRIORITY if k in spec]
    keys += [k for k in spec if k not in _SECTION_PRIORITY]
    for key in keys:
        parser = _section_parsers.get(key)
        if parser is not None:
            return key, parser
    return None


def _is_executable(obj: Any) -> bool:
    return callable(getattr(obj, "execute", None))


def build_executable_logic_tree(
    spec: Any,
    logger: logging.Logger | None,
    execs: Mapping[str, Any] | None,
    matchers: Mapping[str, Any] | None,
) -> ChainNode | None:
    """Build a linked chain from spec and return its first node.

    spec may be a chain node, an executable, the tag of an executable in
    execs, a mapping section (if, parallel, load_balance, fallback or any
    registered one), or a list of these, which are linked in order. An
    empty list gives None. Raises ValueError for unknown tags or sections
    and TypeError for other kinds of spec.
    """
    logger = logger or _log
    execs = execs or {}
    matchers = matchers or {}

    if isinstance(spec, ChainNode):
        return spec
    if _is_executable(spec):
        return wrap_executable(spec)
    if isinstance(spec, str):
        executable = execs.get(spec)
        if executable is None:
            raise ValueError(f"can not find executable {spec}")
        return wrap_executable(executable)
    if isinstance(spec, (list, tuple)):
        root: ChainNode | None = None
        tail: ChainNode | None = None
        for i, elem in enumerate(spec):
            try:
                node = build_executable_logic_tree(
                    elem, logger.getChild(f"node_{i}"), execs, matchers
                )
            except (ValueError, TypeError) as exc:
                raise type(exc)(f"invalid cmd at #{i}: {exc}") from exc
            if node is None:
                continue
            if root is None:
                root = node
            if tail is not None:
                tail.link_next(node)
            tail = node
        return root
    if isinstance(spec, Mapping):
        found = _find_section(spec)
        if found is None:
            _load_builtin_sections()
            found = _find_section(spec)
        if found is None:
            raise ValueError("unknown section")
        key, parser = found
        try:
            return parser(spec, logger, execs, matchers)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"invalid {key} section: {exc}") from exc
    raise TypeError(f"unexpected type: {type(spec).__name__}")


@dataclass
class DummyMatcher(Matcher):
    """A matcher with a fixed result or error."""

    matched: bool = False
    want_err: BaseException | None = None

    async def match(self, qctx: QueryContext) -> bool:
        if self.want_err is not None:
            raise self.want_err
        return self.matched


@dataclass
class DummyExecutable(Executable):
    """An executable with a fixed delay, response, error or early stop."""

    want_skip: bool = False
    want_sleep: float = 0.0
    want_r: dns.message.Message | None = None
    want_err: BaseException | None = None

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        if self.want_sleep:
            await asyncio.sleep(self.want_sleep)
        if self.want_skip:
            return
        if self.want_err is not None:
            raise self.want_err
        if self.want_r is not None:
            qctx.response = self.want_r
        await exec_chain_node(qctx, next_node)