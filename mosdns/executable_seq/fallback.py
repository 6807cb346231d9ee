"""A chain node that falls back to a secondary sequence when the primary fails."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .chain import (
    ChainNode,
    QueryContext,
    build_executable_logic_tree,
    exec_chain_node,
    register_section_parser,
    wait_first_response,
    wrap_executable,
)
from .parallel import DEFAULT_PARALLEL_TIMEOUT

_log = logging.getLogger(__name__)


@dataclass
class FallbackConfig:
    """Configuration of a fallback node.

    primary and secondary are chain specs. A zero stat_length disables the
    normal fallback; fast_fallback is in milliseconds, zero disables it.
    always_standby makes the secondary run at once in fast fallback mode.
    """

    primary: Any = None
    secondary: Any = None
    stat_length: int = 0
    threshold: int = 0
    fast_fallback: int = 0
    always_standby: bool = False


class StatusTracker:
    """Counts failures among the last stat_length results of the primary."""

    def __init__(self, threshold: int, stat_length: int) -> None:
        if stat_length <= 0:
            raise ValueError(f"invalid stat length {stat_length}")
        self._lock = threading.Lock()
        self._threshold = threshold
        self._status = [0] * stat_length
        self._pos = 0
        self._successes = stat_length
        self._failures = 0

    def good(self) -> bool:
        """Whether the failures in the window are below the threshold."""
        with self._lock:
            return self._failures < self._threshold

    def update(self, status: int) -> None:
        """Record a result: 0 for success, anything else for failure."""
        failed = 1 if status else 0
        with self._lock:
            if failed:
                self._failures += 1
            else:
                self._successes += 1
            if self._pos >= len(self._status):
                self._pos = 0
            if self._status[self._pos]:
                self._failures -= 1
            else:
                self._successes -= 1
            self._status[self._pos] = failed
            self._pos += 1


async def _wait_flag(event: asyncio.Event, timeout: float) -> None:
    if event.is_set():
        return
    try:
        await asyncio.wait_for(event.wait(), max(timeout, 0.0))
    except TimeoutError:
        pass


@dataclass
class FallbackNode:
    """Runs the primary sequence and falls back to the secondary one.

    Normal fallback: once the primary has failed too often, both sequences
    run together and the first response wins. Fast fallback: the secondary
    is started when the primary fails or is slower than fast_fallback
    seconds.
    """

    primary: ChainNode | None
    secondary: ChainNode | None
    fast_fallback: float = 0.0
    always_standby: bool = False
    primary_st: StatusTracker | None = None
    logger: logging.Logger = field(default=_log)

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        await self._exec(qctx)
        await exec_chain_node(qctx, next_node)

    async def _exec(self, qctx: QueryContext) -> None:
        if self.primary_st is None or self.primary_st.good():
            if self.fast_fallback > 0:
                await self._do_fast_fallback(qctx)
            else:
                await self._do_primary(qctx)
            return
        self.logger.debug("primary is not good, %r", qctx)
        await self._do_fallback(qctx)

    async def _do_primary(self, qctx: QueryContext) -> None:
        try:
            await exec_chain_node(qctx, self.primary)
        except BaseException:
            if self.primary_st is not None:
                self.primary_st.update(1)
            raise
        if self.primary_st is not None:
            self.primary_st.update(0 if qctx.response is not None else 1)

    async def _do_secondary(self, qctx: QueryContext) -> None:
        await exec_chain_node(qctx, self.secondary)

    async def _do_fast_fallback(self, qctx: QueryContext) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.fast_fallback
        primary_finished = asyncio.Event()
        primary_ok = False

        async def run_primary() -> QueryContext:
            nonlocal primary_ok
            qctx_p = qctx.copy()
            try:
                await asyncio.wait_for(self._do_primary(qctx_p), DEFAULT_PARALLEL_TIMEOUT)
            except BaseException:
                primary_finished.set()
                raise
            primary_ok = qctx_p.response is not None
            primary_finished.set()
            return qctx_p

        async def run_secondary() -> QueryContext | None:
            if not self.always_standby:
                await _wait_flag(primary_finished, deadline - loop.time())
                if primary_ok:
                    return None
            qctx_s = qctx.copy()
            await asyncio.wait_for(self._do_secondary(qctx_s), DEFAULT_PARALLEL_TIMEOUT)
            if self.always_standby:
                await _wait_flag(primary_finished, deadline - loop.time())
                if primary_ok:
                    return None
            return qctx_s

        await wait_first_response(qctx, self.logger, [run_primary(), run_secondary()])

    async def _do_fallback(self, qctx: QueryContext) -> None:
        async def run_primary() -> QueryContext:
            qctx_p = qctx.copy()
            await asyncio.wait_for(self._do_primary(qctx_p), DEFAULT_PARALLEL_TIMEOUT)
            return qctx_p

        async def run_secondary() -> QueryContext:
            qctx_s = qctx.copy()
            await asyncio.wait_for(self._do_secondary(qctx_s), DEFAULT_PARALLEL_TIMEOUT)
            return qctx_s

        await wait_first_response(qctx, self.logger, [run_primary(), run_secondary()])


def parse_fallback_node(
    cfg: FallbackConfig,
    logger: logging.Logger | None,
    execs: Mapping[str, Any] | None,
    matchers: Mapping[str, Any] | None,
) -> FallbackNode:
    """Build a FallbackNode from cfg.

    A threshold larger than stat_length is lowered to stat_length.
    """
    if cfg.primary is None:
        raise ValueError("primary is empty")
    if cfg.secondary is None:
        raise ValueError("secondary is empty")
    logger = logger or _log

    try:
        primary = build_executable_logic_tree(
            cfg.primary, logger.getChild("primary"), execs, matchers
        )
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid primary sequence: {exc}") from exc
    try:
        secondary = build_executable_logic_tree(
            cfg.secondary, logger.getChild("secondary"), execs, matchers
        )
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid secondary sequence: {exc}") from exc

    tracker = None
    if cfg.stat_length > 0:
        if cfg.threshold > cfg.stat_length:
            cfg.threshold = cfg.stat_length
        tracker = StatusTracker(cfg.threshold, cfg.stat_length)

    return FallbackNode(
        primary=primary,
        secondary=secondary,
        fast_fallback=cfg.fast_fallback / 1000.0,
        always_standby=cfg.always_standby,
        primary_st=tracker,
        logger=logger,
    )


_TRUE_WORDS = {"1", "t", "true"}
_FALSE_WORDS = {"0", "f", "false", ""}


def _int_field(spec: Mapping[str, Any], key: str) -> int:
    value = spec.get(key)
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid {key}: {value!r}") from exc


def _bool_field(spec: Mapping[str, Any], key: str) -> bool:
    value = spec.get(key)
    if value is None:
        return False
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"invalid {key}: {value!r}")
    return bool(value)


def _parse_fallback_section(
    spec: Mapping[str, Any],
    logger: logging.Logger,
    execs: Mapping[str, Any],
    matchers: Mapping[str, Any],
) -> ChainNode:
    cfg = FallbackConfig(
        primary=spec.get("primary"),
        secondary=spec.get("secondary"),
        stat_length=_int_field(spec, "stat_length"),
        threshold=_int_field(spec, "threshold"),
        fast_fallback=_int_field(spec, "fast_fallback"),
        always_standby=_bool_field(spec, "always_standby"),
    )
    return wrap_executable(parse_fallback_node(cfg, logger, execs, matchers))


register_section_parser("primary", _parse_fallback_section)
register_section_parser("secondary", _parse_fallback_section)