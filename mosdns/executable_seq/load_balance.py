"""A chain node that spreads queries over its branches round robin."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .chain import (
    ChainNode,
    QueryContext,
    build_executable_logic_tree,
    exec_chain_node,
    last_node,
    register_section_parser,
)

_log = logging.getLogger(__name__)


@dataclass
class LBConfig:
    """Configuration of a load balance node: one chain spec per branch."""

    load_balance: list[Any] = field(default_factory=list)


class LBNode:
    """Runs one branch per query, rotating through them.

    Every branch is linked to whatever follows this node. Without
    branches the node passes on to the next one.
    """

    def __init__(self, branches: Sequence[ChainNode]) -> None:
        self._branches = list(branches)
        self._next: ChainNode | None = None
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> ChainNode | None:
        return self._next

    def link_next(self, node: ChainNode | None) -> None:
        self._next = node
        for branch in self._branches:
            last_node(branch).link_next(node)

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        if not self._branches:
            await exec_chain_node(qctx, next_node)
            return
        with self._lock:
            index = next(self._counter) % len(self._branches)
        try:
            await exec_chain_node(qctx, self._branches[index])
        except Exception as exc:
            exc.add_note(f"command sequence #{index}")
            raise


def parse_lb_node(
    cfg: LBConfig,
    logger: logging.Logger | None,
    execs: Mapping[str, Any] | None,
    matchers: Mapping[str, Any] | None,
) -> LBNode:
    """Build an LBNode from cfg."""
    logger = logger or _log
    branches: list[ChainNode] = []
    for i, spec in enumerate(cfg.load_balance):
        try:
            branch = build_executable_logic_tree(
                spec, logger.getChild(f"lb_seq_{i}"), execs, matchers
            )
        except (ValueError, TypeError) as exc:
            raise ValueError(f"invalid load balance command #{i}: {exc}") from exc
        if branch is None:
            raise ValueError(f"invalid load balance command #{i}: empty sequence")
        branches.append(branch)
    return LBNode(branches)


def _parse_lb_section(
    spec: Mapping[str, Any],
    logger: logging.Logger,
    execs: Mapping[str, Any],
    matchers: Mapping[str, Any],
) -> LBNode:
    branches = spec.get("load_balance")
    if branches is None:
        branches = []
    if not isinstance(branches, list):
        raise TypeError("load_balance must be a list")
    return parse_lb_node(LBConfig(load_balance=branches), logger, execs, matchers)


register_section_parser("load_balance", _parse_lb_section)