"""A node that runs its branches concurrently and keeps the first response."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
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

_log = logging.getLogger(__name__)

DEFAULT_PARALLEL_TIMEOUT = 5.0


@dataclass
class ParallelConfig:
    """Configuration of a parallel node: one chain spec per branch."""

    parallel: list[Any] = field(default_factory=list)


async def _run_branch(
    qctx: QueryContext, branch: ChainNode | None, timeout: float
) -> QueryContext:
    await asyncio.wait_for(exec_chain_node(qctx, branch), timeout)
    return qctx


class ParallelNode:
    """Runs every branch on its own copy of the query.

    The first response wins; NoResponseError is raised if no branch gives
    one. Each branch is bounded by timeout seconds (5 when not positive).
    """

    def __init__(
        self,
        branches: Sequence[ChainNode | None],
        logger: logging.Logger | None = None,
        timeout: float = 0.0,
    ) -> None:
        self._branches = list(branches)
        self._logger = logger or _log
        self._timeout = timeout

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        await self._exec(qctx)
        await exec_chain_node(qctx, next_node)

    async def _exec(self, qctx: QueryContext) -> None:
        if not self._branches:
            return
        timeout = self._timeout if self._timeout > 0 else DEFAULT_PARALLEL_TIMEOUT
        await wait_first_response(
            qctx,
            self._logger,
            [_run_branch(qctx.copy(), branch, timeout) for branch in self._branches],
        )


def parse_parallel_node(
    cfg: ParallelConfig,
    logger: logging.Logger | None,
    execs: Mapping[str, Any] | None,
    matchers: Mapping[str, Any] | None,
) -> ParallelNode:
    """Build a ParallelNode from cfg."""
    logger = logger or _log
    branches: list[ChainNode | None] = []
    for i, spec in enumerate(cfg.parallel):
        try:
            branches.append(
                build_executable_logic_tree(
                    spec, logger.getChild(f"parallel_seq_{i}"), execs, matchers
                )
            )
        except (ValueError, TypeError) as exc:
            raise ValueError(f"invalid parallel command at index {i}: {exc}") from exc
    return ParallelNode(branches, logger)


def _parse_parallel_section(
    spec: Mapping[str, Any],
    logger: logging.Logger,
    execs: Mapping[str, Any],
    matchers: Mapping[str, Any],
) -> ChainNode:
    branches = spec.get("parallel")
    if branches is None:
        branches = []
    if not isinstance(branches, list):
        raise TypeError("parallel must be a list")
    node = parse_parallel_node(ParallelConfig(parallel=branches), logger, execs, matchers)
    return wrap_executable(node)


register_section_parser("parallel", _parse_parallel_section)