"""Conditional chain nodes driven by boolean expressions over matchers."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .chain import (
    ChainNode,
    Matcher,
    QueryContext,
    build_executable_logic_tree,
    exec_chain_node,
    last_node,
    register_section_parser,
)

_log = logging.getLogger(__name__)


@dataclass
class ConditionNodeConfig:
    """Configuration of a condition node.

    if_ is the expression; exec_ and else_exec are chain specs as accepted
    by build_executable_logic_tree.
    """

    if_: str = ""
    exec_: Any = None
    else_exec: Any = None


# Expression syntax tree.

@dataclass(frozen=True)
class _Const:
    value: bool


@dataclass(frozen=True)
class _Var:
    name: str


@dataclass(frozen=True)
class _Not:
    operand: Any


@dataclass(frozen=True)
class _Binary:
    op: str
    left: Any
    right: Any


_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<op>&&|\|\||==|!=|!|\(|\))
    | \[(?P<bracket>[^\]]+)\]
    | (?P<name>[A-Za-z_][A-Za-z0-9_.]*)
    """,
    re.VERBOSE,
)


def _tokenize(text: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ValueError(f"unexpected character {text[pos]!r} at position {pos}")
        pos = m.end()
        kind = m.lastgroup
        if kind == "ws":
            continue
        if kind == "op":
            tokens.append(("op", m.group("op")))
        elif kind == "bracket":
            tokens.append(("name", m.group("bracket")))
        else:
            name = m.group("name")
            if name in ("true", "false"):
                tokens.append(("const", name == "true"))
            else:
                tokens.append(("name", name))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self._tokens = _tokenize(text)
        self._pos = 0
        self.variables: list[str] = []

    def parse(self) -> Any:
        if not self._tokens:
            raise ValueError("empty expression")
        node = self._or()
        if self._pos != len(self._tokens):
            raise ValueError(f"unexpected token {self._tokens[self._pos][1]!r}")
        return node

    def _peek_op(self, *ops: str) -> str | None:
        if self._pos < len(self._tokens):
            kind, value = self._tokens[self._pos]
            if kind == "op" and value in ops:
                return value
        return None

    def _or(self) -> Any:
        node = self._and()
        while self._peek_op("||"):
            self._pos += 1
            node = _Binary("||", node, self._and())
        return node

    def _and(self) -> Any:
        node = self._eq()
        while self._peek_op("&&"):
            self._pos += 1
            node = _Binary("&&", node, self._eq())
        return node

    def _eq(self) -> Any:
        node = self._unary()
        while op := self._peek_op("==", "!="):
            self._pos += 1
            node = _Binary(op, node, self._unary())
        return node

    def _unary(self) -> Any:
        if self._peek_op("!"):
            self._pos += 1
            return _Not(self._unary())
        return self._primary()

    def _primary(self) -> Any:
        if self._pos >= len(self._tokens):
            raise ValueError("unexpected end of expression")
        kind, value = self._tokens[self._pos]
        self._pos += 1
        if kind == "const":
            return _Const(value)
        if kind == "name":
            if value not in self.variables:
                self.variables.append(value)
            return _Var(value)
        if value == "(":
            node = self._or()
            if not self._peek_op(")"):
                raise ValueError("missing closing parenthesis")
            self._pos += 1
            return node
        raise ValueError(f"unexpected token {value!r}")


async def _evaluate(node: Any, lookup: Callable[[str], Awaitable[bool]]) -> bool:
    match node:
        case _Const(value):
            return value
        case _Var(name):
            return await lookup(name)
        case _Not(operand):
            return not await _evaluate(operand, lookup)
        case _Binary("&&", left, right):
            return await _evaluate(left, lookup) and await _evaluate(right, lookup)
        case _Binary("||", left, right):
            return await _evaluate(left, lookup) or await _evaluate(right, lookup)
        case _Binary("==", left, right):
            return (await _evaluate(left, lookup)) == (await _evaluate(right, lookup))
        case _Binary(_, left, right):
            return (await _evaluate(left, lookup)) != (await _evaluate(right, lookup))
    raise TypeError(f"invalid expression node {node!r}")


class ConditionMatcher(Matcher):
    """A matcher that evaluates a boolean expression of matcher tags.

    The expression supports &&, ||, !, ==, !=, parentheses, true/false and
    tags, bare or in brackets. Evaluation short-circuits, and each matcher
    is called at most once per match.
    """

    def __init__(
        self,
        logger: logging.Logger | None,
        expression: str,
        matchers: Mapping[str, Matcher],
    ) -> None:
        self._logger = logger or _log
        self.expression = expression
        parser = _Parser(expression)
        try:
            self._tree = parser.parse()
        except ValueError as exc:
            raise ValueError(f"invalid condition expression {expression!r}: {exc}") from exc
        self._matchers: dict[str, Matcher] = {}
        for tag in parser.variables:
            matcher = matchers.get(tag)
            if matcher is None:
                raise ValueError(f"cannot find matcher {tag}")
            self._matchers[tag] = matcher

    @property
    def variables(self) -> list[str]:
        return list(self._matchers)

    async def match(self, qctx: QueryContext) -> bool:
        results: dict[str, bool] = {}

        async def lookup(name: str) -> bool:
            if name not in results:
                results[name] = bool(await self._matchers[name].match(qctx))
            return results[name]

        result = await _evaluate(self._tree, lookup)
        self._logger.debug("condition matcher result %r: %s, %s", qctx, result, results)
        return result


@dataclass
class ConditionNode:
    """Runs one of two branches depending on a matcher.

    Both branches are linked to whatever follows this node. Without a
    matcher the node just passes on to the next one.
    """

    condition_matcher: Matcher | None = None
    executable_node: ChainNode | None = None
    else_executable_node: ChainNode | None = None
    _next: ChainNode | None = field(default=None, init=False, repr=False)

    def next(self) -> ChainNode | None:
        return self._next

    def link_next(self, node: ChainNode | None) -> None:
        self._next = node
        if self.executable_node is not None:
            last_node(self.executable_node).link_next(node)
        if self.else_executable_node is not None:
            last_node(self.else_executable_node).link_next(node)

    async def execute(self, qctx: QueryContext, next_node: ChainNode | None) -> None:
        if self.condition_matcher is not None:
            try:
                matched = await self.condition_matcher.match(qctx)
            except Exception as exc:
                exc.add_note("matcher failed")
                raise
            if matched and self.executable_node is not None:
                await exec_chain_node(qctx, self.executable_node)
                return
            if not matched and self.else_executable_node is not None:
                await exec_chain_node(qctx, self.else_executable_node)
                return
        await exec_chain_node(qctx, next_node)


def parse_condition_node(
    cfg: ConditionNodeConfig,
    logger: logging.Logger | None,
    execs: Mapping[str, Any] | None,
    matchers: Mapping[str, Any] | None,
) -> ConditionNode:
    """Build a ConditionNode from cfg."""
    logger = logger or _log
    node = ConditionNode(
        condition_matcher=ConditionMatcher(logger.getChild("if"), cfg.if_, matchers or {})
    )
    if cfg.exec_ is not None:
        try:
            node.executable_node = build_executable_logic_tree(
                cfg.exec_, logger.getChild("exec"), execs, matchers
            )
        except (ValueError, TypeError) as exc:
            raise ValueError(f"failed to parse exec command: {exc}") from exc
    if cfg.else_exec is not None:
        try:
            node.else_executable_node = build_executable_logic_tree(
                cfg.else_exec, logger.getChild("else_exec"), execs, matchers
            )
        except (ValueError, TypeError) as exc:
            raise ValueError(f"failed to parse else_exec command: {exc}") from exc
    return node


def _parse_if_section(
    spec: Mapping[str, Any],
    logger: logging.Logger,
    execs: Mapping[str, Any],
    matchers: Mapping[str, Any],
) -> ConditionNode:
    condition = spec.get("if")
    cfg = ConditionNodeConfig(
        if_="" if condition is None else str(condition),
        exec_=spec.get("exec"),
        else_exec=spec.get("else_exec"),
    )
    return parse_condition_node(cfg, logger, execs, matchers)


register_section_parser("if", _parse_if_section)