import logging

import dns.message
import pytest
import yaml

from mosdns.executable_seq.chain import (
    DummyExecutable,
    DummyMatcher,
    QueryContext,
    build_executable_logic_tree,
    exec_chain_node,
    wrap_executable,
)
from mosdns.executable_seq.if_node import (
    ConditionMatcher,
    ConditionNode,
    ConditionNodeConfig,
    parse_condition_node,
)

M_ERR = RuntimeError("mErr")
E_ERR = RuntimeError("eErr")
TARGET = dns.message.Message(id=4321)

MATCHERS = {
    "not_matched": DummyMatcher(matched=False),
    "matched": DummyMatcher(matched=True),
    "match_err": DummyMatcher(matched=False, want_err=M_ERR),
}

EXECS = {
    "exec": DummyExecutable(),
    "exec_target": DummyExecutable(want_r=TARGET),
    "exec_skip": DummyExecutable(want_skip=True),
    "exec_err": DummyExecutable(want_err=E_ERR),
}

CASES = [
    (
        "multiple if",
        """
exec:
- if: matched
  exec: [exec,exec,exec]
- if: matched
  exec: exec_target
""",
        True,
        None,
    ),
    (
        "if else_exec",
        """
exec:
- if: not_matched
  exec: exec_err
  else_exec: exec_target
""",
        True,
        None,
    ),
    (
        "multi if else_exec",
        """
exec:
- if: not_matched
  exec: [exec_err]
  else_exec: [exec]
- if: not_matched
  exec: [exec_err]
  else_exec: [exec_target]
""",
        True,
        None,
    ),
    (
        "nested if",
        """
exec:
- if: matched
  exec:
  - exec
  - exec
  - if: matched
    exec: exec_target
""",
        True,
        None,
    ),
    (
        "if err",
        """
exec:
- if: "not_matched || match_err" # err
  exec: exec
""",
        False,
        M_ERR,
    ),
    (
        "exec err",
        """
exec:
- exec
- exec_err
""",
        False,
        E_ERR,
    ),
    (
        "exec err in if branch",
        """
exec:
- if: matched
  exec:
  - exec
  - exec_err
""",
        False,
        E_ERR,
    ),
    (
        "return in main sequence",
        """
exec:
- exec
- exec_skip
- exec_err  # skipped, should not reach here.
""",
        False,
        None,
    ),
    (
        "early return in if branch",
        """
exec:
- if: matched
  exec:
    - exec_skip
    - exec_err # skipped, should not reach here.
- exec_err
""",
        False,
        None,
    ),
]


@pytest.mark.asyncio
@pytest.mark.parametrize("name, text, want_target, want_err", CASES, ids=[c[0] for c in CASES])
async def test_sequences(name, text, want_target, want_err):
    spec = yaml.safe_load(text)["exec"]
    node = build_executable_logic_tree(spec, logging.getLogger("test"), EXECS, MATCHERS)
    qctx = QueryContext(dns.message.Message())
    if want_err is not None:
        with pytest.raises(RuntimeError) as info:
            await exec_chain_node(qctx, node)
        assert info.value is want_err
    else:
        await exec_chain_node(qctx, node)
    assert (qctx.response is TARGET) == want_target


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "expression, expected",
    [
        ("matched && !not_matched", True),
        ("(not_matched || matched) && not_matched", False),
        ("matched == not_matched", False),
        ("matched != not_matched", True),
        ("[matched] && true", True),
        ("matched || match_err", True),
        ("!!matched", True),
    ],
)
async def test_condition_matcher_expressions(expression, expected):
    cm = ConditionMatcher(None, expression, MATCHERS)
    assert await cm.match(QueryContext(dns.message.Message())) is expected


def test_condition_matcher_unknown_tag():
    with pytest.raises(ValueError, match="cannot find matcher missing"):
        ConditionMatcher(None, "matched && missing", MATCHERS)


@pytest.mark.parametrize("expression", ["", "matched &&", "(matched", "matched matched", "matched + 1"])
def test_condition_matcher_syntax_errors(expression):
    with pytest.raises(ValueError):
        ConditionMatcher(None, expression, MATCHERS)


def test_condition_matcher_variables():
    cm = ConditionMatcher(None, "matched || not_matched || matched", MATCHERS)
    assert cm.variables == ["matched", "not_matched"]


@pytest.mark.asyncio
async def test_matcher_error_carries_note():
    node = ConditionNode(condition_matcher=DummyMatcher(want_err=M_ERR))
    with pytest.raises(RuntimeError) as info:
        await node.execute(QueryContext(dns.message.Message()), None)
    assert info.value is M_ERR
    assert "matcher failed" in info.value.__notes__


@pytest.mark.asyncio
async def test_node_without_matcher_runs_next():
    node = ConditionNode()
    qctx = QueryContext(dns.message.Message())
    await node.execute(qctx, wrap_executable(EXECS["exec_target"]))
    assert qctx.response is TARGET


@pytest.mark.asyncio
async def test_parse_condition_node_else_branch():
    cfg = ConditionNodeConfig(if_="not_matched", exec_="exec_err", else_exec=["exec_target"])
    node = parse_condition_node(cfg, None, EXECS, MATCHERS)
    qctx = QueryContext(dns.message.Message())
    await exec_chain_node(qctx, node)
    assert qctx.response is TARGET


def test_parse_condition_node_bad_exec():
    cfg = ConditionNodeConfig(if_="matched", exec_="missing")
    with pytest.raises(ValueError, match="failed to parse exec command"):
        parse_condition_node(cfg, None, EXECS, MATCHERS)


def test_link_next_reaches_branch_tails():
    cfg = ConditionNodeConfig(if_="matched", exec_=["exec", "exec"], else_exec="exec")
    node = parse_condition_node(cfg, None, EXECS, MATCHERS)
    follower = wrap_executable(EXECS["exec_target"])
    node.link_next(follower)
    assert node.next() is follower
    assert node.executable_node.next().next() is follower
    assert node.else_executable_node.next() is follower