import asyncio
import time

import dns.message
import pytest

from mosdns.executable_seq.chain import (
    DummyExecutable,
    NoResponseError,
    QueryContext,
    build_executable_logic_tree,
    exec_chain_node,
    wrap_executable,
)
from mosdns.executable_seq.fallback import (
    FallbackConfig,
    StatusTracker,
    parse_fallback_node,
)


@pytest.mark.parametrize(
    "statuses, want_good",
    [
        ([], True),
        ([0], True),
        ([0, 0], True),
        ([0, 0, 0], True),
        ([1, 1], True),
        ([1, 1, 1], False),
        ([1, 1, 1, 0], False),
        ([1, 1, 1, 0, 0], True),
        ([1, 1, 1, 1, 1, 1, 0, 0], True),
        ([0, 0, 0, 0, 0, 1, 1, 1], False),
    ],
)
def test_status_tracker(statuses, want_good):
    tracker = StatusTracker(3, 4)
    for status in statuses:
        tracker.update(status)
    assert tracker.good() is want_good


def test_status_tracker_rejects_empty_window():
    with pytest.raises(ValueError):
        StatusTracker(1, 0)


@pytest.mark.asyncio
async def test_normal_fallback_sequence():
    r1 = dns.message.Message()
    r2 = dns.message.Message()
    er = RuntimeError("")

    cases = [
        ("failed 0", None, er, r2, None, None, True),
        ("failed 1", None, er, r2, None, None, True),
        ("failed 2", None, er, r2, None, r2, False),
        ("failed 3", None, None, r2, None, r2, False),
        ("primary success", r1, None, None, None, r1, False),
        ("success 1 failed 2", r1, None, None, None, r1, False),
        ("success 2 failed 1", None, er, None, None, None, True),
        ("no response", None, er, None, er, None, True),
    ]
    p1 = DummyExecutable()
    p2 = DummyExecutable()
    conf = FallbackConfig(
        primary=["p1"],
        secondary=["p2"],
        stat_length=2,
        threshold=3,
        fast_fallback=0,
        always_standby=False,
    )
    node = parse_fallback_node(conf, None, {"p1": p1, "p2": p2}, None)

    for name, res1, err1, res2, err2, want_r, want_err in cases:
        p1.want_r, p1.want_err = res1, err1
        p2.want_r, p2.want_err = res2, err2
        qctx = QueryContext(dns.message.Message())
        if want_err:
            with pytest.raises((RuntimeError, NoResponseError)):
                await exec_chain_node(qctx, wrap_executable(node))
        else:
            await exec_chain_node(qctx, wrap_executable(node))
        assert qctx.response is want_r, name
        await asyncio.sleep(0.02)


FAST_CASES = [
    ("p succeed", "r1", False, 50, "r2", False, 0, False, 70, "r1", False),
    ("p failed", None, True, 0, "r2", False, 0, False, 20, "r2", False),
    ("p timeout", "r1", False, 200, "r2", False, 0, False, 120, "r2", False),
    ("p timeout, s failed", "r1", False, 200, None, True, 0, False, 220, "r1", False),
    ("all timeout", "r1", False, 400, "r2", False, 400, False, 320, None, True),
    ("always standby p succeed", "r1", False, 50, "r2", False, 0, True, 70, "r1", False),
    ("always standby p failed", None, True, 50, "r2", False, 50, True, 70, "r2", False),
    ("always standby p timeout", "r1", False, 200, "r2", False, 50, True, 120, "r2", False),
    ("always standby p timeout, s failed", "r1", False, 200, None, True, 0, True, 220, "r1", False),
    ("always standby all timeout", "r1", False, 400, "r2", False, 400, True, 320, None, True),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name, r1_name, e1, l1, r2_name, e2, l2, always_standby, want_latency, want_name, want_err",
    FAST_CASES,
    ids=[case[0] for case in FAST_CASES],
)
async def test_fast_fallback(
    name, r1_name, e1, l1, r2_name, e2, l2, always_standby, want_latency, want_name, want_err
):
    msgs = {"r1": dns.message.Message(), "r2": dns.message.Message(), None: None}
    er = RuntimeError("")
    execs = {
        "p1": DummyExecutable(want_sleep=l1 / 1000, want_r=msgs[r1_name], want_err=er if e1 else None),
        "p2": DummyExecutable(want_sleep=l2 / 1000, want_r=msgs[r2_name], want_err=er if e2 else None),
    }
    conf = FallbackConfig(
        primary=["p1"],
        secondary=["p2"],
        stat_length=0,
        threshold=0,
        fast_fallback=100,
        always_standby=always_standby,
    )
    node = parse_fallback_node(conf, None, execs, None)

    qctx = QueryContext(dns.message.Message())
    start = time.monotonic()
    got_err = False
    try:
        await asyncio.wait_for(exec_chain_node(qctx, wrap_executable(node)), 0.3)
    except (TimeoutError, RuntimeError, NoResponseError):
        got_err = True
    elapsed_ms = (time.monotonic() - start) * 1000

    assert elapsed_ms <= want_latency
    assert got_err is want_err
    assert qctx.response is msgs[want_name]


def test_parse_requires_primary_and_secondary():
    with pytest.raises(ValueError, match="primary is empty"):
        parse_fallback_node(FallbackConfig(secondary=["p2"]), None, {}, None)
    with pytest.raises(ValueError, match="secondary is empty"):
        parse_fallback_node(FallbackConfig(primary=["p1"]), None, {}, None)


def test_parse_rejects_unknown_executable():
    with pytest.raises(ValueError, match="invalid primary sequence"):
        parse_fallback_node(
            FallbackConfig(primary=["missing"], secondary=["p2"]),
            None,
            {"p2": DummyExecutable()},
            None,
        )


@pytest.mark.asyncio
async def test_section_continues_with_next_node():
    r2 = dns.message.Message()
    tail = dns.message.Message()
    execs = {
        "p1": DummyExecutable(want_err=RuntimeError("")),
        "p2": DummyExecutable(want_r=r2),
        "tail": DummyExecutable(want_r=tail),
    }
    spec = [
        {"primary": ["p1"], "secondary": ["p2"], "fast_fallback": 100},
        "tail",
    ]
    root = build_executable_logic_tree(spec, None, execs, None)
    qctx = QueryContext(dns.message.Message())
    await exec_chain_node(qctx, root)
    assert qctx.response is tail


@pytest.mark.asyncio
async def test_section_without_fast_fallback_raises_primary_error():
    execs = {
        "p1": DummyExecutable(want_err=KeyError("boom")),
        "p2": DummyExecutable(want_r=dns.message.Message()),
    }
    root = build_executable_logic_tree(
        [{"primary": "p1", "secondary": "p2"}], None, execs, None
    )
    qctx = QueryContext(dns.message.Message())
    with pytest.raises(KeyError):
        await exec_chain_node(qctx, root)
    assert qctx.response is None


def test_section_rejects_bad_number():
    with pytest.raises(ValueError):
        build_executable_logic_tree(
            {"primary": "p1", "secondary": "p2", "stat_length": "many"},
            None,
            {"p1": DummyExecutable(), "p2": DummyExecutable()},
            None,
        )