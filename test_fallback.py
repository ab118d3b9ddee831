import asyncio
from collections import Counter

import pytest
from inline_snapshot import snapshot

import model_selector as ms
import model_selector.ops_fallback as fb


def _ranked(*names, provider="openai"):
    pool = [ms.Candidate(name=n, provider_id=provider, attributes={"chat": True}) for n in names]
    return ms.rank("chat", {}, pool)


def _op(fail: dict[str, Exception], calls: Counter):
    async def op(candidate):
        calls[candidate.name] += 1
        if candidate.name in fail:
            raise fail[candidate.name]
        return f"hello from {candidate.name}"

    return op


def _run(candidates, op, **options):
    options.setdefault("retry_delay", 0)
    return asyncio.run(ms.execute(candidates, op, **options))


def test_first_candidate_success_stops_immediately():
    calls = Counter()

    out = _run(_ranked("a", "b"), _op({}, calls))

    assert out.result == "hello from a"
    assert out.candidate_used == "a"
    assert out.fallbacks_used == 0
    assert len(out.attempts) == 1
    assert out.attempts[0].success is True
    assert calls == {"a": 1}


def test_transient_failures_fall_through_to_third_candidate():
    calls = Counter()
    fail = {"a": ConnectionError("network down"), "b": TimeoutError("read timeout")}

    out = _run(_ranked("a", "b", "c"), _op(fail, calls), max_retries=2)

    assert out.result == "hello from c"
    assert out.fallbacks_used == 2
    assert len(out.attempts) == (1 + 2) * 2 + 1
    assert [(a.candidate_name, a.success) for a in out.attempts] == snapshot(
        [
            ("a", False),
            ("a", False),
            ("a", False),
            ("b", False),
            ("b", False),
            ("b", False),
            ("c", True),
        ]
    )
    assert calls == {"a": 3, "b": 3, "c": 1}


def test_invalid_request_aborts_without_trying_others():
    calls = Counter()
    boom = ValueError("Bad request (400)")

    with pytest.raises(ValueError) as exc:
        _run(_ranked("a", "b"), _op({"a": boom}, calls))

    assert exc.value is boom
    assert calls == {"a": 1}
    assert any("other candidates not tried" in n for n in exc.value.__notes__)


def test_rate_limit_falls_back_without_retry():
    calls = Counter()
    fallbacks = []
    hooks = ms.Hooks(on_fallback=lambda frm, to, err: fallbacks.append((frm, to, str(err))))

    out = _run(
        _ranked("a", "b"),
        _op({"a": RuntimeError("Rate limit exceeded")}, calls),
        hooks=hooks,
    )

    assert out.candidate_used == "b"
    assert calls == {"a": 1, "b": 1}
    assert fallbacks == [("a", "b", "Rate limit exceeded")]


def test_unknown_errors_are_retried_then_fall_back():
    calls = Counter()

    out = _run(
        _ranked("a", "b"), _op({"a": RuntimeError("weird")}, calls), max_retries=1
    )

    assert calls == {"a": 2, "b": 1}
    assert out.fallbacks_used == 1


def test_all_candidates_failing_raises_aggregate():
    calls = Counter()
    fail = {n: ConnectionError(f"{n} unreachable") for n in ("a", "b")}

    with pytest.raises(ms.AllCandidatesFailedError) as exc:
        _run(_ranked("a", "b"), _op(fail, calls), max_retries=0)

    err = exc.value
    assert [name for name, _ in err.failures] == ["a", "b"]
    assert err.errors == [fail["a"], fail["b"]]
    assert len(err.attempts) == 2
    assert str(err) == "All models failed: a, b"


def test_fallback_count_limits_candidates_tried():
    calls = Counter()
    names = ["a", "b", "c", "d"]
    fail = {n: ConnectionError("down") for n in names}

    with pytest.raises(ms.AllCandidatesFailedError):
        _run(_ranked(*names), _op(fail, calls), max_retries=0, fallback_count=2)

    assert calls == {"a": 1, "b": 1}


def test_no_candidates_fails_fast():
    with pytest.raises(ms.NoCandidatesAvailable):
        _run([], _op({}, Counter()))
    with pytest.raises(ms.NoCandidatesAvailable):
        _run(_ranked("a"), _op({}, Counter()), fallback_count=0)


def test_timeout_counts_as_transient_failure():
    async def op(candidate):
        if candidate.name == "slow":
            await asyncio.sleep(5)
        return candidate.name

    out = _run(_ranked("slow", "quick"), op, timeout_ms=20, max_retries=0)

    assert out.result == "quick"
    first = out.attempts[0]
    assert first.success is False
    assert isinstance(first.error, ms.AttemptTimeoutError)
    assert first.error.timeout_ms == 20


def test_operation_raising_timeout_itself_is_not_rewrapped():
    calls = Counter()
    own = TimeoutError("provider read timeout")

    out = _run(_ranked("a", "b"), _op({"a": own}, calls), max_retries=0)

    assert out.attempts[0].error is own


def test_backoff_doubles_per_attempt(monkeypatch):
    delays = []

    async def fake_sleep(ms_):
        delays.append(ms_)

    monkeypatch.setattr(fb, "_sleep", fake_sleep)
    calls = Counter()

    with pytest.raises(ms.AllCandidatesFailedError):
        _run(
            _ranked("a"),
            _op({"a": ConnectionError("reset")}, calls),
            max_retries=3,
            retry_delay=100,
        )

    assert delays == [100, 200, 400]
    assert calls == {"a": 4}


def test_hooks_observe_attempts_and_success():
    seen = []
    successes = []
    hooks = ms.Hooks(
        on_attempt=lambda name, provider, n: seen.append((name, provider, n)),
        on_success=lambda name, attempts: successes.append((name, len(attempts))),
    )
    calls = Counter()

    _run(
        _ranked("a", "b"),
        _op({"a": ConnectionError("down")}, calls),
        max_retries=1,
        hooks=hooks,
    )

    assert seen == [("a", "openai", 1), ("a", "openai", 2), ("b", "openai", 1)]
    assert successes == [("b", 3)]


def test_sync_operations_and_plain_candidates_are_accepted():
    pool = [ms.Candidate(name="local", provider_id="ollama")]

    out = _run(pool, lambda c: c.name.upper())

    assert out.result == "LOCAL"
    assert out.candidate.provider_id == "ollama"


def test_cancellation_is_not_retried():
    calls = Counter()

    async def op(candidate):
        calls[candidate.name] += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        _run(_ranked("a", "b"), op)

    assert calls == {"a": 1}


def test_trace_records_failures_and_outcome():
    calls = Counter()

    out = _run(_ranked("a", "b"), _op({"a": RuntimeError("Rate limit")}, calls))

    categories = [ev.payload["category"] for ev in out.trace if "category" in ev.payload]
    assert categories == ["RATE_LIMIT"]
    assert out.trace[-1].payload["ok"] is True
    assert any(ev.payload.get("fallback") == "b" for ev in out.trace)


def test_executor_is_reusable():
    executor = ms.FallbackExecutor(retry_delay=0)
    calls = Counter()

    async def main():
        first = await executor.run(_ranked("a"), _op({}, calls))
        second = await executor.run(_ranked("a"), _op({}, calls))
        return first, second

    first, second = asyncio.run(main())

    assert len(first.attempts) == len(second.attempts) == 1
    assert calls == {"a": 2}
