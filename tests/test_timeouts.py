from __future__ import annotations

import threading
import time

import pytest

from touchblock.core.errors import ErrorKind, OperationTimeoutError
from touchblock.core.execution.cancel import CancelScope, bind_scope, current_scope
from tests.helpers.fakes import wait_until


def _blocking_op(seen: dict, key: str, seconds: float = 5.0):
    def op():
        scope = current_scope()
        seen[key] = scope.wait(seconds)
        return key

    return op


def test_run_returns_result(executor):
    assert executor.run(lambda: 41 + 1, 500, name="add") == 42


def test_run_propagates_operation_error(executor):
    def boom():
        raise KeyError("x")

    with pytest.raises(KeyError):
        executor.run(boom, 500)


def test_run_timeout_cancels_scope_and_returns_promptly(executor):
    seen: dict = {}
    t0 = time.monotonic()
    with pytest.raises(OperationTimeoutError) as ei:
        executor.run(_blocking_op(seen, "slow"), 100, name="slow_op")
    assert time.monotonic() - t0 < 1.0
    assert ei.value.kind == ErrorKind.operation_timeout
    assert ei.value.context["operation"] == "slow_op"
    assert ei.value.context["timeout_ms"] == 100
    # the operation observed its own cancellation
    assert wait_until(lambda: seen.get("slow") is True)
    assert wait_until(lambda: executor.live_operations() == 0)


def test_run_or_default_on_timeout_and_error(executor):
    seen: dict = {}
    assert executor.run_or_default(_blocking_op(seen, "a"), 50, "fallback") == "fallback"

    def boom():
        raise RuntimeError("nope")

    assert executor.run_or_default(boom, 500, 7) == 7
    assert executor.run_or_none(boom, 500) is None


def test_retry_passes_one_based_attempts_until_success(executor):
    attempts = []

    def op(attempt):
        attempts.append(attempt)
        if attempt < 3:
            raise RuntimeError(f"fail {attempt}")
        return "ok"

    assert executor.retry(op, max_attempts=3, delay_ms=10) == "ok"
    assert attempts == [1, 2, 3]


def test_retry_reraises_last_error(executor):
    def op(attempt):
        raise ValueError(f"attempt {attempt}")

    with pytest.raises(ValueError, match="attempt 2"):
        executor.retry(op, max_attempts=2, delay_ms=5)


def test_retry_waits_fixed_delay_between_attempts(executor):
    stamps = []

    def op(attempt):
        stamps.append(time.monotonic())
        raise RuntimeError("x")

    with pytest.raises(RuntimeError):
        executor.retry(op, max_attempts=3, delay_ms=80)
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert len(gaps) == 2
    assert all(g >= 0.07 for g in gaps)


def test_retry_cancelled_during_delay_reraises_op_error(executor):
    scope = CancelScope("caller")
    calls = []

    def op(attempt):
        calls.append(attempt)
        raise ValueError(f"attempt {attempt}")

    threading.Timer(0.05, scope.cancel).start()
    t0 = time.monotonic()
    with bind_scope(scope):
        with pytest.raises(ValueError, match="attempt 1"):
            executor.retry(op, max_attempts=5, delay_ms=2000)
    assert time.monotonic() - t0 < 1.0
    assert calls == [1]


def test_retry_rejects_zero_attempts(executor):
    with pytest.raises(ValueError):
        executor.retry(lambda a: a, max_attempts=0)


def test_retry_with_timeout_bounds_whole_loop(executor):
    calls = []

    def op(attempt):
        calls.append(attempt)
        raise RuntimeError("still failing")

    t0 = time.monotonic()
    with pytest.raises(OperationTimeoutError):
        executor.retry_with_timeout(op, max_attempts=10, timeout_ms=150, delay_ms=100)
    assert time.monotonic() - t0 < 1.0
    # cancellation interrupts the delay, so the loop stops instead of running on
    n = len(calls)
    time.sleep(0.3)
    assert len(calls) == n
    assert n < 10


def test_run_all_preserves_input_order(executor):
    def delayed(v, s):
        def op():
            time.sleep(s)
            return v

        return op

    assert executor.run_all([delayed("a", 0.1), delayed("b", 0.0), delayed("c", 0.05)], 1000) == ["a", "b", "c"]
    assert executor.run_all([], 100) == []


def test_run_all_raises_first_failure_and_cancels_others(executor):
    seen: dict = {}

    def boom():
        raise RuntimeError("batch member failed")

    with pytest.raises(RuntimeError, match="batch member failed"):
        executor.run_all([_blocking_op(seen, "slow"), boom], 2000)
    assert wait_until(lambda: seen.get("slow") is True)


def test_run_all_timeout(executor):
    seen: dict = {}
    with pytest.raises(OperationTimeoutError) as ei:
        executor.run_all([lambda: 1, _blocking_op(seen, "slow")], 100)
    assert ei.value.context["pending"] == 1


def test_run_first_returns_fastest_and_cancels_losers(executor):
    seen: dict = {}

    def fast():
        time.sleep(0.02)
        return "fast"

    t0 = time.monotonic()
    assert executor.run_first([_blocking_op(seen, "slow"), fast], 2000) == "fast"
    assert time.monotonic() - t0 < 1.0
    assert wait_until(lambda: seen.get("slow") is True)


def test_run_first_skips_failures(executor):
    def boom():
        raise RuntimeError("lost")

    def later():
        time.sleep(0.05)
        return "winner"

    assert executor.run_first([boom, later], 1000) == "winner"


def test_run_first_all_fail_raises_last_error(executor):
    def boom_a():
        raise RuntimeError("a")

    def boom_b():
        time.sleep(0.05)
        raise RuntimeError("b")

    with pytest.raises(RuntimeError, match="b"):
        executor.run_first([boom_a, boom_b], 1000)


def test_run_first_timeout_and_empty(executor):
    seen: dict = {}
    with pytest.raises(OperationTimeoutError):
        executor.run_first([_blocking_op(seen, "x")], 100)
    with pytest.raises(ValueError):
        executor.run_first([], 100)


def test_cancelling_outer_scope_cancels_nested_operations(executor):
    outer = CancelScope("outer")
    inner_cancelled = threading.Event()

    def inner():
        if current_scope().wait(5.0):
            inner_cancelled.set()

    def start_nested():
        with bind_scope(outer):
            executor.run_or_none(inner, 5000, name="nested")

    t = threading.Thread(target=start_nested)
    t.start()
    assert wait_until(lambda: executor.live_operations() == 1)
    outer.cancel()
    assert inner_cancelled.wait(1.0)
    t.join(timeout=2.0)
    assert not t.is_alive()


def test_cancel_scope_runs_late_callbacks_immediately():
    scope = CancelScope("s")
    scope.cancel()
    hits = []
    scope.on_cancel(lambda: hits.append(1))
    assert hits == [1]
    assert scope.cancelled


def test_shutdown_rejects_new_work(executor):
    executor.shutdown()
    with pytest.raises(RuntimeError):
        executor.run(lambda: 1, 100)
