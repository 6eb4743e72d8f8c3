from __future__ import annotations

import contextvars
import threading
import time
from concurrent.futures import FIRST_COMPLETED, FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple, TypeVar

from touchblock.core.errors import OperationTimeoutError
from touchblock.core.execution.cancel import CancelScope, bind_scope, current_scope
from touchblock.core.logger import get_logger

T = TypeVar("T")


class TimeoutRetryExecutor:
    """
    Bounded-time execution over a shared worker pool.

    Every operation runs inside its own ``CancelScope`` (bound through a
    context variable, so nested runs chain to the caller's scope). When the
    window elapses the scope is cancelled before ``OperationTimeoutError`` is
    raised, which kills any child process the operation registered.
    """

    def __init__(self, *, max_workers: int = 8, logger=None):
        self.logger = logger or get_logger("executor")
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="touchblock-worker")
        self._lock = threading.Lock()
        self._live: Set[CancelScope] = set()
        self._closed = False

    # ---- single operation ----
    def run(self, op: Callable[[], T], timeout_ms: int, *, name: str = "op") -> T:
        t0 = time.monotonic()
        fut, scope = self._submit(op, name=name)
        try:
            return fut.result(timeout=_seconds(timeout_ms))
        except FutureTimeoutError:
            scope.cancel()
            fut.cancel()
            elapsed_ms = _elapsed_ms(t0)
            self.logger.warning(f"{name}: timed out after {elapsed_ms}ms (budget {int(timeout_ms)}ms)")
            raise OperationTimeoutError(operation=name, timeout_ms=int(timeout_ms), elapsed_ms=elapsed_ms) from None

    def run_or_default(self, op: Callable[[], T], timeout_ms: int, default: T, *, name: str = "op") -> T:
        try:
            return self.run(op, timeout_ms, name=name)
        except OperationTimeoutError:
            self.logger.warning(f"{name}: returning default after timeout")
            return default
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"{name}: failed ({type(e).__name__}: {e}), returning default")
            return default

    def run_or_none(self, op: Callable[[], T], timeout_ms: int, *, name: str = "op") -> Optional[T]:
        return self.run_or_default(op, timeout_ms, None, name=name)

    # ---- retries ----
    def retry(self, op: Callable[[int], T], max_attempts: int = 3, delay_ms: int = 1000, *, name: str = "op") -> T:
        """
        Call ``op(attempt)`` with a 1-based attempt index until it returns.
        Fixed delay between attempts; the last error is re-raised unchanged.
        """
        if int(max_attempts) < 1:
            raise ValueError("max_attempts must be >= 1")
        scope = current_scope()
        attempt = 1
        while True:
            try:
                return op(attempt)
            except Exception as e:  # noqa: BLE001
                self.logger.warning(f"{name}: attempt {attempt}/{max_attempts} failed ({type(e).__name__}: {e})")
                if attempt >= int(max_attempts):
                    raise
                if scope is not None:
                    if scope.wait(_seconds(delay_ms)):
                        raise
                else:
                    time.sleep(_seconds(delay_ms))
            attempt += 1

    def retry_with_timeout(
        self,
        op: Callable[[int], T],
        max_attempts: int = 3,
        timeout_ms: int = 10_000,
        delay_ms: int = 1000,
        *,
        name: str = "op",
    ) -> T:
        return self.run(lambda: self.retry(op, max_attempts, delay_ms, name=name), timeout_ms, name=name)

    # ---- fan-out ----
    def run_all(self, ops: Sequence[Callable[[], T]], timeout_ms: int, *, name: str = "batch") -> List[T]:
        if not ops:
            return []
        t0 = time.monotonic()
        subs = [self._submit(op, name=f"{name}[{i}]") for i, op in enumerate(ops)]
        futs = [f for f, _ in subs]
        done, pending = wait(futs, timeout=_seconds(timeout_ms), return_when=FIRST_EXCEPTION)
        failed = [f for f in futs if f in done and f.exception() is not None]
        if failed or pending:
            self._cancel_all(subs)
            if failed:
                exc = failed[0].exception()
                self.logger.warning(f"{name}: batch failed ({type(exc).__name__}: {exc})")
                raise exc  # type: ignore[misc]
            elapsed_ms = _elapsed_ms(t0)
            self.logger.warning(f"{name}: batch timed out after {elapsed_ms}ms ({len(pending)} pending)")
            raise OperationTimeoutError(operation=name, timeout_ms=int(timeout_ms), elapsed_ms=elapsed_ms, pending=len(pending))
        return [f.result() for f in futs]

    def run_first(self, ops: Sequence[Callable[[], T]], timeout_ms: int, *, name: str = "race") -> T:
        """
        Return the result of whichever operation completes successfully first.
        Failed operations drop out of the race; the losers are cancelled.
        """
        if not ops:
            raise ValueError("run_first needs at least one operation")
        t0 = time.monotonic()
        deadline = t0 + _seconds(timeout_ms)
        subs = [self._submit(op, name=f"{name}[{i}]") for i, op in enumerate(ops)]
        order = {f: i for i, (f, _) in enumerate(subs)}
        pending: Set[Future] = set(order)
        last_exc: Optional[BaseException] = None
        try:
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for f in sorted(done, key=lambda x: order[x]):
                    exc = f.exception()
                    if exc is None:
                        return f.result()
                    last_exc = exc
        finally:
            self._cancel_all(subs)
        if pending or last_exc is None:
            elapsed_ms = _elapsed_ms(t0)
            self.logger.warning(f"{name}: no operation completed within {int(timeout_ms)}ms")
            raise OperationTimeoutError(operation=name, timeout_ms=int(timeout_ms), elapsed_ms=elapsed_ms)
        raise last_exc

    # ---- lifecycle ----
    def live_operations(self) -> int:
        with self._lock:
            return len(self._live)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            live = list(self._live)
        for scope in live:
            scope.cancel()
        self._pool.shutdown(wait=False, cancel_futures=True)

    # ---- internals ----
    def _submit(self, op: Callable[[], Any], *, name: str) -> Tuple[Future, CancelScope]:
        if self._closed:
            raise RuntimeError("executor is shut down")
        scope = CancelScope(name)
        parent = current_scope()
        unlink = parent.on_cancel(scope.cancel) if parent is not None else None
        with self._lock:
            self._live.add(scope)
        cv = contextvars.copy_context()

        def _call():  # noqa: ANN202
            with bind_scope(scope):
                scope.raise_if_cancelled()
                return op()

        fut = self._pool.submit(cv.run, _call)

        def _done(_f: Future) -> None:
            with self._lock:
                self._live.discard(scope)
            if unlink is not None:
                unlink()

        fut.add_done_callback(_done)
        return fut, scope

    @staticmethod
    def _cancel_all(subs: Sequence[Tuple[Future, CancelScope]]) -> None:
        for f, scope in subs:
            if not f.done():
                scope.cancel()
                f.cancel()


def _seconds(ms: float) -> float:
    return max(0.0, float(ms) / 1000.0)


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
