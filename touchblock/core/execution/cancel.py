from __future__ import annotations

import contextlib
import contextvars
import threading
from typing import Callable, Iterator, List, Optional

_SCOPE: contextvars.ContextVar[Optional["CancelScope"]] = contextvars.ContextVar("touchblock.cancel_scope", default=None)


class CancelledError(RuntimeError):
    pass


class CancelScope:
    """
    Cancellation handle for one bounded operation.

    Work running inside the scope registers cleanup callbacks (typically
    ``Popen.kill``). ``cancel()`` flips the flag and runs every callback once,
    synchronously, on the cancelling thread. Callbacks registered after
    cancellation run immediately.
    """

    def __init__(self, name: str = "op"):
        self.name = name
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, cb: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(cb)
                return lambda: self._discard(cb)
        _safe_call(cb)
        return lambda: None

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for cb in callbacks:
            _safe_call(cb)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout=max(0.0, float(timeout)))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError(self.name)

    def _discard(self, cb: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(cb)
            except ValueError:
                pass


def _safe_call(cb: Callable[[], None]) -> None:
    try:
        cb()
    except Exception:  # noqa: BLE001
        # cleanup must not mask the timeout that triggered it
        pass


def current_scope() -> Optional[CancelScope]:
    return _SCOPE.get()


@contextlib.contextmanager
def bind_scope(scope: CancelScope) -> Iterator[CancelScope]:
    token = _SCOPE.set(scope)
    try:
        yield scope
    finally:
        try:
            _SCOPE.reset(token)
        except ValueError:
            pass
