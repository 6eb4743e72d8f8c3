from __future__ import annotations

import collections
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from touchblock.core.events.models import BaseEvent
from touchblock.core.logger import get_logger

EventHandler = Callable[[BaseEvent], None]


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "DROP_OLDEST"
    DROP_NEWEST = "DROP_NEWEST"


class EventBusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_queue_size: int = Field(default=200, ge=10, le=100_000)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    shutdown_grace_seconds: float = Field(default=2.0, ge=0.1, le=60.0)
    keep_recent: int = Field(default=100, ge=1, le=10_000)


@dataclass
class EventBusStats:
    published_total: int = 0
    dropped_total: int = 0
    delivered_total: int = 0
    handler_errors_total: int = 0
    per_type_published: Dict[str, int] = field(default_factory=dict)


@dataclass
class _Subscriber:
    event_type: str
    handler: EventHandler
    q: "queue.Queue[BaseEvent]"
    stop: threading.Event
    thread: threading.Thread


class EventBus:
    """
    In-process notification channel.

    - publish never blocks (overflow handled per policy)
    - each subscriber has its own worker, so it sees events in publish order
    - a failing handler is logged and counted; other subscribers are unaffected
    """

    def __init__(self, *, cfg: Optional[EventBusConfig] = None, logger=None):
        self.cfg = cfg or EventBusConfig()
        self.logger = logger or get_logger("events")
        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._queue: Deque[BaseEvent] = collections.deque()
        self._subs: List[_Subscriber] = []
        self._stats = EventBusStats()
        self._recent: Deque[BaseEvent] = collections.deque(maxlen=int(self.cfg.keep_recent))
        self._running = False
        self._accepting = True
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="touchblock-events", daemon=True)
        if self.cfg.enabled:
            self._running = True
            self._dispatcher.start()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """``event_type`` may be exact ("touch_blocking.changed"), a prefix ("touch_blocking.*") or "*"."""
        if not callable(handler):
            raise ValueError("handler must be callable")
        q: "queue.Queue[BaseEvent]" = queue.Queue()
        stop = threading.Event()
        t = threading.Thread(target=self._worker_loop, args=(handler, q, stop), name=f"touchblock-sub-{len(self._subs) + 1}", daemon=True)
        with self._lock:
            self._subs.append(_Subscriber(event_type=str(event_type), handler=handler, q=q, stop=stop, thread=t))
        t.start()

    def unsubscribe(self, handler: EventHandler) -> int:
        with self._lock:
            removed = [s for s in self._subs if s.handler is handler]
            self._subs = [s for s in self._subs if s.handler is not handler]
        for s in removed:
            s.stop.set()
            s.thread.join(timeout=0.5)
        return len(removed)

    def publish(self, ev: BaseEvent) -> bool:
        if not self._accepting or not self.cfg.enabled:
            return False
        with self._lock:
            if len(self._queue) >= int(self.cfg.max_queue_size):
                self._stats.dropped_total += 1
                if self.cfg.overflow_policy == OverflowPolicy.DROP_NEWEST:
                    self.logger.warning(f"event dropped (queue full): {ev.event_type}")
                    return False
                dropped = self._queue.popleft()
                self.logger.warning(f"event dropped (queue full): {dropped.event_type}")
            self._queue.append(ev)
            self._recent.appendleft(ev)
            self._stats.published_total += 1
            self._stats.per_type_published[ev.event_type] = self._stats.per_type_published.get(ev.event_type, 0) + 1
            self._cv.notify()
        return True

    def recent(self, n: int = 20) -> List[BaseEvent]:
        with self._lock:
            return list(self._recent)[: max(1, int(n))]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "enabled": bool(self.cfg.enabled) and self._running,
                "published_total": self._stats.published_total,
                "dropped_total": self._stats.dropped_total,
                "delivered_total": self._stats.delivered_total,
                "handler_errors_total": self._stats.handler_errors_total,
                "queue_depth": len(self._queue),
                "subscribers": len(self._subs),
                "per_type_published": dict(self._stats.per_type_published),
            }

    def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        self._accepting = False
        if grace_seconds is None:
            grace_seconds = float(self.cfg.shutdown_grace_seconds)
        deadline = time.monotonic() + float(grace_seconds)
        while time.monotonic() < deadline:
            with self._lock:
                if not self._queue and all(s.q.empty() for s in self._subs):
                    break
            time.sleep(0.02)
        with self._lock:
            self._running = False
            self._cv.notify_all()
            subs = list(self._subs)
            self._subs = []
        if self._dispatcher.is_alive():
            self._dispatcher.join(timeout=max(0.1, float(grace_seconds)))
        for s in subs:
            s.stop.set()
            s.thread.join(timeout=0.5)

    # ---- internals ----
    def _dispatch_loop(self) -> None:
        while True:
            with self._lock:
                while self._running and not self._queue:
                    self._cv.wait(timeout=0.2)
                if not self._running and not self._queue:
                    return
                ev = self._queue.popleft()
                subs = list(self._subs)
            delivered = 0
            for s in subs:
                if _match(s.event_type, ev.event_type):
                    s.q.put_nowait(ev)
                    delivered += 1
            if delivered:
                with self._lock:
                    self._stats.delivered_total += delivered

    def _worker_loop(self, handler: EventHandler, q: "queue.Queue[BaseEvent]", stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                ev = q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                handler(ev)
            except Exception as e:  # noqa: BLE001
                with self._lock:
                    self._stats.handler_errors_total += 1
                self.logger.error(f"event handler {getattr(handler, '__name__', 'handler')} failed on {ev.event_type}: {e}")


def _match(subscribed: str, event_type: str) -> bool:
    if subscribed == "*":
        return True
    if subscribed.endswith(".*"):
        return event_type.startswith(subscribed[:-1])
    return subscribed == event_type
