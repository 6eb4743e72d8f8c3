from touchblock.core.events.bus import EventBus, EventBusConfig, OverflowPolicy
from touchblock.core.events.models import TOUCH_BLOCKING_CHANGED, BaseEvent, EventSeverity, EventSource, blocking_changed

__all__ = [
    "TOUCH_BLOCKING_CHANGED",
    "BaseEvent",
    "EventBus",
    "EventBusConfig",
    "EventSeverity",
    "EventSource",
    "OverflowPolicy",
    "blocking_changed",
]
