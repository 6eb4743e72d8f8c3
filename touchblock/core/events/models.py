from __future__ import annotations

import json
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TOUCH_BLOCKING_CHANGED = "touch_blocking.changed"


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class EventSource(str, Enum):
    blocking = "blocking"
    authorization = "authorization"
    hook = "hook"
    store = "store"
    events = "events"
    cli = "cli"


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    timestamp: float = Field(default_factory=time.time)
    trace_id: Optional[str] = None
    source: EventSource
    severity: EventSeverity = EventSeverity.INFO
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("event_type required")
        return v

    @field_validator("payload")
    @classmethod
    def _jsonable(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        try:
            json.dumps(v, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError("payload must be JSON-serializable") from e
        return v


def blocking_changed(enabled: bool, *, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(
        event_type=TOUCH_BLOCKING_CHANGED,
        trace_id=trace_id,
        source=EventSource.blocking,
        payload={"enabled": bool(enabled)},
    )
