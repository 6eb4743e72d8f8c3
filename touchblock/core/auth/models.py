from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from touchblock.core.errors import ErrorKind, TouchBlockError

_PRIORITY = {"ROOT": 2, "LSPOSED": 1, "NONE": 0}
_DISPLAY = {"ROOT": "Root access", "LSPOSED": "LSPosed module", "NONE": "No authorization"}


class AuthorizationMethod(str, Enum):
    """Elevation channel, ordered by resolution priority ROOT > LSPOSED > NONE."""

    ROOT = "ROOT"
    LSPOSED = "LSPOSED"
    NONE = "NONE"

    @property
    def priority(self) -> int:
        return _PRIORITY[self.value]

    def is_available(self) -> bool:
        return self is not AuthorizationMethod.NONE

    def display_name(self) -> str:
        return _DISPLAY[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AuthorizationMethod):
            return NotImplemented
        return self.priority < other.priority

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, AuthorizationMethod):
            return NotImplemented
        return self.priority > other.priority

    def __le__(self, other: object) -> bool:
        if not isinstance(other, AuthorizationMethod):
            return NotImplemented
        return self.priority <= other.priority

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, AuthorizationMethod):
            return NotImplemented
        return self.priority >= other.priority


class ProbeResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    succeeded: bool
    elapsed_ms: int = 0
    cause_kind: Optional[ErrorKind] = None
    cause: Optional[str] = None
    strategy: Optional[str] = None

    @classmethod
    def ok(cls, *, elapsed_ms: int, strategy: str) -> "ProbeResult":
        return cls(succeeded=True, elapsed_ms=elapsed_ms, strategy=strategy)

    @classmethod
    def failed(cls, *, elapsed_ms: int, error: Optional[TouchBlockError] = None, strategy: Optional[str] = None) -> "ProbeResult":
        return cls(
            succeeded=False,
            elapsed_ms=elapsed_ms,
            cause_kind=error.kind if error is not None else None,
            cause=str(error) if error is not None else None,
            strategy=strategy,
        )
