from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field

from touchblock.core.auth.models import AuthorizationMethod
from touchblock.core.errors import ErrorKind


class BlockingState(BaseModel):
    """
    Observed view of touch blocking. Rebuilt on every observation from the
    persisted ``enabled`` flag plus live probes; never a store of record.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = False
    accessibility_service_enabled: bool = False
    authorization_method: AuthorizationMethod = AuthorizationMethod.NONE
    is_loading: bool = False
    error: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_enable(self) -> bool:
        return self.accessibility_service_enabled and self.authorization_method != AuthorizationMethod.NONE

    @property
    def is_available(self) -> bool:
        return self.can_enable


class ExecutionPhase(str, Enum):
    IDLE = "IDLE"
    RESOLVING = "RESOLVING"
    EXECUTING = "EXECUTING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


class CommandOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ok: bool
    enabled: bool
    phase: ExecutionPhase
    method: AuthorizationMethod = AuthorizationMethod.NONE
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    elapsed_ms: int = 0


class ToggleResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ok: bool
    enabled: bool
    method: AuthorizationMethod = AuthorizationMethod.NONE
    error_kind: Optional[ErrorKind] = None
    message: str = ""
