from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorKind(str, Enum):
    probe_timeout = "probe_timeout"
    probe_io_failure = "probe_io_failure"
    operation_timeout = "operation_timeout"
    no_authorization = "no_authorization"
    command_failed = "command_failed"
    persistence_failed = "persistence_failed"
    navigation_failed = "navigation_failed"
    config_error = "config_error"


USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.probe_timeout: "Superuser check timed out.",
    ErrorKind.probe_io_failure: "Superuser binary could not be started.",
    ErrorKind.operation_timeout: "That is taking too long.",
    ErrorKind.no_authorization: "No root access or active hook module is available.",
    ErrorKind.command_failed: "Privileged command failed; touch blocking state was not changed.",
    ErrorKind.persistence_failed: "Could not save the touch blocking state.",
    ErrorKind.navigation_failed: "Could not open the settings screen.",
    ErrorKind.config_error: "Configuration error.",
}


def user_message_for(kind: Optional[ErrorKind]) -> str:
    if kind is None:
        return ""
    return USER_MESSAGES.get(ErrorKind(kind), "Unknown error.")


@dataclass
class TouchBlockError(Exception):
    kind: ErrorKind
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.kind.value)

    def __str__(self) -> str:
        if not self.context:
            return self.kind.value
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.kind.value} ({details})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": dict(self.context or {}),
        }


# ---- Taxonomy ----
class ProbeTimeoutError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.probe_timeout], **ctx: Any):
        super().__init__(ErrorKind.probe_timeout, user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ProbeIOError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.probe_io_failure], **ctx: Any):
        super().__init__(ErrorKind.probe_io_failure, user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class OperationTimeoutError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.operation_timeout], **ctx: Any):
        super().__init__(ErrorKind.operation_timeout, user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class NoAuthorizationAvailableError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.no_authorization], **ctx: Any):
        super().__init__(ErrorKind.no_authorization, user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class CommandExecutionError(TouchBlockError):
    def __init__(
        self,
        user_message: str = USER_MESSAGES[ErrorKind.command_failed],
        *,
        exit_code: Optional[int] = None,
        cause: Optional[str] = None,
        **ctx: Any,
    ):
        if exit_code is not None:
            ctx["exit_code"] = int(exit_code)
        if cause:
            ctx["cause"] = str(cause)
        super().__init__(ErrorKind.command_failed, user_message, severity=Severity.ERROR, recoverable=True, context=ctx)

    @property
    def exit_code(self) -> Optional[int]:
        return self.context.get("exit_code")

    @property
    def cause(self) -> Optional[str]:
        return self.context.get("cause")


class PersistenceError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.persistence_failed], **ctx: Any):
        super().__init__(ErrorKind.persistence_failed, user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class NavigationError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.navigation_failed], **ctx: Any):
        super().__init__(ErrorKind.navigation_failed, user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ConfigError(TouchBlockError):
    def __init__(self, user_message: str = USER_MESSAGES[ErrorKind.config_error], **ctx: Any):
        super().__init__(ErrorKind.config_error, user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)
