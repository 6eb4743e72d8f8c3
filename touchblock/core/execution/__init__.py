from touchblock.core.execution.cancel import CancelledError, CancelScope, bind_scope, current_scope
from touchblock.core.execution.process import ProcessRunner, ShellOutcome
from touchblock.core.execution.timeouts import TimeoutRetryExecutor

__all__ = [
    "CancelledError",
    "CancelScope",
    "bind_scope",
    "current_scope",
    "ProcessRunner",
    "ShellOutcome",
    "TimeoutRetryExecutor",
]
