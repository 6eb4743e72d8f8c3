from touchblock.core.blocking.executor import HookToggle, PrivilegedCommandExecutor, UnsupportedHookToggle
from touchblock.core.blocking.models import BlockingState, CommandOutcome, ExecutionPhase, ToggleResult
from touchblock.core.blocking.orchestrator import ToggleOrchestrator
from touchblock.core.blocking.scripts import disable_script, enable_script, script_for

__all__ = [
    "BlockingState",
    "CommandOutcome",
    "ExecutionPhase",
    "HookToggle",
    "PrivilegedCommandExecutor",
    "ToggleOrchestrator",
    "ToggleResult",
    "UnsupportedHookToggle",
    "disable_script",
    "enable_script",
    "script_for",
]
