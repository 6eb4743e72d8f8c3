from touchblock.core.auth.heuristics import AndroidDeviceInfo, DeviceInfo, RootHeuristics
from touchblock.core.auth.models import AuthorizationMethod, ProbeResult
from touchblock.core.auth.module_signal import HookModuleBridge, ModuleActivationSignal
from touchblock.core.auth.resolver import AuthorizationResolver
from touchblock.core.auth.root_probe import (
    AlternatePathStrategy,
    InteractiveShellStrategy,
    ProbeAttempt,
    ProbeMode,
    RootProbe,
    SingleCommandStrategy,
    default_strategies,
)

__all__ = [
    "AlternatePathStrategy",
    "AndroidDeviceInfo",
    "AuthorizationMethod",
    "AuthorizationResolver",
    "DeviceInfo",
    "HookModuleBridge",
    "InteractiveShellStrategy",
    "ModuleActivationSignal",
    "ProbeAttempt",
    "ProbeMode",
    "ProbeResult",
    "RootHeuristics",
    "RootProbe",
    "SingleCommandStrategy",
    "default_strategies",
]
