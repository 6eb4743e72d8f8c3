from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from touchblock.core.accessibility import AccessibilityProbe, AccessibilityStatus, Navigator, SettingsNavigator
from touchblock.core.auth.heuristics import AndroidDeviceInfo, DeviceInfo, RootHeuristics
from touchblock.core.auth.module_signal import HookModuleBridge, ModuleActivationSignal
from touchblock.core.auth.resolver import AuthorizationResolver
from touchblock.core.auth.root_probe import RootProbe
from touchblock.core.blocking.executor import HookToggle, PrivilegedCommandExecutor
from touchblock.core.blocking.orchestrator import ToggleOrchestrator
from touchblock.core.config.manager import ConfigManager
from touchblock.core.config.models import AppConfig
from touchblock.core.config.paths import ConfigFsPaths
from touchblock.core.events.bus import EventBus, EventBusConfig
from touchblock.core.execution.process import ProcessRunner
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger
from touchblock.core.store.preferences import PreferenceStore


@dataclass
class ServiceContext:
    """Everything one process needs, built once and passed explicitly."""

    fs: ConfigFsPaths
    cfg: AppConfig
    executor: TimeoutRetryExecutor
    runner: ProcessRunner
    store: PreferenceStore
    bus: EventBus
    root_probe: RootProbe
    module_signal: ModuleActivationSignal
    hook_bridge: HookModuleBridge
    resolver: AuthorizationResolver
    commands: PrivilegedCommandExecutor
    accessibility: AccessibilityProbe
    navigator: Navigator
    orchestrator: ToggleOrchestrator
    logger: logging.Logger

    def close(self) -> None:
        try:
            self.bus.shutdown(self.cfg.events.shutdown_grace_seconds)
        finally:
            self.executor.shutdown()


def build_context(
    root: str = ".",
    *,
    cfg: Optional[AppConfig] = None,
    runner: Optional[ProcessRunner] = None,
    device: Optional[DeviceInfo] = None,
    hook_toggle: Optional[HookToggle] = None,
    hook_resolver: Optional[Callable[[str], bool]] = None,
    accessibility: Optional[AccessibilityProbe] = None,
    navigator: Optional[Navigator] = None,
    logger: Optional[logging.Logger] = None,
) -> ServiceContext:
    """
    Wire the services for ``root``. When ``cfg`` is not given it is loaded
    through ``ConfigManager`` (defaults are written on first run).
    Collaborators that talk to the device can be replaced by callers.
    """
    logger = logger or get_logger()
    fs = ConfigFsPaths(root=root)
    if cfg is None:
        cfg = ConfigManager(fs=fs, logger=logger).load()

    t = cfg.timeouts
    executor = TimeoutRetryExecutor(max_workers=cfg.executor.max_workers, logger=logger)
    runner = runner or ProcessRunner(logger=logger)
    store = PreferenceStore(
        path=fs.resolve(cfg.store.preferences_file),
        backups_dir=fs.resolve("data/backups"),
        max_backups=cfg.store.max_backups,
        logger=logger,
    )
    bus = EventBus(
        cfg=EventBusConfig(
            enabled=cfg.events.enabled,
            max_queue_size=cfg.events.max_queue_size,
            shutdown_grace_seconds=cfg.events.shutdown_grace_seconds,
        ),
        logger=logger,
    )

    device = device or AndroidDeviceInfo(runner=runner, executor=executor, timeout_ms=t.quick_operation_ms, logger=logger)
    heuristics = RootHeuristics(cfg=cfg.probe, device=device, logger=logger)
    root_probe = RootProbe(cfg=cfg.probe, timeouts=t, runner=runner, executor=executor, heuristics=heuristics, logger=logger)
    module_signal = ModuleActivationSignal(store=store, bridge_symbol=cfg.hook.bridge_symbol, resolver=hook_resolver, logger=logger)
    resolver = AuthorizationResolver(root_probe=root_probe, module_signal=module_signal, executor=executor, logger=logger)
    commands = PrivilegedCommandExecutor(
        resolver=resolver,
        runner=runner,
        executor=executor,
        store=store,
        bus=bus,
        scripts=cfg.scripts,
        su_binary=cfg.probe.su_binary,
        command_timeout_ms=t.root_command_ms,
        hook_toggle=hook_toggle,
        logger=logger,
    )
    accessibility = accessibility or AccessibilityStatus(
        cfg=cfg.accessibility,
        runner=runner,
        executor=executor,
        timeout_ms=t.accessibility_check_ms,
        retry_attempts=t.retry_attempts,
        retry_delay_ms=t.retry_delay_ms,
        logger=logger,
    )
    navigator = navigator or SettingsNavigator(
        cfg=cfg.accessibility, runner=runner, executor=executor, timeout_ms=t.quick_operation_ms, logger=logger
    )
    orchestrator = ToggleOrchestrator(
        commands=commands,
        resolver=resolver,
        store=store,
        accessibility=accessibility,
        navigator=navigator,
        logger=logger,
    )
    return ServiceContext(
        fs=fs,
        cfg=cfg,
        executor=executor,
        runner=runner,
        store=store,
        bus=bus,
        root_probe=root_probe,
        module_signal=module_signal,
        hook_bridge=HookModuleBridge(store=store),
        resolver=resolver,
        commands=commands,
        accessibility=accessibility,
        navigator=navigator,
        orchestrator=orchestrator,
        logger=logger,
    )
