from __future__ import annotations

import os
from typing import List, Protocol, Set

from touchblock.core.config.models import ProbeConfig
from touchblock.core.execution.process import ProcessRunner
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger


class DeviceInfo(Protocol):
    def path_exists(self, path: str) -> bool: ...

    def prop(self, name: str) -> str: ...

    def installed_packages(self) -> Set[str]: ...


class AndroidDeviceInfo:
    """Device facts via ``getprop`` and ``pm list packages``, each call bounded."""

    def __init__(self, *, runner: ProcessRunner, executor: TimeoutRetryExecutor, timeout_ms: int = 2000, logger=None):
        self.runner = runner
        self.executor = executor
        self.timeout_ms = int(timeout_ms)
        self.logger = logger or get_logger("device")

    def path_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def prop(self, name: str) -> str:
        outcome = self.executor.run_or_none(lambda: self.runner.run(["getprop", name]), self.timeout_ms, name=f"getprop:{name}")
        if outcome is None or outcome.exit_code != 0:
            return ""
        return (outcome.first_line() or "").strip()

    def installed_packages(self) -> Set[str]:
        outcome = self.executor.run_or_none(lambda: self.runner.run(["pm", "list", "packages"]), self.timeout_ms, name="pm_list_packages")
        if outcome is None or outcome.exit_code != 0:
            return set()
        return {line.split(":", 1)[1].strip() for line in outcome.stdout_lines if line.startswith("package:")}


class RootHeuristics:
    """
    Advisory "is this device probably rooted" checks. A positive answer never
    means a live superuser probe will succeed.
    """

    def __init__(self, *, cfg: ProbeConfig, device: DeviceInfo, logger=None):
        self.cfg = cfg
        self.device = device
        self.logger = logger or get_logger("heuristics")

    def is_likely_rooted(self) -> bool:
        return bool(self.reasons(stop_at_first=True))

    def reasons(self, *, stop_at_first: bool = False) -> List[str]:
        found: List[str] = []
        for name, check in (
            ("su_artifacts", self.has_su_artifacts),
            ("test_keys", self.has_test_keys),
            ("debug_build", self.is_debug_build),
            ("root_packages", self.has_root_packages),
        ):
            try:
                hit = check()
            except Exception as e:  # noqa: BLE001
                self.logger.error(f"root heuristic {name} failed: {e}")
                hit = False
            self.logger.debug(f"root heuristic {name}: {hit}")
            if hit:
                found.append(name)
                if stop_at_first:
                    break
        return found

    def has_su_artifacts(self) -> bool:
        return any(self.device.path_exists(p) for p in self.cfg.root_artifact_paths)

    def has_test_keys(self) -> bool:
        return "test-keys" in self.device.prop("ro.build.tags")

    def is_debug_build(self) -> bool:
        if self.device.prop("ro.build.type").lower() == "eng":
            return True
        if self.device.prop("ro.build.user").lower() == "android-build":
            return True
        return self.device.prop("ro.debuggable") == "1"

    def has_root_packages(self) -> bool:
        installed = self.device.installed_packages()
        return any(p in installed for p in self.cfg.root_packages)

