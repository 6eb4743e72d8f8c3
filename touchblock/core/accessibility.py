from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from touchblock.core.config.models import AccessibilityConfig
from touchblock.core.errors import NavigationError, OperationTimeoutError
from touchblock.core.execution.cancel import CancelledError
from touchblock.core.execution.process import ProcessRunner, ShellOutcome
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger


class AccessibilityProbe(Protocol):
    def is_service_enabled(self) -> bool: ...

    def is_service_running(self) -> bool: ...

    def status(self) -> Dict[str, Any]: ...


class Navigator(Protocol):
    def open_accessibility_settings(self) -> None: ...


def component_names(component: str) -> List[str]:
    """
    ``pkg/pkg.Cls`` and its short form ``pkg/.Cls``; Android lists either.
    """
    pkg, _, cls = component.partition("/")
    names = [component]
    if pkg and cls.startswith(pkg + "."):
        names.append(f"{pkg}/{cls[len(pkg):]}")
    elif pkg and cls.startswith("."):
        names.append(f"{pkg}/{pkg}{cls}")
    return names


class AccessibilityStatus:
    """Reads the key listener service state through ``settings`` and ``dumpsys``."""

    def __init__(
        self,
        *,
        cfg: AccessibilityConfig,
        runner: ProcessRunner,
        executor: TimeoutRetryExecutor,
        timeout_ms: int = 3000,
        retry_attempts: int = 1,
        retry_delay_ms: int = 0,
        logger=None,
    ):
        self.cfg = cfg
        self.runner = runner
        self.executor = executor
        self.timeout_ms = int(timeout_ms)
        self.retry_attempts = int(retry_attempts)
        self.retry_delay_ms = int(retry_delay_ms)
        self.logger = logger or get_logger("accessibility")

    def enabled_services(self) -> List[str]:
        """
        ``enabled_accessibility_services`` split on ``:``. The settings
        provider can be briefly unavailable after boot, so a failed read is
        retried within the same window.
        """

        def _read(attempt: int) -> ShellOutcome:
            outcome = self.runner.run(["settings", "get", "secure", "enabled_accessibility_services"])
            if outcome.exit_code != 0:
                raise RuntimeError(f"settings exited {outcome.exit_code} (attempt {attempt})")
            return outcome

        try:
            outcome = self.executor.retry_with_timeout(
                _read,
                self.retry_attempts,
                self.timeout_ms,
                self.retry_delay_ms,
                name="accessibility_enabled_services",
            )
        except Exception as e:  # noqa: BLE001
            self.logger.warning(f"could not read enabled accessibility services: {e}")
            return []
        raw = (outcome.first_line() or "").strip()
        if not raw or raw == "null":
            return []
        return [s.strip() for s in raw.split(":") if s.strip()]

    def is_service_enabled(self) -> bool:
        names = component_names(self.cfg.service_component)
        enabled = any(s in names for s in self.enabled_services())
        self.logger.debug(f"accessibility service {self.cfg.service_component} enabled: {enabled}")
        return enabled

    def is_service_running(self) -> bool:
        outcome = self.executor.run_or_none(
            lambda: self.runner.run(["dumpsys", "accessibility"]),
            self.timeout_ms,
            name="accessibility_dumpsys",
        )
        if outcome is None or outcome.exit_code != 0:
            return False
        names = component_names(self.cfg.service_component)
        running = any(n in line for line in outcome.stdout_lines for n in names)
        self.logger.debug(f"accessibility service {self.cfg.service_component} running: {running}")
        return running

    def status(self) -> Dict[str, Any]:
        return {
            "component": self.cfg.service_component,
            "enabled": self.is_service_enabled(),
            "running": self.is_service_running(),
        }


class SettingsNavigator:
    def __init__(self, *, cfg: AccessibilityConfig, runner: ProcessRunner, executor: TimeoutRetryExecutor, timeout_ms: int = 2000, logger=None):
        self.cfg = cfg
        self.runner = runner
        self.executor = executor
        self.timeout_ms = int(timeout_ms)
        self.logger = logger or get_logger("navigation")

    def open_accessibility_settings(self) -> None:
        argv = ["am", "start", "-a", self.cfg.settings_action]
        try:
            outcome = self.executor.run(lambda: self.runner.run(argv), self.timeout_ms, name="open_accessibility_settings")
        except (OperationTimeoutError, CancelledError) as e:
            raise NavigationError(action=self.cfg.settings_action, cause="timeout") from e
        except OSError as e:
            raise NavigationError(action=self.cfg.settings_action, cause=type(e).__name__) from e
        if outcome.exit_code != 0 or _am_reported_error(outcome.stdout_lines, outcome.stderr):
            raise NavigationError(action=self.cfg.settings_action, exit_code=outcome.exit_code)
        self.logger.info(f"opened {self.cfg.settings_action}")


def _am_reported_error(stdout_lines: List[str], stderr: Optional[str]) -> bool:
    # am exits 0 even when the activity cannot be resolved
    text = "\n".join(stdout_lines) + "\n" + (stderr or "")
    return "Error:" in text
