from __future__ import annotations

import time
from typing import Any, Dict, Optional

from touchblock.core.auth.models import AuthorizationMethod, ProbeResult
from touchblock.core.auth.module_signal import ModuleActivationSignal
from touchblock.core.auth.root_probe import RootProbe
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger

_SLACK_MS = 500


class AuthorizationResolver:
    """
    Picks the elevation channel: ROOT if a non-interactive superuser check
    succeeds, else LSPOSED if the hook module reports itself active, else NONE.

    Read-only and safe to call from several threads at once. Never raises;
    probe failures degrade to the next channel.
    """

    def __init__(self, *, root_probe: RootProbe, module_signal: ModuleActivationSignal, executor: TimeoutRetryExecutor, logger=None):
        self.root_probe = root_probe
        self.module_signal = module_signal
        self.executor = executor
        self.logger = logger or get_logger("resolver")

    def resolve(self, *, check_root: bool = True) -> AuthorizationMethod:
        t0 = time.monotonic()
        if check_root and self._root_available():
            method = AuthorizationMethod.ROOT
        elif self._module_active():
            method = AuthorizationMethod.LSPOSED
        else:
            method = AuthorizationMethod.NONE
        self.logger.info(f"authorization resolved: {method.value} ({int((time.monotonic() - t0) * 1000)}ms)")
        return method

    def can_elevate(self) -> bool:
        return self.resolve() != AuthorizationMethod.NONE

    def request_root(self, timeout_ms: Optional[int] = None) -> ProbeResult:
        try:
            return self.root_probe.request(timeout_ms)
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"root request failed unexpectedly: {type(e).__name__}: {e}")
            return ProbeResult(succeeded=False, cause=f"{type(e).__name__}")

    def snapshot(self) -> Dict[str, Any]:
        """Root check and module signal side by side, for status display."""
        budget = int(self.root_probe.timeouts.root_check_ms) * 2 + _SLACK_MS
        try:
            root, module = self.executor.run_all(
                [self._root_available, self._module_active],
                budget,
                name="authorization_snapshot",
            )
        except Exception as e:  # noqa: BLE001
            self.logger.warning(f"authorization snapshot incomplete: {e}")
            root, module = False, False
        if root:
            method = AuthorizationMethod.ROOT
        elif module:
            method = AuthorizationMethod.LSPOSED
        else:
            method = AuthorizationMethod.NONE
        return {"root": bool(root), "module": bool(module), "method": method}

    def _root_available(self) -> bool:
        try:
            return self.root_probe.check_only().succeeded
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"root check failed unexpectedly: {type(e).__name__}: {e}")
            return False

    def _module_active(self) -> bool:
        try:
            return self.module_signal.is_active()
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"module signal failed unexpectedly: {type(e).__name__}: {e}")
            return False
