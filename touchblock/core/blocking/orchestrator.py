from __future__ import annotations

from typing import Optional

from touchblock.core.accessibility import AccessibilityProbe, Navigator
from touchblock.core.auth.models import AuthorizationMethod
from touchblock.core.auth.resolver import AuthorizationResolver
from touchblock.core.blocking.executor import PrivilegedCommandExecutor
from touchblock.core.blocking.models import BlockingState, CommandOutcome, ToggleResult
from touchblock.core.errors import ErrorKind, NavigationError, user_message_for
from touchblock.core.logger import get_logger
from touchblock.core.store.preferences import KEY_TOUCH_BLOCKING_ENABLED, PreferenceStore


class ToggleOrchestrator:
    """
    Entry point for the user-facing operations. Every call returns a result
    object; failures are reported through ``error_kind`` and a message looked
    up from that kind.
    """

    def __init__(
        self,
        *,
        commands: PrivilegedCommandExecutor,
        resolver: AuthorizationResolver,
        store: PreferenceStore,
        accessibility: AccessibilityProbe,
        navigator: Navigator,
        logger=None,
    ):
        self.commands = commands
        self.resolver = resolver
        self.store = store
        self.accessibility = accessibility
        self.navigator = navigator
        self.logger = logger or get_logger("orchestrator")

    def persisted_enabled(self) -> bool:
        return self.store.get_bool(KEY_TOUCH_BLOCKING_ENABLED, False)

    def set_blocking(self, enabled: bool, *, trace_id: Optional[str] = None) -> ToggleResult:
        return self._result(self.commands.execute(bool(enabled), trace_id=trace_id))

    def toggle(self, *, trace_id: Optional[str] = None) -> ToggleResult:
        """Flip the persisted flag; the current value is read under the command lock."""
        return self._result(self.commands.toggle(trace_id=trace_id))

    def _result(self, outcome: CommandOutcome) -> ToggleResult:
        if outcome.ok:
            return ToggleResult(ok=True, enabled=outcome.enabled, method=outcome.method)
        return ToggleResult(
            ok=False,
            enabled=self.persisted_enabled(),
            method=outcome.method,
            error_kind=outcome.error_kind,
            message=user_message_for(outcome.error_kind),
        )

    def observe_state(self, *, check_root: bool = True) -> BlockingState:
        """
        ``check_root=False`` skips the live superuser probe, so only the hook
        channel can be reported.
        """
        enabled = False
        try:
            enabled = self.persisted_enabled()
            accessibility_enabled = bool(self.accessibility.is_service_enabled())
            method = self.resolver.resolve(check_root=check_root)
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"error observing touch blocking state: {type(e).__name__}: {e}")
            return BlockingState(enabled=enabled, error=str(e) or type(e).__name__)
        return BlockingState(
            enabled=enabled,
            accessibility_service_enabled=accessibility_enabled,
            authorization_method=method,
        )

    def request_root_permission(self) -> ToggleResult:
        result = self.resolver.request_root()
        enabled = self.persisted_enabled()
        if result.succeeded:
            self.logger.info(f"root granted via {result.strategy} ({result.elapsed_ms}ms)")
            return ToggleResult(ok=True, enabled=enabled, method=AuthorizationMethod.ROOT)
        kind = result.cause_kind or ErrorKind.no_authorization
        self.logger.warning(f"root not granted: {result.cause or kind.value} ({result.elapsed_ms}ms)")
        return ToggleResult(ok=False, enabled=enabled, error_kind=kind, message=user_message_for(kind))

    def open_accessibility_settings(self) -> ToggleResult:
        enabled = self.persisted_enabled()
        try:
            self.navigator.open_accessibility_settings()
        except NavigationError as e:
            self.logger.error(f"accessibility settings navigation failed: {e}")
            return ToggleResult(ok=False, enabled=enabled, error_kind=e.kind, message=user_message_for(e.kind))
        except Exception as e:  # noqa: BLE001
            err = NavigationError(cause=type(e).__name__)
            self.logger.error(f"accessibility settings navigation failed: {err}: {e}")
            return ToggleResult(ok=False, enabled=enabled, error_kind=err.kind, message=user_message_for(err.kind))
        return ToggleResult(ok=True, enabled=enabled)
