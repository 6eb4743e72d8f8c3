from __future__ import annotations

import threading
import time
from typing import Dict, Optional, Protocol

from touchblock.core.auth.models import AuthorizationMethod
from touchblock.core.auth.resolver import AuthorizationResolver
from touchblock.core.blocking.models import CommandOutcome, ExecutionPhase
from touchblock.core.blocking.scripts import script_for
from touchblock.core.config.models import ScriptConfig
from touchblock.core.errors import (
    CommandExecutionError,
    NoAuthorizationAvailableError,
    OperationTimeoutError,
    PersistenceError,
    TouchBlockError,
)
from touchblock.core.events.bus import EventBus
from touchblock.core.events.models import blocking_changed
from touchblock.core.execution.cancel import CancelledError
from touchblock.core.execution.process import ProcessRunner
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger
from touchblock.core.store.preferences import KEY_TOUCH_BLOCKING_ENABLED, PreferenceStore


class HookToggle(Protocol):
    def set_blocking(self, enabled: bool) -> bool: ...


class UnsupportedHookToggle:
    """The hook module intercepts input on its own; there is no command channel into it yet."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger("hook")

    def set_blocking(self, enabled: bool) -> bool:
        self.logger.warning(f"hook toggle requested (enabled={enabled}) but the hook module exposes no command channel")
        return False


class PrivilegedCommandExecutor:
    """
    IDLE -> RESOLVING -> EXECUTING -> COMMITTED | FAILED

    Executions against the blocking flag are serialized by a per-resource
    lock taken before EXECUTING and released once the call is COMMITTED or
    FAILED. The store is written only after the command succeeded, and the
    change notification goes out only after the write succeeded.
    """

    def __init__(
        self,
        *,
        resolver: AuthorizationResolver,
        runner: ProcessRunner,
        executor: TimeoutRetryExecutor,
        store: PreferenceStore,
        bus: EventBus,
        scripts: ScriptConfig,
        su_binary: str = "su",
        command_timeout_ms: int = 15_000,
        hook_toggle: Optional[HookToggle] = None,
        logger=None,
    ):
        self.resolver = resolver
        self.runner = runner
        self.executor = executor
        self.store = store
        self.bus = bus
        self.scripts = scripts
        self.su_binary = su_binary
        self.command_timeout_ms = int(command_timeout_ms)
        self.logger = logger or get_logger("privileged")
        self.hook_toggle: HookToggle = hook_toggle or UnsupportedHookToggle(logger=self.logger)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def execute(
        self,
        enabled: Optional[bool],
        *,
        resource: str = KEY_TOUCH_BLOCKING_ENABLED,
        trace_id: Optional[str] = None,
    ) -> CommandOutcome:
        """``enabled=None`` flips the persisted value, read under the resource lock."""
        t0 = time.monotonic()
        self._transition(resource, ExecutionPhase.IDLE, ExecutionPhase.RESOLVING)
        method = self.resolver.resolve()
        if method == AuthorizationMethod.NONE:
            target = self._target(resource, enabled)
            return self._failed(resource, target, method, NoAuthorizationAvailableError(resource=resource), t0, ExecutionPhase.RESOLVING)

        with self._lock_for(resource):
            target = self._target(resource, enabled)
            self._transition(resource, ExecutionPhase.RESOLVING, ExecutionPhase.EXECUTING)
            try:
                exit_code = self._run(method, target)
            except CommandExecutionError as e:
                return self._failed(resource, target, method, e, t0, ExecutionPhase.EXECUTING)
            try:
                self.store.set_bool(resource, target)
            except PersistenceError as e:
                return self._failed(resource, target, method, e, t0, ExecutionPhase.EXECUTING)
            self._transition(resource, ExecutionPhase.EXECUTING, ExecutionPhase.COMMITTED)
            if not self.bus.publish(blocking_changed(target, trace_id=trace_id)):
                self.logger.warning(f"{resource}: committed enabled={target} but notification channel is closed")
            elapsed_ms = _elapsed_ms(t0)
            self.logger.info(f"{resource}: committed enabled={target} via {method.value} ({elapsed_ms}ms)")
            return CommandOutcome(
                ok=True,
                enabled=target,
                phase=ExecutionPhase.COMMITTED,
                method=method,
                exit_code=exit_code,
                elapsed_ms=elapsed_ms,
            )

    def toggle(self, *, resource: str = KEY_TOUCH_BLOCKING_ENABLED, trace_id: Optional[str] = None) -> CommandOutcome:
        return self.execute(None, resource=resource, trace_id=trace_id)

    # ---- channels ----
    def _run(self, method: AuthorizationMethod, enabled: bool) -> Optional[int]:
        if method == AuthorizationMethod.ROOT:
            return self._run_root_script(enabled)
        ok = False
        try:
            ok = bool(self.hook_toggle.set_blocking(enabled))
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"hook toggle failed: {type(e).__name__}: {e}")
            raise CommandExecutionError(cause="hook_error", channel=method.value) from e
        if not ok:
            raise CommandExecutionError(cause="hook_rejected", channel=method.value)
        return None

    def _run_root_script(self, enabled: bool) -> int:
        lines = script_for(self.scripts, enabled) + ["exit"]
        action = "enable" if enabled else "disable"
        t0 = time.monotonic()
        try:
            outcome = self.executor.run(
                lambda: self.runner.run([self.su_binary], stdin_lines=lines),
                self.command_timeout_ms,
                name=f"root_command:{action}",
            )
        except OperationTimeoutError as e:
            self.logger.error(f"root {action} script path={self.su_binary} timed out after {_elapsed_ms(t0)}ms (killed)")
            raise CommandExecutionError(cause="timeout", path=self.su_binary, timeout_ms=self.command_timeout_ms) from e
        except CancelledError as e:
            self.logger.error(f"root {action} script path={self.su_binary} cancelled after {_elapsed_ms(t0)}ms")
            raise CommandExecutionError(cause="cancelled", path=self.su_binary) from e
        except OSError as e:
            self.logger.error(f"root {action} script path={self.su_binary} could not start after {_elapsed_ms(t0)}ms: {e}")
            raise CommandExecutionError(cause="io_error", path=self.su_binary, error=type(e).__name__) from e
        if outcome.exit_code != 0:
            self.logger.error(
                f"root {action} script path={self.su_binary} exited {outcome.exit_code} after {outcome.elapsed_ms}ms: {outcome.stderr[:200]}"
            )
            raise CommandExecutionError(exit_code=outcome.exit_code, path=self.su_binary)
        return outcome.exit_code

    # ---- internals ----
    def _lock_for(self, resource: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(resource)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource] = lock
            return lock

    def _target(self, resource: str, enabled: Optional[bool]) -> bool:
        if enabled is not None:
            return bool(enabled)
        current = self.store.get_bool(resource, False)
        self.logger.info(f"{resource}: toggle {current} -> {not current}")
        return not current

    def _transition(self, resource: str, old: ExecutionPhase, new: ExecutionPhase) -> None:
        self.logger.debug(f"{resource}: {old.value} -> {new.value}")

    def _failed(
        self,
        resource: str,
        enabled: bool,
        method: AuthorizationMethod,
        err: TouchBlockError,
        t0: float,
        from_phase: ExecutionPhase,
    ) -> CommandOutcome:
        self._transition(resource, from_phase, ExecutionPhase.FAILED)
        elapsed_ms = _elapsed_ms(t0)
        self.logger.warning(f"{resource}: enabled={enabled} via {method.value} failed after {elapsed_ms}ms: {err}")
        return CommandOutcome(
            ok=False,
            enabled=enabled,
            phase=ExecutionPhase.FAILED,
            method=method,
            error_kind=err.kind,
            error=str(err),
            exit_code=err.context.get("exit_code"),
            elapsed_ms=elapsed_ms,
        )


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
