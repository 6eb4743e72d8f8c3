from __future__ import annotations

import threading
import time as _time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from touchblock.core.auth.models import AuthorizationMethod
from touchblock.core.errors import NavigationError
from touchblock.core.events.models import BaseEvent
from touchblock.core.execution.cancel import CancelledError, current_scope
from touchblock.core.execution.process import ShellOutcome


class DummyLogger:
    def debug(self, *_a, **_k): ...
    def info(self, *_a, **_k): ...
    def warning(self, *_a, **_k): ...
    def error(self, *_a, **_k): ...


@dataclass
class Reply:
    exit_code: int = 0
    stdout: List[str] = field(default_factory=list)
    stderr: str = ""
    hang: bool = False
    delay_s: float = 0.0
    oserror: bool = False


ReplyKey = Union[str, Tuple[str, ...]]


class FakeProcessRunner:
    """
    Scripted stand-in for ProcessRunner.

    Replies are looked up by exact argv tuple first, then by argv[0]. A
    ``hang`` reply blocks until the surrounding cancel scope is cancelled,
    the same way a real child blocks until it is killed.
    """

    def __init__(self, replies: Optional[Dict[ReplyKey, Reply]] = None, *, default: Optional[Reply] = None):
        self.replies: Dict[ReplyKey, Reply] = dict(replies or {})
        self.default = default or Reply(exit_code=127, stderr="not found")
        self.calls: List[Tuple[Tuple[str, ...], Optional[Tuple[str, ...]]]] = []
        self.killed = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def on(self, key: ReplyKey, reply: Reply) -> "FakeProcessRunner":
        self.replies[key] = reply
        return self

    def argvs(self) -> List[Tuple[str, ...]]:
        with self._lock:
            return [a for a, _ in self.calls]

    def run(self, argv: Sequence[str], *, stdin_lines: Optional[Sequence[str]] = None) -> ShellOutcome:
        args = tuple(str(a) for a in argv)
        with self._lock:
            self.calls.append((args, tuple(stdin_lines) if stdin_lines is not None else None))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            return self._run(args)
        finally:
            with self._lock:
                self.active -= 1

    def _run(self, args: Tuple[str, ...]) -> ShellOutcome:
        reply = self.replies.get(args) or self.replies.get(args[0]) or self.default
        scope = current_scope()
        if scope is not None:
            scope.raise_if_cancelled()
        if reply.oserror:
            raise FileNotFoundError(2, "No such file or directory", args[0])
        if reply.hang or reply.delay_s:
            killed = threading.Event()
            unregister = scope.on_cancel(killed.set) if scope is not None else (lambda: None)
            try:
                if killed.wait(timeout=30.0 if reply.hang else reply.delay_s):
                    with self._lock:
                        self.killed += 1
                    raise CancelledError(f"{args[0]} killed")
            finally:
                unregister()
            if reply.hang:
                raise AssertionError(f"{args[0]} hung and was never killed")
        return ShellOutcome(argv=args, exit_code=reply.exit_code, stdout_lines=list(reply.stdout), stderr=reply.stderr)


def su_granted(sentinel: str = "root_test_success") -> Reply:
    return Reply(exit_code=0, stdout=[sentinel])


@dataclass
class FakeDeviceInfo:
    paths: Set[str] = field(default_factory=set)
    props: Dict[str, str] = field(default_factory=dict)
    packages: Set[str] = field(default_factory=set)
    fail_packages: bool = False

    def path_exists(self, path: str) -> bool:
        return path in self.paths

    def prop(self, name: str) -> str:
        return self.props.get(name, "")

    def installed_packages(self) -> Set[str]:
        if self.fail_packages:
            raise RuntimeError("package manager unavailable")
        return set(self.packages)


@dataclass
class FakeHookToggle:
    result: bool = True
    fail: bool = False
    calls: List[bool] = field(default_factory=list)

    def set_blocking(self, enabled: bool) -> bool:
        self.calls.append(bool(enabled))
        if self.fail:
            raise RuntimeError("hook channel broken")
        return self.result


@dataclass
class FakeAccessibility:
    enabled: bool = True
    running: bool = True
    fail: bool = False

    def is_service_enabled(self) -> bool:
        if self.fail:
            raise RuntimeError("settings provider unavailable")
        return self.enabled

    def is_service_running(self) -> bool:
        return self.running

    def status(self) -> Dict[str, Any]:
        return {"component": "fake", "enabled": self.is_service_enabled(), "running": self.running}


@dataclass
class FakeNavigator:
    error: Optional[Exception] = None
    opened: int = 0

    def open_accessibility_settings(self) -> None:
        if self.error is not None:
            raise self.error
        self.opened += 1


def navigation_failure() -> NavigationError:
    return NavigationError(action="android.settings.ACCESSIBILITY_SETTINGS", exit_code=1)


class FakeResolver:
    def __init__(self, method: AuthorizationMethod = AuthorizationMethod.ROOT):
        self.method = method
        self.calls = 0

    def resolve(self, *, check_root: bool = True) -> AuthorizationMethod:
        self.calls += 1
        return self.method


class RecordingSubscriber:
    def __init__(self):
        self.events: List[BaseEvent] = []
        self._cv = threading.Condition()

    def __call__(self, ev: BaseEvent) -> None:
        with self._cv:
            self.events.append(ev)
            self._cv.notify_all()

    def wait_for(self, n: int, timeout: float = 2.0) -> bool:
        deadline = _time.monotonic() + timeout
        with self._cv:
            while len(self.events) < n:
                remaining = deadline - _time.monotonic()
                if remaining <= 0:
                    return False
                self._cv.wait(remaining)
            return True


def wait_until(pred: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = _time.monotonic() + timeout
    while _time.monotonic() < deadline:
        if pred():
            return True
        _time.sleep(interval)
    return pred()
