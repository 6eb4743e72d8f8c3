from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from touchblock.core.execution.cancel import CancelledError, current_scope
from touchblock.core.logger import get_logger


@dataclass(frozen=True)
class ShellOutcome:
    argv: Tuple[str, ...]
    exit_code: int
    stdout_lines: List[str] = field(default_factory=list)
    stderr: str = ""
    elapsed_ms: int = 0

    def first_line(self) -> Optional[str]:
        return self.stdout_lines[0] if self.stdout_lines else None


class ProcessRunner:
    """
    Spawns one-shot children with line-oriented text IO.

    Children run in their own session so a kill takes the whole process group
    with it. The kill is registered on the caller's cancel scope; a scope
    cancelled by a timeout therefore never leaves the child running.
    """

    def __init__(self, *, env: Optional[Dict[str, str]] = None, logger=None):
        self.env = env
        self.logger = logger or get_logger("process")
        self._lock = threading.Lock()
        self._live: Set[subprocess.Popen] = set()

    def run(self, argv: Sequence[str], *, stdin_lines: Optional[Sequence[str]] = None) -> ShellOutcome:
        """
        Run ``argv`` to completion. ``stdin_lines`` are written newline-terminated
        and stdin is closed afterwards. Raises ``OSError`` when the binary cannot
        be started and ``CancelledError`` when the surrounding scope was cancelled.
        """
        args = tuple(str(a) for a in argv)
        scope = current_scope()
        if scope is not None:
            scope.raise_if_cancelled()
        t0 = time.monotonic()
        proc = subprocess.Popen(  # noqa: S603
            list(args),
            stdin=subprocess.PIPE if stdin_lines is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=self.env,
            start_new_session=True,
        )
        with self._lock:
            self._live.add(proc)
        unregister = scope.on_cancel(lambda: self._kill(proc)) if scope is not None else None
        try:
            payload = None
            if stdin_lines is not None:
                payload = "".join(f"{line}\n" for line in stdin_lines)
            out, err = proc.communicate(input=payload)
        finally:
            if unregister is not None:
                unregister()
            if proc.poll() is None:
                self._kill(proc)
            with self._lock:
                self._live.discard(proc)
        if scope is not None and scope.cancelled:
            raise CancelledError(f"{args[0]} cancelled")
        return ShellOutcome(
            argv=args,
            exit_code=int(proc.returncode),
            stdout_lines=(out or "").splitlines(),
            stderr=(err or "").strip(),
            elapsed_ms=int((time.monotonic() - t0) * 1000),
        )

    def live_processes(self) -> int:
        with self._lock:
            return sum(1 for p in self._live if p.poll() is None)

    def _kill(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        except OSError:
            proc.kill()
        try:
            proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            self.logger.error(f"child {proc.pid} did not exit after SIGKILL")
