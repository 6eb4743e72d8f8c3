from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

from touchblock.core.auth.heuristics import RootHeuristics
from touchblock.core.auth.models import ProbeResult
from touchblock.core.config.models import ProbeConfig, TimeoutsConfig
from touchblock.core.errors import OperationTimeoutError, ProbeIOError, ProbeTimeoutError, TouchBlockError
from touchblock.core.execution.cancel import CancelledError, current_scope
from touchblock.core.execution.process import ProcessRunner, ShellOutcome
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.logger import get_logger


class ProbeMode(str, Enum):
    check = "check"
    request = "request"


@dataclass(frozen=True)
class ProbeAttempt:
    strategy: str
    argv: Tuple[str, ...]
    stdin_lines: Optional[Tuple[str, ...]] = None


class ProbeStrategy(Protocol):
    name: str

    def attempts(self) -> Iterable[ProbeAttempt]: ...


def echo_sentinel(sentinel: str) -> str:
    return f"echo '{sentinel}'"


class InteractiveShellStrategy:
    """Open a bare superuser shell and feed it the echo plus ``exit`` on stdin."""

    name = "interactive_shell"

    def __init__(self, *, su_binary: str, sentinel: str):
        self.su_binary = su_binary
        self.sentinel = sentinel

    def attempts(self) -> Iterator[ProbeAttempt]:
        yield ProbeAttempt(self.name, (self.su_binary,), (echo_sentinel(self.sentinel), "exit"))


class SingleCommandStrategy:
    name = "single_command"

    def __init__(self, *, su_binary: str, sentinel: str):
        self.su_binary = su_binary
        self.sentinel = sentinel

    def attempts(self) -> Iterator[ProbeAttempt]:
        yield ProbeAttempt(self.name, (self.su_binary, "-c", echo_sentinel(self.sentinel)))


class AlternatePathStrategy:
    name = "alternate_path"

    def __init__(self, *, paths: Sequence[str], sentinel: str):
        self.paths = list(paths)
        self.sentinel = sentinel

    def attempts(self) -> Iterator[ProbeAttempt]:
        for path in self.paths:
            yield ProbeAttempt(f"{self.name}:{path}", (path, "-c", echo_sentinel(self.sentinel)))


def default_strategies(cfg: ProbeConfig) -> List[ProbeStrategy]:
    return [
        InteractiveShellStrategy(su_binary=cfg.su_binary, sentinel=cfg.sentinel),
        SingleCommandStrategy(su_binary=cfg.su_binary, sentinel=cfg.sentinel),
        AlternatePathStrategy(paths=cfg.alternate_su_paths, sentinel=cfg.sentinel),
    ]


def sentinel_accepted(outcome: ShellOutcome, sentinel: str) -> bool:
    """Exit code 0 and the sentinel on the first stdout line; neither alone is enough."""
    first = outcome.first_line()
    return outcome.exit_code == 0 and first is not None and sentinel in first


class RootProbe:
    """
    Live superuser probe.

    Strategies are tried in order until one is accepted. The whole chain
    shares one deadline, and each attempt runs under ``TimeoutRetryExecutor.run``
    with an even share of whatever budget remains. A hung ``su`` is killed at
    the end of its share and the next strategy still gets its turn; the caller
    never waits past the mode's timeout.
    """

    def __init__(
        self,
        *,
        cfg: ProbeConfig,
        timeouts: TimeoutsConfig,
        runner: ProcessRunner,
        executor: TimeoutRetryExecutor,
        heuristics: Optional[RootHeuristics] = None,
        strategies: Optional[Sequence[ProbeStrategy]] = None,
        logger=None,
    ):
        self.cfg = cfg
        self.timeouts = timeouts
        self.runner = runner
        self.executor = executor
        self.heuristics = heuristics
        self.strategies: List[ProbeStrategy] = list(strategies) if strategies is not None else default_strategies(cfg)
        self.logger = logger or get_logger("root_probe")

    def check_only(self, timeout_ms: Optional[int] = None) -> ProbeResult:
        budget = int(timeout_ms if timeout_ms is not None else self.timeouts.root_check_ms)
        t0 = time.monotonic()
        if self.cfg.skip_live_when_unlikely and self.heuristics is not None:
            # at most half the window, so a slow pre-filter still leaves room for the live probe
            window_ms = max(1, min(int(self.timeouts.quick_operation_ms), budget // 2))
            likely = self.executor.run_or_default(self.heuristics.is_likely_rooted, window_ms, True, name="root_heuristics")
            if not likely:
                elapsed_ms = _elapsed_ms(t0)
                self.logger.info(f"root check skipped: no root indicators ({elapsed_ms}ms)")
                return ProbeResult(succeeded=False, elapsed_ms=elapsed_ms, strategy="heuristics", cause="no root indicators")
        remaining = budget - _elapsed_ms(t0)
        return self._probe(ProbeMode.check, remaining, started=t0)

    def request(self, timeout_ms: Optional[int] = None) -> ProbeResult:
        budget = int(timeout_ms if timeout_ms is not None else self.timeouts.root_request_ms)
        return self._probe(ProbeMode.request, budget, started=time.monotonic())

    def is_likely_rooted(self) -> bool:
        if self.heuristics is None:
            return False
        return self.heuristics.is_likely_rooted()

    # ---- internals ----
    def _attempts(self) -> Iterator[ProbeAttempt]:
        for strategy in self.strategies:
            yield from strategy.attempts()

    def _probe(self, mode: ProbeMode, budget_ms: int, *, started: float) -> ProbeResult:
        deadline = time.monotonic() + max(0, budget_ms) / 1000.0
        scope = current_scope()
        attempts = list(self._attempts())
        last_error: Optional[TouchBlockError] = None
        last_strategy: Optional[str] = None
        for index, attempt in enumerate(attempts):
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms <= 0 or (scope is not None and scope.cancelled):
                last_error = ProbeTimeoutError(mode=mode.value, budget_ms=budget_ms, next_strategy=attempt.strategy)
                self.logger.warning(f"root {mode.value}: budget exhausted before {attempt.strategy}")
                break
            # a hung attempt may only use its share; time left over by fast failures rolls forward
            slice_ms = max(1, remaining_ms // (len(attempts) - index))
            last_strategy = attempt.strategy
            error = self._run_attempt(mode, attempt, slice_ms)
            if error is None:
                elapsed_ms = _elapsed_ms(started)
                self.logger.info(f"root {mode.value}: granted via {attempt.strategy} ({elapsed_ms}ms)")
                return ProbeResult.ok(elapsed_ms=elapsed_ms, strategy=attempt.strategy)
            last_error = error
        elapsed_ms = _elapsed_ms(started)
        self.logger.info(f"root {mode.value}: not available ({elapsed_ms}ms, last={last_error})")
        return ProbeResult.failed(elapsed_ms=elapsed_ms, error=last_error, strategy=last_strategy)

    def _run_attempt(self, mode: ProbeMode, attempt: ProbeAttempt, budget_ms: int) -> Optional[TouchBlockError]:
        t0 = time.monotonic()
        path = attempt.argv[0]
        try:
            outcome = self.executor.run(
                lambda: self.runner.run(attempt.argv, stdin_lines=attempt.stdin_lines),
                budget_ms,
                name=f"root_{mode.value}:{attempt.strategy}",
            )
        except (OperationTimeoutError, CancelledError):
            err: TouchBlockError = ProbeTimeoutError(strategy=attempt.strategy, path=path, budget_ms=budget_ms)
            self.logger.warning(f"root {mode.value}: {attempt.strategy} path={path} timed out after {_elapsed_ms(t0)}ms (killed)")
            return err
        except OSError as e:
            self.logger.debug(f"root {mode.value}: {attempt.strategy} path={path} could not start: {e}")
            return ProbeIOError(strategy=attempt.strategy, path=path, error=type(e).__name__)
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"root {mode.value}: {attempt.strategy} path={path} failed: {type(e).__name__}: {e}")
            return ProbeIOError(strategy=attempt.strategy, path=path, error=type(e).__name__)
        if sentinel_accepted(outcome, self.cfg.sentinel):
            return None
        self.logger.debug(
            f"root {mode.value}: {attempt.strategy} path={path} rejected "
            f"(exit={outcome.exit_code}, {outcome.elapsed_ms}ms, sentinel_seen={self.cfg.sentinel in (outcome.first_line() or '')})"
        )
        return ProbeIOError(strategy=attempt.strategy, path=path, exit_code=outcome.exit_code, reason="rejected")


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
