from __future__ import annotations

import os
import threading
import time

import pytest

from touchblock.core.auth.models import AuthorizationMethod
from touchblock.core.blocking.executor import PrivilegedCommandExecutor
from touchblock.core.blocking.models import ExecutionPhase
from touchblock.core.blocking.scripts import disable_script, enable_script
from touchblock.core.errors import ErrorKind
from touchblock.core.events.models import TOUCH_BLOCKING_CHANGED
from touchblock.core.store.preferences import KEY_TOUCH_BLOCKING_ENABLED, PreferenceStore
from tests.helpers.fakes import FakeHookToggle, FakeProcessRunner, FakeResolver, RecordingSubscriber, Reply, wait_until


@pytest.fixture
def events(bus):
    rec = RecordingSubscriber()
    bus.subscribe(TOUCH_BLOCKING_CHANGED, rec)
    return rec


def _commands(app_cfg, executor, store, bus, runner, *, method=AuthorizationMethod.ROOT, timeout_ms=1000, hook=None):
    return PrivilegedCommandExecutor(
        resolver=FakeResolver(method),
        runner=runner,
        executor=executor,
        store=store,
        bus=bus,
        scripts=app_cfg.scripts,
        command_timeout_ms=timeout_ms,
        hook_toggle=hook,
    )


def test_no_authorization_fails_without_side_effects(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply()})
    out = _commands(app_cfg, executor, store, bus, runner, method=AuthorizationMethod.NONE).execute(True)
    assert not out.ok
    assert out.phase == ExecutionPhase.FAILED
    assert out.error_kind == ErrorKind.no_authorization
    assert runner.calls == []
    assert not os.path.exists(store.path)
    assert bus.get_stats()["published_total"] == 0


def test_root_success_persists_and_notifies_once(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply(exit_code=0)})
    out = _commands(app_cfg, executor, store, bus, runner).execute(True)
    assert out.ok
    assert out.phase == ExecutionPhase.COMMITTED
    assert out.method == AuthorizationMethod.ROOT
    assert out.exit_code == 0
    assert runner.calls == [(("su",), tuple(enable_script(app_cfg.scripts) + ["exit"]))]
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is True
    assert events.wait_for(1)
    time.sleep(0.1)
    assert len(events.events) == 1
    assert events.events[0].payload == {"enabled": True}


def test_disable_runs_restore_script(app_cfg, executor, store, bus):
    runner = FakeProcessRunner({("su",): Reply(exit_code=0)})
    store.set_bool(KEY_TOUCH_BLOCKING_ENABLED, True)
    out = _commands(app_cfg, executor, store, bus, runner).execute(False)
    assert out.ok and out.enabled is False
    assert runner.calls[0][1] == tuple(disable_script(app_cfg.scripts) + ["exit"])
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is False


def test_repeated_enable_is_idempotent(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply(exit_code=0)})
    commands = _commands(app_cfg, executor, store, bus, runner)
    assert commands.execute(True).ok
    assert commands.execute(True).ok
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is True
    assert events.wait_for(2)
    assert [e.payload["enabled"] for e in events.events] == [True, True]


def test_toggle_reads_current_value_under_lock(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply(exit_code=0, delay_s=0.05)})
    commands = _commands(app_cfg, executor, store, bus, runner)
    threads = [threading.Thread(target=commands.toggle) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)
    assert events.wait_for(3)
    assert [e.payload["enabled"] for e in events.events] == [True, False, True]
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is True
    # the scripts alternate as well
    scripts = [stdin for argv, stdin in runner.calls]
    assert scripts[0] == tuple(enable_script(app_cfg.scripts) + ["exit"])
    assert scripts[1] == tuple(disable_script(app_cfg.scripts) + ["exit"])


def test_failed_toggle_reports_flipped_target(app_cfg, executor, store, bus, events):
    store.set_bool(KEY_TOUCH_BLOCKING_ENABLED, True)
    out = _commands(app_cfg, executor, store, bus, FakeProcessRunner(), method=AuthorizationMethod.NONE).toggle()
    assert not out.ok
    assert out.enabled is False
    assert out.error_kind == ErrorKind.no_authorization
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is True


def test_nonzero_exit_leaves_store_and_channel_untouched(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply(exit_code=1, stderr="Permission denied")})
    out = _commands(app_cfg, executor, store, bus, runner).execute(True)
    assert not out.ok
    assert out.phase == ExecutionPhase.FAILED
    assert out.error_kind == ErrorKind.command_failed
    assert out.exit_code == 1
    assert not os.path.exists(store.path)
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is False
    assert bus.get_stats()["published_total"] == 0


def test_missing_su_binary_is_a_command_failure(app_cfg, executor, store, bus):
    runner = FakeProcessRunner({("su",): Reply(oserror=True)})
    out = _commands(app_cfg, executor, store, bus, runner).execute(True)
    assert out.error_kind == ErrorKind.command_failed
    assert "io_error" in (out.error or "")


def test_hung_command_is_killed_and_fails(app_cfg, executor, store, bus):
    runner = FakeProcessRunner({("su",): Reply(hang=True)})
    t0 = time.monotonic()
    out = _commands(app_cfg, executor, store, bus, runner, timeout_ms=200).execute(True)
    assert time.monotonic() - t0 < 1.0
    assert out.error_kind == ErrorKind.command_failed
    assert "timeout" in (out.error or "")
    assert wait_until(lambda: runner.killed == 1)
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is False


def test_persistence_failure_fails_without_notification(app_cfg, executor, tmp_path, bus, events):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = PreferenceStore(path=str(blocker / "preferences.json"))
    runner = FakeProcessRunner({("su",): Reply(exit_code=0)})
    out = _commands(app_cfg, executor, store, bus, runner).execute(True)
    assert not out.ok
    assert out.error_kind == ErrorKind.persistence_failed
    assert bus.get_stats()["published_total"] == 0


def test_hook_channel(app_cfg, executor, store, bus, events):
    hook = FakeHookToggle(result=True)
    runner = FakeProcessRunner()
    out = _commands(app_cfg, executor, store, bus, runner, method=AuthorizationMethod.LSPOSED, hook=hook).execute(True)
    assert out.ok
    assert out.method == AuthorizationMethod.LSPOSED
    assert hook.calls == [True]
    assert runner.calls == []
    assert events.wait_for(1)


def test_hook_channel_without_command_path_fails(app_cfg, executor, store, bus):
    out = _commands(app_cfg, executor, store, bus, FakeProcessRunner(), method=AuthorizationMethod.LSPOSED).execute(True)
    assert out.error_kind == ErrorKind.command_failed
    assert "hook_rejected" in (out.error or "")

    broken = FakeHookToggle(fail=True)
    out = _commands(app_cfg, executor, store, bus, FakeProcessRunner(), method=AuthorizationMethod.LSPOSED, hook=broken).execute(True)
    assert "hook_error" in (out.error or "")
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is False


def test_concurrent_executions_never_overlap(app_cfg, executor, store, bus, events):
    runner = FakeProcessRunner({("su",): Reply(exit_code=0, delay_s=0.05)})
    commands = _commands(app_cfg, executor, store, bus, runner)
    results = []
    lock = threading.Lock()

    def worker(enabled):
        out = commands.execute(enabled)
        with lock:
            results.append(out)

    threads = [threading.Thread(target=worker, args=(i % 2 == 0,)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)
    assert len(results) == 6
    assert all(r.ok for r in results)
    assert runner.max_active == 1
    assert events.wait_for(6)
    # the persisted value matches the last notification
    assert store.get_bool(KEY_TOUCH_BLOCKING_ENABLED) is events.events[-1].payload["enabled"]
