from __future__ import annotations

import os

import pytest

from touchblock.core.config.models import AppConfig
from touchblock.core.config.paths import ConfigFsPaths
from touchblock.core.events.bus import EventBus
from touchblock.core.execution.timeouts import TimeoutRetryExecutor
from touchblock.core.store.preferences import PreferenceStore


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated root with config/ and data/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    os.makedirs(os.path.join(fs.root, "data"), exist_ok=True)
    return fs


@pytest.fixture
def app_cfg():
    """Defaults with short timeouts and one alternate su path, so failures are fast."""
    return AppConfig.model_validate(
        {
            "probe": {
                "alternate_su_paths": ["/system/xbin/su"],
                "skip_live_when_unlikely": False,
            },
            "timeouts": {
                "root_request_ms": 1000,
                "root_check_ms": 500,
                "accessibility_check_ms": 500,
                "quick_operation_ms": 300,
                "root_command_ms": 1000,
                "retry_attempts": 2,
                "retry_delay_ms": 10,
            },
        }
    )


@pytest.fixture
def executor():
    ex = TimeoutRetryExecutor(max_workers=8)
    yield ex
    ex.shutdown()


@pytest.fixture
def store(tmp_config_root):
    return PreferenceStore(path=tmp_config_root.resolve("data/preferences.json"), max_backups=2)


@pytest.fixture
def bus():
    b = EventBus()
    yield b
    b.shutdown(0.5)
