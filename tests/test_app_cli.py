from __future__ import annotations

import json
import os

import pytest

import app
from touchblock.core.store.preferences import KEY_MODULE_ACTIVE, PreferenceStore


@pytest.fixture
def cli_root(tmp_path):
    """A root whose config keeps every device call short."""
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    (cfg_dir / "touchblock.json").write_text(
        json.dumps(
            {
                "probe": {"su_binary": "/nonexistent/su", "alternate_su_paths": []},
                "timeouts": {"root_check_ms": 300, "root_request_ms": 300, "quick_operation_ms": 200, "retry_delay_ms": 0},
            }
        )
    )
    return str(tmp_path)


def test_print_config(cli_root, capsys):
    assert app.main(["--root", cli_root, "print-config"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["probe"]["su_binary"] == "/nonexistent/su"
    assert out["timeouts"]["root_command_ms"] == 15000
    assert os.path.isdir(os.path.join(cli_root, "logs"))


def test_module_active_writes_flag(cli_root, capsys):
    assert app.main(["--root", cli_root, "module-active", "on"]) == 0
    store = PreferenceStore(path=os.path.join(cli_root, "data", "preferences.json"))
    assert store.get_bool(KEY_MODULE_ACTIVE) is True
    assert app.main(["--root", cli_root, "module-active", "off"]) == 0
    assert store.get_bool(KEY_MODULE_ACTIVE) is False


def test_enable_without_authorization_fails(cli_root, capsys):
    assert app.main(["--root", cli_root, "enable"]) == 1
    err = capsys.readouterr().err
    assert "No root access or active hook module is available." in err


def test_status_basic(cli_root, capsys):
    assert app.main(["--root", cli_root, "status", "--basic"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["enabled"] is False
    assert out["authorization_method"] == "NONE"
    assert out["can_enable"] is False


def test_invalid_config_exits_2(tmp_path, capsys):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "touchblock.json").write_text(json.dumps({"bogus": 1}))
    assert app.main(["--root", str(tmp_path), "print-config"]) == 2
    assert "Configuration error." in capsys.readouterr().err
