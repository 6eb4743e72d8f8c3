from __future__ import annotations

import shlex
from typing import List

from touchblock.core.config.models import ScriptConfig


def _set_touchscreen_enable(cfg: ScriptConfig, value: int) -> str:
    inner = (
        f'if grep -q {shlex.quote(cfg.touchscreen_marker)} "$1/device/name" 2>/dev/null; '
        f'then echo {int(value)} > "$1/device/enable" 2>/dev/null || true; fi'
    )
    return (
        f"find {shlex.quote(cfg.input_class_dir)} -name {shlex.quote(cfg.device_glob)} "
        f"-exec sh -c {shlex.quote(inner)} _ {{}} \\; 2>/dev/null || true"
    )


def _kill_helpers(cfg: ScriptConfig) -> str:
    return f"pkill -f {shlex.quote(cfg.helper_process)} 2>/dev/null || true"


def _chmod_devices(cfg: ScriptConfig, mode: str) -> str:
    return (
        f"find {shlex.quote(cfg.input_dev_dir)} -name {shlex.quote(cfg.device_glob)} "
        f"-exec chmod {mode} {{}} \\; 2>/dev/null || true"
    )


def enable_script(cfg: ScriptConfig) -> List[str]:
    """Block touch input: disable touchscreen nodes, kill event drainers, revoke device access."""
    return [
        _set_touchscreen_enable(cfg, 0),
        _kill_helpers(cfg),
        _chmod_devices(cfg, cfg.blocked_mode),
    ]


def disable_script(cfg: ScriptConfig) -> List[str]:
    return [
        _set_touchscreen_enable(cfg, 1),
        _chmod_devices(cfg, cfg.default_mode),
        _kill_helpers(cfg),
    ]


def script_for(cfg: ScriptConfig, enabled: bool) -> List[str]:
    return enable_script(cfg) if enabled else disable_script(cfg)
