from __future__ import annotations

import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from touchblock.core.errors import PersistenceError
from touchblock.core.logger import get_logger
from touchblock.core.store.io import atomic_write_json, quarantine_corrupt, read_json_file

KEY_TOUCH_BLOCKING_ENABLED = "touch_blocking_enabled"
KEY_MODULE_ACTIVE = "module_active"
KEY_FIRST_RUN = "first_run"

DEFAULTS: Dict[str, bool] = {
    KEY_TOUCH_BLOCKING_ENABLED: False,
    KEY_MODULE_ACTIVE: False,
    KEY_FIRST_RUN: True,
}

ChangeListener = Callable[[str, Optional[bool]], None]


class PreferenceStore:
    """
    Boolean key-value store backed by one JSON document.

    Each ``set_bool``/``clear`` is a single read-modify-write under a process
    lock, published with an atomic replace so another process reading the file
    sees either the old or the new value. Nothing is cached: every read goes to
    disk, since the hook side writes ``module_active`` from another process.
    """

    def __init__(self, *, path: str, backups_dir: Optional[str] = None, max_backups: int = 0, logger=None):
        self.path = path
        self.backups_dir = backups_dir or os.path.join(os.path.dirname(path) or ".", "backups")
        self.max_backups = int(max_backups)
        self.logger = logger or get_logger("store")
        self._lock = threading.Lock()
        self._listeners: List[ChangeListener] = []

    # ---- reads ----
    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        if default is None:
            default = DEFAULTS.get(key, False)
        with self._lock:
            values = self._load_values()
        value = values.get(key)
        return bool(value) if isinstance(value, bool) else bool(default)

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            values = self._load_values()
        out = dict(DEFAULTS)
        out.update({k: v for k, v in values.items() if isinstance(v, bool)})
        return out

    # ---- writes ----
    def set_bool(self, key: str, value: bool) -> None:
        if not key:
            raise ValueError("key required")
        with self._lock:
            values = self._load_values()
            values[str(key)] = bool(value)
            self._write_locked(values, op="set", key=key)
        self._notify(key, bool(value))

    def clear(self, key: str) -> None:
        with self._lock:
            values = self._load_values()
            if key not in values:
                return
            values.pop(key, None)
            self._write_locked(values, op="clear", key=key)
        self._notify(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._write_locked({}, op="clear_all", key="*")
        self._notify("*", None)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    # ---- internals ----
    def _load_values(self) -> Dict[str, Any]:
        rr = read_json_file(self.path)
        if rr.ok:
            values = rr.data.get("values")
            return dict(values) if isinstance(values, dict) else {}
        if rr.corrupt:
            self.logger.warning(f"Preferences corrupt ({rr.error}); starting from defaults")
            try:
                quarantine_corrupt(self.path, self.backups_dir)
            except OSError as e:
                self.logger.error(f"Could not move corrupt preferences aside: {e}")
        return {}

    def _write_locked(self, values: Dict[str, Any], *, op: str, key: str) -> None:
        t0 = time.monotonic()
        doc = {"values": values, "updated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())}
        try:
            atomic_write_json(self.path, doc, backups_dir=self.backups_dir, max_backups=self.max_backups)
        except OSError as e:
            elapsed_ms = int((time.monotonic() - t0) * 1000)
            self.logger.error(f"preferences.{op} key={key} path={self.path} failed after {elapsed_ms}ms: {e}")
            raise PersistenceError(operation=op, key=key, path=self.path) from e

    def _notify(self, key: str, value: Optional[bool]) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception as e:  # noqa: BLE001
                self.logger.warning(f"preferences listener failed: {e}")
