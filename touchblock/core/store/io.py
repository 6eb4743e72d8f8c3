from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None

    @property
    def corrupt(self) -> bool:
        return bool(self.error and self.error.startswith("corrupt_json"))


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except OSError as e:
        return ReadResult(ok=False, data={}, error=f"io:{e}")
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="corrupt_json:not_object")
    return ReadResult(ok=True, data=obj)


def rotate_backup(path: str, backups_dir: str, *, reason: str, max_backups: int) -> Optional[str]:
    if max_backups <= 0 or not os.path.exists(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    base = os.path.basename(path)
    out = os.path.join(backups_dir, f"{base}.{_ts()}.{reason}.json")
    shutil.copy2(path, out)
    prefix = f"{base}."
    items = sorted(
        (os.path.join(backups_dir, f) for f in os.listdir(backups_dir) if f.startswith(prefix)),
        key=os.path.getmtime,
        reverse=True,
    )
    for stale in items[max_backups:]:
        try:
            os.remove(stale)
        except OSError:
            pass
    return out


def atomic_write_json(path: str, data: Dict[str, Any], *, backups_dir: Optional[str] = None, max_backups: int = 0) -> None:
    """
    Write ``data`` through a temp file in the same directory and ``os.replace``
    it into place; readers see either the old or the new document.
    Raises ``OSError`` on failure.
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    if backups_dir:
        rotate_backup(path, backups_dir, reason="prewrite", max_backups=max_backups)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def quarantine_corrupt(path: str, backups_dir: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    dst = os.path.join(backups_dir, f"{os.path.basename(path)}.{_ts()}.corrupt.json")
    shutil.move(path, dst)
    return dst


def recover_from_corrupt(path: str, backups_dir: str, last_known_good_dir: str) -> Tuple[Dict[str, Any], bool]:
    """
    Move the corrupt file aside and restore ``last_known_good/<name>`` if present.
    Returns (data, recovered).
    """
    quarantine_corrupt(path, backups_dir)
    rr = read_json_file(os.path.join(last_known_good_dir, os.path.basename(path)))
    if rr.ok:
        atomic_write_json(path, rr.data)
        return rr.data, True
    return {}, False


def snapshot_last_known_good(path: str, last_known_good_dir: str) -> None:
    if not os.path.isfile(path):
        return
    os.makedirs(last_known_good_dir, exist_ok=True)
    shutil.copy2(path, os.path.join(last_known_good_dir, os.path.basename(path)))
