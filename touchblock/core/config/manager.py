from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from touchblock.core.config.models import AppConfig
from touchblock.core.config.paths import ConfigFsPaths
from touchblock.core.errors import ConfigError
from touchblock.core.logger import get_logger
from touchblock.core.store.io import atomic_write_json, read_json_file, recover_from_corrupt, snapshot_last_known_good


class ConfigManager:
    """
    Loads ``config/touchblock.json``.

    - missing file: defaults are written (unless read-only)
    - corrupt file: moved to backups, last-known-good restored, else defaults
    - invalid values: ``ConfigError`` carrying the pydantic error list
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger or get_logger("config")
        self.read_only = bool(read_only)
        self._cfg: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        raw = self._read_raw()
        try:
            cfg = AppConfig.model_validate(raw)
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            self.logger.error(f"Config invalid: {errors}")
            raise ConfigError(path=self.fs.app, errors=errors) from e
        if not os.path.exists(self.fs.app) and not self.read_only:
            atomic_write_json(self.fs.app, cfg.model_dump(mode="json"))
            self.logger.info(f"Wrote default config to {self.fs.app}")
        if not self.read_only:
            snapshot_last_known_good(self.fs.app, self.fs.last_known_good_dir)
        self._cfg = cfg
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def save(self, cfg: AppConfig, *, max_backups: int = 10) -> None:
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        atomic_write_json(self.fs.app, cfg.model_dump(mode="json"), backups_dir=self.fs.backups_dir, max_backups=max_backups)
        self._cfg = cfg

    def _read_raw(self) -> Dict[str, Any]:
        rr = read_json_file(self.fs.app)
        if rr.ok:
            return rr.data
        if rr.corrupt and not self.read_only:
            data, recovered = recover_from_corrupt(self.fs.app, self.fs.backups_dir, self.fs.last_known_good_dir)
            self.logger.warning(f"Config corrupt ({rr.error}); recovered_from_last_known_good={recovered}")
            return data
        if rr.error not in {None, "missing"}:
            self.logger.warning(f"Config unreadable ({rr.error}); using defaults")
        return {}
