from __future__ import annotations

import importlib
from typing import Callable, Optional

from touchblock.core.logger import get_logger
from touchblock.core.store.preferences import KEY_MODULE_ACTIVE, PreferenceStore


def resolve_symbol(symbol: str) -> bool:
    """
    Resolve ``package.module:Attribute`` (or a bare module path). Any import
    failure means the hook framework is not loaded in this process.
    """
    module_name, _, attr = str(symbol).partition(":")
    if not module_name:
        return False
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return False
    return not attr or hasattr(module, attr)


class ModuleActivationSignal:
    """
    ``is_active()`` = persisted activation flag AND hook framework present.

    The flag is written by the hook side once it has installed itself; this
    class only reads it.
    """

    def __init__(self, *, store: PreferenceStore, bridge_symbol: str, resolver: Optional[Callable[[str], bool]] = None, logger=None):
        self.store = store
        self.bridge_symbol = bridge_symbol
        self._resolve = resolver or resolve_symbol
        self.logger = logger or get_logger("module_signal")

    def flag_set(self) -> bool:
        return self.store.get_bool(KEY_MODULE_ACTIVE, False)

    def hook_framework_present(self) -> bool:
        try:
            return bool(self._resolve(self.bridge_symbol))
        except Exception as e:  # noqa: BLE001
            self.logger.warning(f"hook bridge lookup {self.bridge_symbol} failed: {e}")
            return False

    def is_active(self) -> bool:
        flag = self.flag_set()
        present = self.hook_framework_present() if flag else False
        self.logger.debug(f"module signal: flag={flag} framework_present={present}")
        return flag and present


class HookModuleBridge:
    """Write side of the activation flag, used by the hook component only."""

    def __init__(self, *, store: PreferenceStore):
        self.store = store

    def mark_active(self) -> None:
        self.store.set_bool(KEY_MODULE_ACTIVE, True)

    def mark_inactive(self) -> None:
        self.store.set_bool(KEY_MODULE_ACTIVE, False)
