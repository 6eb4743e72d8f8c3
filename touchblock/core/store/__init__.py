from touchblock.core.store.preferences import (
    KEY_FIRST_RUN,
    KEY_MODULE_ACTIVE,
    KEY_TOUCH_BLOCKING_ENABLED,
    PreferenceStore,
)

__all__ = [
    "KEY_FIRST_RUN",
    "KEY_MODULE_ACTIVE",
    "KEY_TOUCH_BLOCKING_ENABLED",
    "PreferenceStore",
]
