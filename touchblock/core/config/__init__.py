from touchblock.core.config.manager import ConfigManager
from touchblock.core.config.models import AppConfig
from touchblock.core.config.paths import ConfigFsPaths

__all__ = ["AppConfig", "ConfigFsPaths", "ConfigManager"]
