from plantops.core.config.manager import ConfigManager
from plantops.core.config.models import AccessPolicy, AppConfig
from plantops.core.config.paths import ConfigFsPaths

__all__ = ["AccessPolicy", "AppConfig", "ConfigFsPaths", "ConfigManager"]
