from plantops.core.modules.capabilities import ModuleCapabilities
from plantops.core.modules.registry import ModuleEntry, ModuleLifecycleRegistry

__all__ = ["ModuleCapabilities", "ModuleEntry", "ModuleLifecycleRegistry"]
