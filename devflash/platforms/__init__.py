"""Hardware platform registry.

This module handles:
- Loading the bundled platform definitions (YAML)
- Schema validation of platform definitions
- Lookup of platforms by id or name
- Known apps (ready-made binaries such as Tinker) per platform
"""

from devflash.platforms.registry import (
    PlatformConfigError,
    PlatformError,
    UnknownPlatformError,
    get_platform,
    get_platforms,
    known_app_names,
    load_registry,
)
from devflash.platforms.schema import (
    FirmwareModuleSchema,
    PlatformRegistrySchema,
    PlatformSchema,
)

__all__ = [
    # Schema
    "FirmwareModuleSchema",
    "PlatformRegistrySchema",
    "PlatformSchema",
    # Registry
    "PlatformConfigError",
    "PlatformError",
    "UnknownPlatformError",
    "get_platform",
    "get_platforms",
    "known_app_names",
    "load_registry",
]
