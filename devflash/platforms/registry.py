"""Platform registry loading and lookup.

The registry ships as a YAML file next to this module and is loaded
once per process. Alternative registry files can be loaded explicitly
(e.g., for tests or unreleased hardware).
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from devflash.platforms.schema import PlatformRegistrySchema, PlatformSchema

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("platforms.yaml")


class PlatformError(Exception):
    """Base exception for platform registry errors."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class UnknownPlatformError(PlatformError):
    """No platform matches the given id or name."""

    def __init__(self, platform: int | str) -> None:
        super().__init__(
            f"Unknown platform: {platform}", error_code="UNKNOWN_PLATFORM"
        )
        self.platform = platform


class PlatformConfigError(PlatformError):
    """The platform registry has no entry for a module being flashed."""

    def __init__(
        self, platform_name: str, module_type: str, module_index: int
    ) -> None:
        super().__init__(
            f"Platform {platform_name} has no firmware module entry for "
            f"{module_type} (index {module_index})",
            error_code="PLATFORM_CONFIG_ERROR",
        )
        self.platform_name = platform_name
        self.module_type = module_type
        self.module_index = module_index


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the content is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_registry(path: Path) -> tuple[PlatformSchema, ...]:
    """Load and validate a platform registry file.

    Args:
        path: Path to the registry YAML file.

    Returns:
        Tuple of validated platforms.

    Raises:
        pydantic.ValidationError: If the file does not match the schema.
    """
    registry = PlatformRegistrySchema.model_validate(load_yaml(path))
    logger.debug("Loaded %d platforms from %s", len(registry.platforms), path)
    return registry.platforms


@lru_cache(maxsize=1)
def get_platforms() -> tuple[PlatformSchema, ...]:
    """Return the bundled platform registry."""
    return load_registry(DEFAULT_REGISTRY_PATH)


def get_platform(
    platform: int | str,
    platforms: tuple[PlatformSchema, ...] | None = None,
) -> PlatformSchema:
    """Look up a platform by numeric id or name.

    Args:
        platform: Platform id, or name (case-insensitive). Numeric
            strings are treated as ids.
        platforms: Registry to search; defaults to the bundled one.

    Returns:
        The matching platform.

    Raises:
        UnknownPlatformError: No platform matches.
    """
    if platforms is None:
        platforms = get_platforms()

    if isinstance(platform, str) and platform.strip().isdigit():
        platform = int(platform.strip())

    for p in platforms:
        if isinstance(platform, int):
            if p.id == platform:
                return p
        elif p.name == platform.strip().lower():
            return p

    raise UnknownPlatformError(platform)


def known_app_names(
    platforms: tuple[PlatformSchema, ...] | None = None,
) -> set[str]:
    """Names of the known apps of any platform."""
    if platforms is None:
        platforms = get_platforms()
    return {name for p in platforms for name in p.known_apps}


__all__ = [
    "DEFAULT_REGISTRY_PATH",
    "PlatformConfigError",
    "PlatformError",
    "UnknownPlatformError",
    "get_platform",
    "get_platforms",
    "known_app_names",
    "load_registry",
    "load_yaml",
]
