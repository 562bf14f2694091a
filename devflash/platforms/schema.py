"""Pydantic models for the platform registry.

Platform definitions are loaded from YAML and validated here before
use. The models are frozen: the registry is read-only reference data.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devflash.types import ModuleType, StorageLocation


class FirmwareModuleSchema(BaseModel):
    """Where a platform keeps one firmware module.

    Attributes:
        type: Module type.
        index: Module index (0 when the platform has a single module of the type).
        storage: Internal flash or external storage.
        encrypted: Whether the module is provisioned encrypted.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: ModuleType
    index: int = Field(default=0, ge=0, le=255)
    storage: StorageLocation
    encrypted: bool = False


class PlatformSchema(BaseModel):
    """A hardware platform.

    Attributes:
        id: Numeric platform id, as stored in module prefixes.
        name: Short machine name (e.g., 'boron').
        display_name: Human-readable name.
        generation: Hardware generation.
        firmware_modules: Firmware modules the platform supports.
        known_apps: Ready-made applications by name, as binary paths
            relative to the known apps directory.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(ge=0, le=65535)
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    generation: int = Field(ge=1)
    firmware_modules: tuple[FirmwareModuleSchema, ...] = Field(min_length=1)
    known_apps: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is lowercase without spaces."""
        if v != v.lower() or " " in v:
            raise ValueError(f"name must be lowercase without spaces, got '{v}'")
        return v


class PlatformRegistrySchema(BaseModel):
    """Top-level document of the platform registry file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    platforms: tuple[PlatformSchema, ...]

    @field_validator("platforms")
    @classmethod
    def validate_unique(
        cls, v: tuple[PlatformSchema, ...]
    ) -> tuple[PlatformSchema, ...]:
        """Validate platform ids and names are unique."""
        ids = [p.id for p in v]
        names = [p.name for p in v]
        if len(set(ids)) != len(ids):
            raise ValueError("platform ids must be unique")
        if len(set(names)) != len(names):
            raise ValueError("platform names must be unique")
        return v


__all__ = ["FirmwareModuleSchema", "PlatformRegistrySchema", "PlatformSchema"]
