"""Firmware module descriptors.

A ModuleDescriptor is the parsed form of one firmware binary: its raw
bytes plus the metadata read from the module prefix (header) and
suffix (footer).
"""

from dataclasses import dataclass, field
from pathlib import Path

from devflash.types import ModuleFlags, ModuleFunction

# Suffix size reported when a binary carries no inspection metadata
INVALID_SUFFIX_SIZE = 65535

# Product id/version reported when a binary is not product firmware
DEFAULT_PRODUCT_ID = 65535
DEFAULT_PRODUCT_VERSION = 65535


@dataclass(frozen=True)
class ModuleDependency:
    """A dependency declared in a module prefix.

    Attributes:
        module_function: Function code of the required module.
        module_index: Index of the required module.
        module_version: Minimum version of the required module.
    """

    module_function: int
    module_index: int
    module_version: int


@dataclass(frozen=True)
class PrefixInfo:
    """Metadata from the module prefix.

    Attributes:
        platform_id: Platform the module was built for.
        module_function: Function code (see ModuleFunction).
        module_index: Index distinguishing modules of the same function.
        module_version: Module version.
        module_flags: Prefix flags (see ModuleFlags).
        module_start_address: Start address as a hex string.
        module_end_address: End address as a hex string.
        dep_module_function: First dependency function code (0 = none).
        dep_module_index: First dependency index.
        dep_module_version: First dependency minimum version.
        dep2_module_function: Second dependency function code (0 = none).
        dep2_module_index: Second dependency index.
        dep2_module_version: Second dependency minimum version.
        prefix_offset: Offset of the prefix within the binary.
        prefix_size: Number of bytes up to the end of the prefix.
    """

    platform_id: int
    module_function: int
    module_index: int
    module_version: int
    module_flags: int = 0
    module_start_address: str = "0"
    module_end_address: str = "0"
    dep_module_function: int = 0
    dep_module_index: int = 0
    dep_module_version: int = 0
    dep2_module_function: int = 0
    dep2_module_index: int = 0
    dep2_module_version: int = 0
    prefix_offset: int = 0
    prefix_size: int = 24

    @property
    def dependencies(self) -> list[ModuleDependency]:
        """Declared dependencies, skipping empty slots."""
        slots = [
            ModuleDependency(
                self.dep_module_function,
                self.dep_module_index,
                self.dep_module_version,
            ),
            ModuleDependency(
                self.dep2_module_function,
                self.dep2_module_index,
                self.dep2_module_version,
            ),
        ]
        return [d for d in slots if d.module_function != ModuleFunction.NONE]

    @property
    def drops_module_info(self) -> bool:
        """Whether the prefix is stripped before writing the module."""
        return bool(self.module_flags & ModuleFlags.DROP_MODULE_INFO)


@dataclass(frozen=True)
class SuffixInfo:
    """Metadata from the module suffix.

    Attributes:
        product_id: Product id, or DEFAULT_PRODUCT_ID.
        product_version: Product version, or DEFAULT_PRODUCT_VERSION.
        suffix_size: Suffix size, or INVALID_SUFFIX_SIZE when absent.
    """

    product_id: int = DEFAULT_PRODUCT_ID
    product_version: int = DEFAULT_PRODUCT_VERSION
    suffix_size: int = INVALID_SUFFIX_SIZE

    @property
    def has_inspection_info(self) -> bool:
        """Whether the suffix can be trusted for platform/CRC checks."""
        return self.suffix_size != INVALID_SUFFIX_SIZE

    @property
    def is_product_firmware(self) -> bool:
        return (
            self.product_id != DEFAULT_PRODUCT_ID
            and self.product_version != DEFAULT_PRODUCT_VERSION
        )


@dataclass(frozen=True)
class CrcInfo:
    """CRC-32 check result.

    Attributes:
        ok: Whether the stored CRC matches the computed one.
        actual_crc: CRC-32 computed over the binary.
        stored_crc: CRC-32 stored at the end of the binary.
    """

    ok: bool
    actual_crc: int
    stored_crc: int


@dataclass(frozen=True)
class ModuleInfo:
    """Snapshot of a module's metadata, carried by flash steps."""

    prefix_info: PrefixInfo
    suffix_info: SuffixInfo
    crc: CrcInfo


@dataclass
class ModuleDescriptor:
    """A parsed firmware binary.

    Attributes:
        filename: Path the module was read from.
        data: Raw binary contents.
        prefix_info: Prefix metadata.
        suffix_info: Suffix metadata.
        crc: CRC check result.
    """

    filename: str
    data: bytes = field(repr=False)
    prefix_info: PrefixInfo
    suffix_info: SuffixInfo
    crc: CrcInfo

    @property
    def name(self) -> str:
        """Base name of the module file."""
        return Path(self.filename).name

    @property
    def module_info(self) -> ModuleInfo:
        return ModuleInfo(
            prefix_info=self.prefix_info,
            suffix_info=self.suffix_info,
            crc=self.crc,
        )


__all__ = [
    "DEFAULT_PRODUCT_ID",
    "DEFAULT_PRODUCT_VERSION",
    "INVALID_SUFFIX_SIZE",
    "CrcInfo",
    "ModuleDependency",
    "ModuleDescriptor",
    "ModuleInfo",
    "PrefixInfo",
    "SuffixInfo",
]
