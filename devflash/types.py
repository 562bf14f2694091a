"""Shared type definitions for devflash.

This module contains enums shared across subpackages to avoid
circular imports.
"""

from enum import Enum, IntEnum, IntFlag


class ModuleFunction(IntEnum):
    """Module function code stored in a firmware module prefix."""

    NONE = 0
    RESERVED = 1
    BOOTLOADER = 2
    MONO_FIRMWARE = 3
    SYSTEM_PART = 4
    USER_PART = 5
    SETTINGS = 6
    NCP_FIRMWARE = 7
    RADIO_STACK = 8
    ASSET = 9


class ModuleFlags(IntFlag):
    """Flags stored in a firmware module prefix."""

    NONE = 0x00
    DROP_MODULE_INFO = 0x01
    COMPRESSED = 0x02
    COMBINED = 0x04
    ENCRYPTED = 0x08
    PREFIX_EXTENSIONS = 0x10


class ModuleType(str, Enum):
    """Kind of firmware module, derived from its function code.

    UNKNOWN covers function code 0 as well as any code outside the
    known range.
    """

    UNKNOWN = "unknown"
    RESERVED = "reserved"
    BOOTLOADER = "bootloader"
    MONOLITHIC = "monolithic"
    SYSTEM_PART = "system_part"
    USER_PART = "user_part"
    SETTINGS = "settings"
    NCP_FIRMWARE = "ncp_firmware"
    RADIO_STACK = "radio_stack"
    ASSETS = "assets"


class StorageLocation(str, Enum):
    """Where a platform stores a firmware module."""

    INTERNAL = "internal"
    EXTERNAL = "external"


class FlashMode(str, Enum):
    """Transport used to write a flash step."""

    NORMAL = "normal"
    DFU = "dfu"


class FlashStatus(str, Enum):
    """Status of a flash run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


__all__ = [
    "FlashMode",
    "FlashStatus",
    "ModuleFlags",
    "ModuleFunction",
    "ModuleType",
    "StorageLocation",
]
