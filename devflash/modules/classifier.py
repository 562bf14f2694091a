"""Module classification.

Maps module function codes to module types and resolves where a
platform stores a given module.
"""

from devflash.modules.models import PrefixInfo
from devflash.platforms.registry import PlatformConfigError
from devflash.platforms.schema import FirmwareModuleSchema, PlatformSchema
from devflash.types import ModuleFunction, ModuleType

FUNCTION_TO_TYPE: dict[ModuleFunction, ModuleType] = {
    ModuleFunction.NONE: ModuleType.UNKNOWN,
    ModuleFunction.RESERVED: ModuleType.RESERVED,
    ModuleFunction.BOOTLOADER: ModuleType.BOOTLOADER,
    ModuleFunction.MONO_FIRMWARE: ModuleType.MONOLITHIC,
    ModuleFunction.SYSTEM_PART: ModuleType.SYSTEM_PART,
    ModuleFunction.USER_PART: ModuleType.USER_PART,
    ModuleFunction.SETTINGS: ModuleType.SETTINGS,
    ModuleFunction.NCP_FIRMWARE: ModuleType.NCP_FIRMWARE,
    ModuleFunction.RADIO_STACK: ModuleType.RADIO_STACK,
    ModuleFunction.ASSET: ModuleType.ASSETS,
}

MODULE_TYPE_LABELS: dict[ModuleType, str] = {
    ModuleType.UNKNOWN: "an unknown module",
    ModuleType.RESERVED: "a reserved module",
    ModuleType.BOOTLOADER: "a bootloader",
    ModuleType.MONOLITHIC: "a monolithic firmware",
    ModuleType.SYSTEM_PART: "a system module",
    ModuleType.USER_PART: "an application module",
    ModuleType.SETTINGS: "a settings module",
    ModuleType.NCP_FIRMWARE: "a network coprocessor (NCP) module",
    ModuleType.RADIO_STACK: "a radio stack module",
    ModuleType.ASSETS: "an asset module",
}


def module_type_for_function(function: int) -> ModuleType:
    """Map a raw function code to a module type.

    Codes outside the known range map to ModuleType.UNKNOWN.
    """
    try:
        return FUNCTION_TO_TYPE[ModuleFunction(function)]
    except ValueError:
        return ModuleType.UNKNOWN


def classify(prefix_info: PrefixInfo) -> ModuleType:
    """Return the module type described by a module prefix."""
    return module_type_for_function(prefix_info.module_function)


def describe_module_type(module_type: ModuleType) -> str:
    """Return a human-readable label such as 'a bootloader'."""
    return MODULE_TYPE_LABELS[module_type]


def find_firmware_module(
    platform: PlatformSchema,
    module_type: ModuleType,
    module_index: int,
) -> FirmwareModuleSchema | None:
    """Find a platform's registry entry for a module.

    An entry with the same type and index is preferred; otherwise the
    first entry of the same type is returned.

    Args:
        platform: Platform to search.
        module_type: Module type.
        module_index: Module index.

    Returns:
        The registry entry, or None if the platform has none for the type.
    """
    same_type = [m for m in platform.firmware_modules if m.type == module_type]
    for entry in same_type:
        if entry.index == module_index:
            return entry
    return same_type[0] if same_type else None


def lookup_firmware_module(
    platform: PlatformSchema,
    module_type: ModuleType,
    module_index: int,
) -> FirmwareModuleSchema:
    """Like find_firmware_module, but a missing entry is an error.

    Raises:
        PlatformConfigError: The platform has no entry for the module type.
    """
    entry = find_firmware_module(platform, module_type, module_index)
    if entry is None:
        raise PlatformConfigError(platform.name, module_type.value, module_index)
    return entry


__all__ = [
    "FUNCTION_TO_TYPE",
    "MODULE_TYPE_LABELS",
    "classify",
    "describe_module_type",
    "find_firmware_module",
    "lookup_firmware_module",
    "module_type_for_function",
]
