"""Flash step construction.

This module turns parsed modules into an ordered list of flash steps:
- Filter out modules that must not be written by this path
- Order modules by dependency
- Pick the transport (DFU or normal mode) for each module
- Group steps by transport to minimize device mode switches
"""

import logging
from dataclasses import dataclass, field

from devflash.modules.classifier import (
    classify,
    find_firmware_module,
    lookup_firmware_module,
)
from devflash.modules.dependency import order_by_dependency
from devflash.modules.models import ModuleDescriptor, ModuleInfo
from devflash.platforms.schema import PlatformSchema
from devflash.types import FlashMode, ModuleType, StorageLocation

logger = logging.getLogger(__name__)

# Normal-mode transfers are slower, so each byte counts more toward progress
NORMAL_MODE_MULTIPLIER = 10

# Erase and program are reported as separate passes
PROGRESS_PASSES = 2

RESTRICTED_MODULE_TYPES = frozenset(
    {ModuleType.RADIO_STACK, ModuleType.NCP_FIRMWARE}
)


@dataclass(frozen=True)
class FlashStep:
    """One module to write to the device.

    Attributes:
        name: File name of the module.
        module_info: Metadata snapshot of the module.
        data: Bytes to write (prefix dropped when the module asks for it).
        flash_mode: Transport used to write the data.
        module_type: Module type.
    """

    name: str
    module_info: ModuleInfo
    data: bytes = field(repr=False)
    flash_mode: FlashMode
    module_type: ModuleType

    @property
    def progress_multiplier(self) -> int:
        return NORMAL_MODE_MULTIPLIER if self.flash_mode == FlashMode.NORMAL else 1


def filter_modules(
    modules: list[ModuleDescriptor],
    platform: PlatformSchema,
    *,
    allow_all: bool = False,
) -> list[ModuleDescriptor]:
    """Remove modules that must not be flashed.

    Encrypted modules are always removed. Radio stack and NCP firmware
    modules are removed unless allow_all is set.

    Args:
        modules: Parsed modules.
        platform: Target platform.
        allow_all: Keep radio stack and NCP firmware modules.

    Returns:
        New list with the modules to flash, in input order.
    """
    kept: list[ModuleDescriptor] = []
    for module in modules:
        module_type = classify(module.prefix_info)
        entry = find_firmware_module(
            platform, module_type, module.prefix_info.module_index
        )
        if entry is not None and entry.encrypted:
            logger.info("Skipping encrypted module %s", module.name)
            continue
        if module_type in RESTRICTED_MODULE_TYPES and not allow_all:
            logger.info("Skipping %s module %s", module_type.value, module.name)
            continue
        kept.append(module)
    return kept


def _step_data(module: ModuleDescriptor) -> bytes:
    if module.prefix_info.drops_module_info:
        return module.data[module.prefix_info.prefix_size :]
    return module.data


def select_flash_mode(
    module_type: ModuleType, storage: StorageLocation | None
) -> FlashMode:
    """Pick the transport for a module.

    Bootloaders and externally stored modules are written in normal
    mode; everything else goes over DFU.
    """
    if module_type in (ModuleType.ASSETS, ModuleType.BOOTLOADER):
        return FlashMode.NORMAL
    if storage == StorageLocation.EXTERNAL:
        return FlashMode.NORMAL
    return FlashMode.DFU


def build_flash_steps(
    modules: list[ModuleDescriptor],
    *,
    is_in_dfu_mode: bool,
    platform: PlatformSchema,
) -> list[FlashStep]:
    """Build the ordered flash steps for a set of modules.

    Steps are grouped by transport. A device already in DFU mode gets
    its DFU steps first, so a device with a broken OS is repaired
    before any switch to normal mode. Otherwise normal-mode steps come
    first. Asset steps are always last. Each group keeps dependency
    order.

    Args:
        modules: Modules to flash (already filtered).
        is_in_dfu_mode: Current mode of the device.
        platform: Target platform.

    Returns:
        Ordered list of flash steps.

    Raises:
        DependencyCycleError: The modules' dependencies contain a cycle.
        PlatformConfigError: A module has no registry entry on the platform.
    """
    asset_steps: list[FlashStep] = []
    normal_steps: list[FlashStep] = []
    dfu_steps: list[FlashStep] = []

    for module in order_by_dependency(modules):
        module_type = classify(module.prefix_info)
        storage: StorageLocation | None = None
        if module_type not in (ModuleType.ASSETS, ModuleType.BOOTLOADER):
            storage = lookup_firmware_module(
                platform, module_type, module.prefix_info.module_index
            ).storage

        step = FlashStep(
            name=module.name,
            module_info=module.module_info,
            data=_step_data(module),
            flash_mode=select_flash_mode(module_type, storage),
            module_type=module_type,
        )

        if module_type == ModuleType.ASSETS:
            asset_steps.append(step)
        elif step.flash_mode == FlashMode.NORMAL:
            normal_steps.append(step)
        else:
            dfu_steps.append(step)

    if is_in_dfu_mode:
        steps = [*dfu_steps, *normal_steps, *asset_steps]
    else:
        steps = [*normal_steps, *dfu_steps, *asset_steps]

    logger.debug(
        "Flash steps: %s",
        [(s.name, s.flash_mode.value) for s in steps],
    )
    return steps


def total_progress_units(steps: list[FlashStep]) -> int:
    """Total progress units for a sequence of steps.

    Each byte counts once per pass (erase and program), weighted by
    the transport multiplier.
    """
    return sum(
        len(step.data) * PROGRESS_PASSES * step.progress_multiplier for step in steps
    )


__all__ = [
    "NORMAL_MODE_MULTIPLIER",
    "FlashStep",
    "build_flash_steps",
    "filter_modules",
    "select_flash_mode",
    "total_progress_units",
]
