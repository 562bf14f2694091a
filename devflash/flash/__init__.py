"""USB device flashing module.

This module handles:
- Building ordered flash steps from parsed modules
- Opening devices and switching them between normal and DFU mode
- Running flash steps with progress reporting
- Flash run history

All flash runs follow the same device rules:
- One device handle per run, used strictly in sequence
- Encrypted modules are never written
- The device is reset and closed when the run ends, even on failure
"""

from devflash.flash.device import (
    DeviceOpenError,
    DeviceTransport,
    TransportConfigError,
    TransportError,
    UsbDevice,
    UsbPermissionError,
    load_transport,
    open_device,
)
from devflash.flash.executor import FlashSession, FlashStepError, flash_files
from devflash.flash.models import FlashRun
from devflash.flash.progress import (
    DownloadedEvent,
    ErasedEvent,
    FinishEvent,
    FlashFileEvent,
    FlashProgress,
    ProgressCallback,
    ProgressEvent,
    SwitchModeEvent,
)
from devflash.flash.service import (
    BinaryNotFoundError,
    FlashPlan,
    FlashResult,
    FlashServiceError,
    KnownAppNotAvailableError,
    NothingToFlashError,
    flash_local,
    get_flash_runs,
    parse_bundle,
    parse_modules,
    plan_flash,
    resolve_binaries,
    resolve_known_app,
)
from devflash.flash.steps import (
    FlashStep,
    build_flash_steps,
    filter_modules,
    select_flash_mode,
    total_progress_units,
)

__all__ = [
    # Models
    "FlashRun",
    # Steps
    "FlashStep",
    "build_flash_steps",
    "filter_modules",
    "select_flash_mode",
    "total_progress_units",
    # Device
    "DeviceOpenError",
    "DeviceTransport",
    "TransportConfigError",
    "TransportError",
    "UsbDevice",
    "UsbPermissionError",
    "load_transport",
    "open_device",
    # Progress
    "DownloadedEvent",
    "ErasedEvent",
    "FinishEvent",
    "FlashFileEvent",
    "FlashProgress",
    "ProgressCallback",
    "ProgressEvent",
    "SwitchModeEvent",
    # Executor
    "FlashSession",
    "FlashStepError",
    "flash_files",
    # Service
    "BinaryNotFoundError",
    "FlashPlan",
    "FlashResult",
    "FlashServiceError",
    "KnownAppNotAvailableError",
    "NothingToFlashError",
    "flash_local",
    "get_flash_runs",
    "parse_bundle",
    "parse_modules",
    "plan_flash",
    "resolve_binaries",
    "resolve_known_app",
]
