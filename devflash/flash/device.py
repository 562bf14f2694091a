"""USB device access for flashing.

The USB/DFU wire protocol lives outside this package. This module
defines what the flasher needs from it:
- UsbDevice: an opened device handle
- DeviceTransport: opens a device and reopens it in a given mode
- open_device: bounded polling open with permission error fast-fail
- load_transport: import the configured transport implementation
"""

import asyncio
import importlib
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# CLI always flashes internal flash, which is DFU alt setting 0
INTERNAL_FLASH_ALT_SETTING = 0


class TransportError(Exception):
    """Base exception for USB transport errors."""

    def __init__(self, message: str, error_code: str = "TRANSPORT_ERROR") -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class UsbPermissionError(TransportError):
    """The OS denied access to the USB device."""

    def __init__(self, message: str = "Permission denied opening USB device") -> None:
        super().__init__(message, error_code="USB_PERMISSION_DENIED")


class DeviceOpenError(TransportError):
    """The device could not be opened before the deadline."""

    def __init__(self, device_id: str | None, timeout: float) -> None:
        target = device_id or "any device"
        super().__init__(
            f"Unable to open USB device ({target}) within {timeout:g}s",
            error_code="DEVICE_OPEN_FAILED",
        )
        self.device_id = device_id
        self.timeout = timeout


class TransportConfigError(TransportError):
    """No usable USB transport is configured."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="TRANSPORT_NOT_CONFIGURED")


class UsbDevice(Protocol):
    """An opened USB device handle.

    Progress callbacks receive ErasedEvent / DownloadedEvent instances
    from devflash.flash.progress.
    """

    id: str
    platform_id: int
    firmware_version: str | None
    is_in_dfu_mode: bool

    async def enter_listening_mode(self) -> None: ...

    async def update_firmware(
        self, data: bytes, *, progress: Callable[[Any], None] | None = None
    ) -> None: ...

    async def write_over_dfu(
        self,
        data: bytes,
        *,
        alt_setting: int,
        start_addr: int,
        progress: Callable[[Any], None] | None = None,
    ) -> None: ...

    async def reset(self) -> None: ...

    async def close(self) -> None: ...


class DeviceTransport(Protocol):
    """Opens devices and moves them between normal and DFU mode.

    The reopen methods return a new handle for the same physical device.
    """

    async def open_by_id(self, device_id: str | None) -> UsbDevice: ...

    async def reopen_in_normal_mode(
        self, device: UsbDevice, *, reset: bool, timeout: float
    ) -> UsbDevice: ...

    async def reopen_in_dfu_mode(
        self, device: UsbDevice, *, timeout: float
    ) -> UsbDevice: ...


async def open_device(
    transport: DeviceTransport,
    device_id: str | None,
    *,
    timeout: float = 3.0,
    poll_interval: float = 0.5,
) -> UsbDevice:
    """Open a device, retrying until a deadline.

    Transient errors are retried; permission errors are raised at once
    since retrying cannot fix them.

    Args:
        transport: USB transport.
        device_id: Device id, or None for the only attached device.
        timeout: Seconds to keep retrying.
        poll_interval: Maximum delay between attempts.

    Returns:
        The opened device.

    Raises:
        UsbPermissionError: Access to the device was denied.
        DeviceOpenError: The deadline passed without a successful open.
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        try:
            device = await transport.open_by_id(device_id)
            logger.info(
                "Opened device %s (platform %d, dfu=%s)",
                device.id,
                device.platform_id,
                device.is_in_dfu_mode,
            )
            return device
        except UsbPermissionError:
            logger.error("Permission denied opening device %s", device_id)
            raise
        except (TransportError, OSError) as e:
            logger.debug("Open attempt %d failed: %s", attempt, e)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DeviceOpenError(device_id, timeout)
        await asyncio.sleep(min(poll_interval, remaining))


def load_transport(spec: str | None) -> DeviceTransport:
    """Instantiate a transport from a 'module:callable' reference.

    Args:
        spec: Import reference of a zero-argument transport factory.

    Returns:
        The transport returned by the factory.

    Raises:
        TransportConfigError: spec is missing, malformed or not importable.
    """
    if not spec:
        raise TransportConfigError(
            "No USB transport configured. Set DEVFLASH_USB_TRANSPORT to "
            "'module:factory' of a USB transport implementation."
        )
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise TransportConfigError(
            f"Invalid USB transport reference '{spec}', expected 'module:factory'"
        )
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise TransportConfigError(
            f"Cannot load USB transport '{spec}': {e}"
        ) from e

    logger.debug("Loaded USB transport %s", spec)
    transport: DeviceTransport = factory()
    return transport


__all__ = [
    "INTERNAL_FLASH_ALT_SETTING",
    "DeviceOpenError",
    "DeviceTransport",
    "TransportConfigError",
    "TransportError",
    "UsbDevice",
    "UsbPermissionError",
    "load_transport",
    "open_device",
]
