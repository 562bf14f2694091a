"""Flash step execution.

Runs flash steps against one device, switching the device between
normal and DFU mode as each step requires. Steps run strictly in
sequence. Whatever happens, the device is reset and closed once the
run ends.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from devflash.config import Settings, get_settings
from devflash.flash.device import (
    INTERNAL_FLASH_ALT_SETTING,
    DeviceTransport,
    UsbDevice,
)
from devflash.flash.progress import (
    FinishEvent,
    FlashFileEvent,
    ProgressCallback,
    ProgressEvent,
    SwitchModeEvent,
)
from devflash.flash.steps import FlashStep
from devflash.types import FlashMode

logger = logging.getLogger(__name__)


class FlashStepError(Exception):
    """A flash step failed.

    The underlying error is available as __cause__.
    """

    def __init__(self, step_name: str, index: int, total: int, reason: str) -> None:
        message = f"Flashing {step_name} (step {index} of {total}) failed: {reason}"
        super().__init__(message)
        self.message = message
        self.error_code = "FLASH_STEP_FAILED"
        self.step_name = step_name
        self.index = index
        self.total = total


@dataclass
class FlashSession:
    """Per-run flashing context.

    Attributes:
        transport: Transport used to reopen the device between modes.
        settings: Timeouts and delays.
        progress: Receiver for progress events, if any.
    """

    transport: DeviceTransport
    settings: Settings = field(default_factory=get_settings)
    progress: ProgressCallback | None = None

    def emit(self, event: ProgressEvent) -> None:
        if self.progress is not None:
            self.progress(event)


async def _flash_normal(
    session: FlashSession, device: UsbDevice, step: FlashStep
) -> UsbDevice:
    settings = session.settings
    if device.is_in_dfu_mode:
        session.emit(SwitchModeEvent(mode="normal"))
        device = await session.transport.reopen_in_normal_mode(
            device, reset=True, timeout=settings.reopen_timeout
        )

    try:
        await device.enter_listening_mode()
    except Exception as e:
        # Device may already be in listening mode
        logger.debug("Could not enter listening mode: %s", e)

    session.emit(FlashFileEvent(filename=step.name))
    await device.update_firmware(step.data, progress=session.progress)

    # Let the device apply the update before reconnecting
    await asyncio.sleep(settings.flash_apply_delay)
    return await session.transport.reopen_in_normal_mode(
        device, reset=False, timeout=settings.apply_reopen_timeout
    )


async def _flash_dfu(
    session: FlashSession, device: UsbDevice, step: FlashStep
) -> UsbDevice:
    if not device.is_in_dfu_mode:
        session.emit(SwitchModeEvent(mode="DFU"))
        device = await session.transport.reopen_in_dfu_mode(
            device, timeout=session.settings.reopen_timeout
        )

    session.emit(FlashFileEvent(filename=step.name))
    await device.write_over_dfu(
        step.data,
        alt_setting=INTERNAL_FLASH_ALT_SETTING,
        start_addr=int(step.module_info.prefix_info.module_start_address, 16),
        progress=session.progress,
    )
    return device


async def flash_files(
    session: FlashSession,
    device: UsbDevice,
    steps: list[FlashStep],
) -> None:
    """Write each step to the device in order.

    On every exit path a FinishEvent is emitted and the current device
    handle is reset and closed. Steps already written are not rolled
    back.

    Args:
        session: Flashing context.
        device: Opened device. Ownership passes to this function.
        steps: Steps from build_flash_steps.

    Raises:
        FlashStepError: A step failed.
    """
    total = len(steps)
    try:
        for index, step in enumerate(steps, start=1):
            logger.info(
                "Flashing %s (%d/%d) in %s mode",
                step.name,
                index,
                total,
                step.flash_mode.value,
            )
            try:
                if step.flash_mode == FlashMode.NORMAL:
                    device = await _flash_normal(session, device, step)
                else:
                    device = await _flash_dfu(session, device, step)
            except Exception as e:
                logger.error("Flashing %s failed: %s", step.name, e)
                raise FlashStepError(step.name, index, total, str(e)) from e
    except BaseException:
        # Keep the original error when cleanup fails too
        await _release(session, device, quiet=True)
        raise

    await _release(session, device)


async def _release(
    session: FlashSession, device: UsbDevice, *, quiet: bool = False
) -> None:
    session.emit(FinishEvent())
    try:
        await device.reset()
    except Exception as e:
        if not quiet:
            raise
        logger.warning("Could not reset device %s: %s", device.id, e)
    finally:
        try:
            await device.close()
        except Exception as e:
            if not quiet:
                raise
            logger.warning("Could not close device %s: %s", device.id, e)


__all__ = [
    "FlashSession",
    "FlashStepError",
    "flash_files",
]
