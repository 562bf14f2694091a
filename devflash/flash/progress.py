"""Flash progress events and reporting.

The flash executor and the device handle emit typed progress events.
FlashProgress consumes them and renders either a rich progress bar
(interactive terminals) or one line per phase (logs, CI).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from devflash.flash.steps import FlashStep, total_progress_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlashFileEvent:
    """A flash step begins."""

    filename: str


@dataclass(frozen=True)
class SwitchModeEvent:
    """The device is switching mode (e.g., 'normal' or 'DFU')."""

    mode: str


@dataclass(frozen=True)
class ErasedEvent:
    """Bytes erased during a DFU write.

    DFU erases whole sectors, so the total may exceed the step size.
    """

    byte_count: int


@dataclass(frozen=True)
class DownloadedEvent:
    """Bytes transferred to the device."""

    byte_count: int


@dataclass(frozen=True)
class FinishEvent:
    """The flash sequence ended, successfully or not."""


ProgressEvent = (
    FlashFileEvent | SwitchModeEvent | ErasedEvent | DownloadedEvent | FinishEvent
)
ProgressCallback = Callable[[ProgressEvent], None]


class FlashProgress:
    """Progress consumer for one flash run.

    The bar's total is total_progress_units(steps). Erased bytes are
    clamped to the current step's size and all bytes are weighted by
    the current step's transport multiplier.
    """

    def __init__(
        self,
        steps: list[FlashStep],
        *,
        console: Console | None = None,
        interactive: bool | None = None,
    ) -> None:
        self._steps = steps
        self._console = console or Console()
        self._interactive = (
            self._console.is_terminal if interactive is None else interactive
        )
        self.total = total_progress_units(steps)
        self.completed = 0
        self.description = "Preparing to flash"

        self._step: FlashStep | None = None
        self._position = 0
        self._multiplier = 1
        self._erase_size = 0
        self._bar: Progress | None = None
        self._task: TaskID | None = None

        if self._interactive:
            self._bar = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TimeRemainingColumn(),
                console=self._console,
            )
            self._task = self._bar.add_task(self.description, total=self.total)
            self._bar.start()

    def __call__(self, event: ProgressEvent) -> None:
        if isinstance(event, FlashFileEvent):
            self._set_description(f"Flashing {event.filename}")
            self._step = self._next_step(event.filename)
            self._multiplier = self._step.progress_multiplier if self._step else 1
            self._erase_size = 0
        elif isinstance(event, SwitchModeEvent):
            self._set_description(f"Switching device to {event.mode} mode")
        elif isinstance(event, ErasedEvent):
            byte_count = event.byte_count
            if self._step and self._erase_size + byte_count > len(self._step.data):
                byte_count = len(self._step.data) - self._erase_size
            self._erase_size += byte_count
            self._advance(byte_count * self._multiplier)
        elif isinstance(event, DownloadedEvent):
            self._advance(event.byte_count * self._multiplier)
        elif isinstance(event, FinishEvent):
            if self._bar is not None:
                self._bar.stop()
        else:
            raise TypeError(f"Unknown progress event: {event!r}")

    def _next_step(self, filename: str) -> FlashStep | None:
        # Steps start in plan order; names may repeat across steps
        for offset, step in enumerate(self._steps[self._position :]):
            if step.name == filename:
                self._position += offset + 1
                return step
        return None

    def _set_description(self, description: str) -> None:
        self.description = description
        logger.debug(description)
        if self._bar is not None:
            self._bar.update(self._task, description=description)
        else:
            self._console.print(description, highlight=False)

    def _advance(self, units: int) -> None:
        self.completed += units
        if self._bar is not None:
            self._bar.advance(self._task, units)


__all__ = [
    "DownloadedEvent",
    "ErasedEvent",
    "FinishEvent",
    "FlashFileEvent",
    "FlashProgress",
    "ProgressCallback",
    "ProgressEvent",
    "SwitchModeEvent",
]
