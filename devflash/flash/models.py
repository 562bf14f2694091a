"""Flash ORM models.

This module defines the FlashRun model, the local history of flash
runs against USB devices.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from devflash.db import Base
from devflash.types import FlashStatus


class FlashRun(Base):
    """ORM model for a flash run.

    Attributes:
        id: Primary key.
        device_id: Device id reported by the device.
        platform_id: Platform id of the device.
        step_names: File names of the flash steps, in execution order.
        step_count: Number of flash steps.
        total_bytes: Bytes written across all steps.
        requested_at: Timestamp when the run was requested.
        started_at: Timestamp when flashing started.
        finished_at: Timestamp when flashing finished.
        status: Run status (pending, running, succeeded, failed).
        error_type: Error code if the run failed.
        error_message: Error message if the run failed.
    """

    __tablename__ = "flash_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Device identification
    device_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    platform_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Plan
    step_names: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    step_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timing
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FlashStatus.PENDING.value, index=True
    )

    # Errors
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_flash_runs_device_status", "device_id", "status"),)

    def __repr__(self) -> str:
        """Return string representation of FlashRun."""
        return (
            f"<FlashRun(id={self.id}, device_id='{self.device_id}', "
            f"steps={self.step_count}, status='{self.status}')>"
        )

    def mark_running(self) -> None:
        """Mark this run as running."""
        self.status = FlashStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_succeeded(self) -> None:
        """Mark this run as succeeded."""
        self.status = FlashStatus.SUCCEEDED.value
        self.finished_at = datetime.now()

    def mark_failed(
        self, error_type: str | None = None, message: str | None = None
    ) -> None:
        """Mark this run as failed.

        Args:
            error_type: Error code of the failure.
            message: Error message details.
        """
        self.status = FlashStatus.FAILED.value
        self.finished_at = datetime.now()
        if error_type:
            self.error_type = error_type
        if message:
            self.error_message = message

    def is_succeeded(self) -> bool:
        """Check if this run succeeded."""
        return self.status == FlashStatus.SUCCEEDED.value


__all__ = ["FlashRun"]
