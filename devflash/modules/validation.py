"""Pre-flight checks for module binaries.

A binary without inspection metadata (invalid suffix) cannot be
checked and is passed through with a warning. Otherwise the CRC and
the platform id must match unless the caller forces the flash.
"""

import logging

from devflash.modules.models import ModuleDescriptor

logger = logging.getLogger(__name__)


class ModuleValidationError(Exception):
    """Base exception for module validation errors."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class IntegrityError(ModuleValidationError):
    """Stored CRC does not match the binary contents."""

    def __init__(self, filename: str, stored_crc: int, actual_crc: int) -> None:
        super().__init__(
            f"CRC is invalid for {filename} (should be {stored_crc:08x} but is "
            f"{actual_crc:08x}), use --force to override",
            error_code="INTEGRITY_ERROR",
        )
        self.filename = filename
        self.stored_crc = stored_crc
        self.actual_crc = actual_crc


class PlatformMismatchError(ModuleValidationError):
    """Binary was built for a different platform than the device."""

    def __init__(self, filename: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Incorrect platform id for {filename} (expected {expected}, "
            f"parsed {actual}), use --force to override",
            error_code="PLATFORM_MISMATCH",
        )
        self.filename = filename
        self.expected = expected
        self.actual = actual


def validate_module(
    module: ModuleDescriptor,
    platform_id: int,
    *,
    force: bool = False,
) -> bool:
    """Check a module's CRC and platform before flashing.

    Args:
        module: Parsed module.
        platform_id: Platform id of the target device.
        force: Accept CRC and platform mismatches.

    Returns:
        True if the module was inspected, False if it carries no
        inspection metadata and was passed through unchecked.

    Raises:
        IntegrityError: CRC mismatch and force is False.
        PlatformMismatchError: Platform mismatch and force is False.
    """
    if not module.suffix_info.has_inspection_info:
        logger.warning("Unable to verify binary info for %s", module.name)
        return False

    if not module.crc.ok:
        if not force:
            raise IntegrityError(
                module.name, module.crc.stored_crc, module.crc.actual_crc
            )
        logger.warning("Ignoring invalid CRC for %s", module.name)

    if module.prefix_info.platform_id != platform_id:
        if not force:
            raise PlatformMismatchError(
                module.name, platform_id, module.prefix_info.platform_id
            )
        logger.warning(
            "Ignoring platform mismatch for %s (expected %d, parsed %d)",
            module.name,
            platform_id,
            module.prefix_info.platform_id,
        )

    return True


__all__ = [
    "IntegrityError",
    "ModuleValidationError",
    "PlatformMismatchError",
    "validate_module",
]
