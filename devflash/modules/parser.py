"""Firmware module binary parser.

This module extracts the metadata embedded in a firmware module:
- Prefix: 24-byte little-endian header with addresses, flags, version,
  platform, function/index and up to two dependencies
- Suffix: footer ending with the suffix size (little-endian u16) and a
  big-endian CRC-32 of everything that precedes it

Callers depend on the ModuleParser protocol so a different parser can
be supplied.
"""

import logging
import struct
import zlib
from pathlib import Path
from typing import Protocol

from devflash.modules.models import (
    DEFAULT_PRODUCT_ID,
    DEFAULT_PRODUCT_VERSION,
    INVALID_SUFFIX_SIZE,
    CrcInfo,
    ModuleDescriptor,
    PrefixInfo,
    SuffixInfo,
)

logger = logging.getLogger(__name__)

# start, end, reserved, flags, version, platform, function, index,
# dep function, dep index, dep version, dep2 function, dep2 index, dep2 version
PREFIX_FORMAT = "<IIBBHHBBBBHBBH"
PREFIX_SIZE = struct.calcsize(PREFIX_FORMAT)

# Images that start with an interrupt vector table carry the prefix after it
PREFIX_OFFSETS = (0, 0x184)

CRC_SIZE = 4
SUFFIX_SIZE_FIELD = 2
# reserved (2) + sha256 (32) + size (2)
MIN_SUFFIX_SIZE = 36
# product id (2) + product version (2) precede the minimal suffix
PRODUCT_SUFFIX_SIZE = MIN_SUFFIX_SIZE + 4


class ModuleParseError(Exception):
    """Binary could not be parsed as a firmware module."""

    def __init__(self, filename: str, reason: str) -> None:
        message = f"Could not parse {filename}: {reason}"
        super().__init__(message)
        self.message = message
        self.error_code = "PARSE_ERROR"
        self.filename = filename
        self.reason = reason


class ModuleParser(Protocol):
    """Capability to turn binaries into module descriptors."""

    def parse_file(self, path: str | Path) -> ModuleDescriptor: ...

    def parse_buffer(self, filename: str, data: bytes) -> ModuleDescriptor: ...


def _unpack_prefix(data: bytes, offset: int) -> PrefixInfo | None:
    if len(data) < offset + PREFIX_SIZE:
        return None

    (
        start,
        end,
        _reserved,
        flags,
        version,
        platform_id,
        function,
        index,
        dep_function,
        dep_index,
        dep_version,
        dep2_function,
        dep2_index,
        dep2_version,
    ) = struct.unpack_from(PREFIX_FORMAT, data, offset)

    if end < start:
        return None

    return PrefixInfo(
        platform_id=platform_id,
        module_function=function,
        module_index=index,
        module_version=version,
        module_flags=flags,
        module_start_address=f"{start:x}",
        module_end_address=f"{end:x}",
        dep_module_function=dep_function,
        dep_module_index=dep_index,
        dep_module_version=dep_version,
        dep2_module_function=dep2_function,
        dep2_module_index=dep2_index,
        dep2_module_version=dep2_version,
        prefix_offset=offset,
        prefix_size=offset + PREFIX_SIZE,
    )


def parse_prefix(data: bytes) -> PrefixInfo | None:
    """Locate and decode the module prefix.

    Each candidate offset is tried in turn. A candidate whose address
    range matches the binary length (end - start + CRC) is preferred;
    otherwise the first candidate with a sane address range is used.

    Args:
        data: Raw binary contents.

    Returns:
        PrefixInfo, or None if no plausible prefix was found.
    """
    candidates = [
        prefix
        for prefix in (_unpack_prefix(data, offset) for offset in PREFIX_OFFSETS)
        if prefix is not None
    ]
    for prefix in candidates:
        size = (
            int(prefix.module_end_address, 16)
            - int(prefix.module_start_address, 16)
            + CRC_SIZE
        )
        if size == len(data):
            return prefix
    return candidates[0] if candidates else None


def parse_suffix(data: bytes) -> SuffixInfo:
    """Decode the module suffix.

    Args:
        data: Raw binary contents.

    Returns:
        SuffixInfo; suffix_size is INVALID_SUFFIX_SIZE when the binary
        has no usable suffix.
    """
    if len(data) < CRC_SIZE + SUFFIX_SIZE_FIELD:
        return SuffixInfo()

    size_offset = len(data) - CRC_SIZE - SUFFIX_SIZE_FIELD
    (suffix_size,) = struct.unpack_from("<H", data, size_offset)
    if suffix_size < MIN_SUFFIX_SIZE or suffix_size > len(data) - CRC_SIZE:
        return SuffixInfo()

    product_id = DEFAULT_PRODUCT_ID
    product_version = DEFAULT_PRODUCT_VERSION
    if suffix_size >= PRODUCT_SUFFIX_SIZE:
        suffix_start = len(data) - CRC_SIZE - suffix_size
        product_id, product_version = struct.unpack_from("<HH", data, suffix_start)

    return SuffixInfo(
        product_id=product_id,
        product_version=product_version,
        suffix_size=suffix_size,
    )


def compute_crc(data: bytes) -> CrcInfo:
    """Check the CRC-32 stored in the last four bytes.

    Args:
        data: Raw binary contents.

    Returns:
        CrcInfo with the computed and stored values.
    """
    if len(data) < CRC_SIZE:
        return CrcInfo(ok=False, actual_crc=0, stored_crc=0)
    (stored,) = struct.unpack_from(">I", data, len(data) - CRC_SIZE)
    actual = zlib.crc32(data[:-CRC_SIZE]) & 0xFFFFFFFF
    return CrcInfo(ok=actual == stored, actual_crc=actual, stored_crc=stored)


class HalModuleParser:
    """Default parser for HAL firmware modules."""

    def parse_buffer(self, filename: str, data: bytes) -> ModuleDescriptor:
        """Parse a binary held in memory.

        Args:
            filename: Name used for the descriptor and error messages.
            data: Raw binary contents.

        Returns:
            ModuleDescriptor for the binary.

        Raises:
            ModuleParseError: No module prefix could be decoded.
        """
        data = bytes(data)
        if len(data) < PREFIX_SIZE + CRC_SIZE:
            raise ModuleParseError(
                filename, f"file is too small ({len(data)} bytes)"
            )

        prefix_info = parse_prefix(data)
        if prefix_info is None:
            raise ModuleParseError(filename, "no valid module prefix found")

        suffix_info = parse_suffix(data)
        crc = compute_crc(data)

        logger.debug(
            "Parsed %s: platform=%d function=%d index=%d version=%d suffix=%d crc_ok=%s",
            filename,
            prefix_info.platform_id,
            prefix_info.module_function,
            prefix_info.module_index,
            prefix_info.module_version,
            suffix_info.suffix_size,
            crc.ok,
        )

        return ModuleDescriptor(
            filename=filename,
            data=data,
            prefix_info=prefix_info,
            suffix_info=suffix_info,
            crc=crc,
        )

    def parse_file(self, path: str | Path) -> ModuleDescriptor:
        """Read and parse a binary file.

        Args:
            path: Path to the binary.

        Returns:
            ModuleDescriptor for the file.

        Raises:
            FileNotFoundError: The file does not exist.
            ModuleParseError: The file is not a valid module.
        """
        path = Path(path)
        return self.parse_buffer(str(path), path.read_bytes())


__all__ = [
    "PREFIX_SIZE",
    "HalModuleParser",
    "ModuleParseError",
    "ModuleParser",
    "compute_crc",
    "parse_prefix",
    "parse_suffix",
]
