"""Shared fixtures for devflash tests.

Module binaries are built in memory: a 24-byte prefix, a payload, an
optional 40-byte suffix and a big-endian CRC-32.
"""

import struct
import zlib
from collections.abc import Callable
from pathlib import Path

import pytest

from devflash.flash.device import TransportError
from devflash.flash.progress import DownloadedEvent, ErasedEvent
from devflash.modules.models import ModuleDescriptor
from devflash.modules.parser import PREFIX_FORMAT, HalModuleParser
from devflash.types import ModuleFunction

SUFFIX_SIZE = 40


def build_module_binary(
    *,
    platform_id: int = 13,
    function: int = ModuleFunction.SYSTEM_PART,
    index: int = 1,
    version: int = 1000,
    flags: int = 0,
    start: int = 0x30000,
    dep: tuple[int, int, int] = (0, 0, 0),
    dep2: tuple[int, int, int] = (0, 0, 0),
    payload: bytes = b"\xaa" * 32,
    product_id: int = 0xFFFF,
    product_version: int = 0xFFFF,
    with_suffix: bool = True,
    corrupt_crc: bool = False,
) -> bytes:
    """Build a module binary with a valid prefix."""
    if with_suffix:
        suffix = (
            struct.pack("<HH", product_id, product_version)
            + b"\x00" * 2
            + b"\x11" * 32
            + struct.pack("<H", SUFFIX_SIZE)
        )
    else:
        suffix = b"\x00" * 2

    length = struct.calcsize(PREFIX_FORMAT) + len(payload) + len(suffix) + 4
    prefix = struct.pack(
        PREFIX_FORMAT,
        start,
        start + length - 4,
        0,
        flags,
        version,
        platform_id,
        function,
        index,
        *dep,
        *dep2,
    )
    body = prefix + payload + suffix
    crc = zlib.crc32(body) & 0xFFFFFFFF
    if corrupt_crc:
        crc ^= 0xFFFFFFFF
    return body + struct.pack(">I", crc)


@pytest.fixture
def module_binary() -> Callable[..., bytes]:
    """Factory for raw module binaries."""
    return build_module_binary


@pytest.fixture
def make_module() -> Callable[..., ModuleDescriptor]:
    """Factory for parsed module descriptors."""
    parser = HalModuleParser()

    def _make(name: str = "module.bin", **kwargs: object) -> ModuleDescriptor:
        data = build_module_binary(**kwargs)  # type: ignore[arg-type]
        return parser.parse_buffer(name, data)

    return _make


@pytest.fixture
def write_module(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing module binaries under tmp_path."""

    def _write(name: str, **kwargs: object) -> Path:
        path = tmp_path / name
        path.write_bytes(build_module_binary(**kwargs))  # type: ignore[arg-type]
        return path

    return _write


class FakeDevice:
    """In-memory USB device handle that records calls on its transport."""

    def __init__(
        self,
        transport: "FakeTransport",
        *,
        device_id: str,
        platform_id: int,
        is_in_dfu_mode: bool,
        firmware_version: str | None,
        handle: int,
    ) -> None:
        self.transport = transport
        self.id = device_id
        self.platform_id = platform_id
        self.is_in_dfu_mode = is_in_dfu_mode
        self.firmware_version = firmware_version
        self.handle = handle

    async def enter_listening_mode(self) -> None:
        self.transport.log.append(("listen", self.handle))
        if self.transport.listen_error is not None:
            raise self.transport.listen_error

    async def update_firmware(self, data, *, progress=None) -> None:
        self.transport.record_write(("update", self.handle, len(data)))
        if progress:
            progress(DownloadedEvent(byte_count=len(data)))

    async def write_over_dfu(
        self, data, *, alt_setting, start_addr, progress=None
    ) -> None:
        self.transport.record_write(
            ("dfu", self.handle, len(data), alt_setting, start_addr)
        )
        if progress:
            progress(ErasedEvent(byte_count=len(data) + 4096))
            progress(DownloadedEvent(byte_count=len(data)))

    async def reset(self) -> None:
        self.transport.log.append(("reset", self.handle))
        if self.transport.reset_error is not None:
            raise self.transport.reset_error

    async def close(self) -> None:
        self.transport.log.append(("close", self.handle))
        if self.transport.close_error is not None:
            raise self.transport.close_error


class FakeTransport:
    """Transport handing out FakeDevice handles for one physical device.

    Writes are numbered from 1 across all handles; fail_on_write makes
    that write raise.
    """

    def __init__(
        self,
        *,
        device_id: str = "e00fce68",
        platform_id: int = 13,
        is_in_dfu_mode: bool = False,
        firmware_version: str | None = "5.8.0",
        open_errors: list[Exception] | None = None,
        fail_on_write: int | None = None,
    ) -> None:
        self.device_id = device_id
        self.platform_id = platform_id
        self.is_in_dfu_mode = is_in_dfu_mode
        self.firmware_version = firmware_version
        self.open_errors = list(open_errors or [])
        self.fail_on_write = fail_on_write
        self.listen_error: Exception | None = None
        self.reset_error: Exception | None = None
        self.close_error: Exception | None = None
        self.log: list[tuple] = []
        self.writes = 0
        self.handles = 0

    def _new_handle(self, is_in_dfu_mode: bool) -> FakeDevice:
        self.handles += 1
        return FakeDevice(
            self,
            device_id=self.device_id,
            platform_id=self.platform_id,
            is_in_dfu_mode=is_in_dfu_mode,
            firmware_version=self.firmware_version,
            handle=self.handles,
        )

    def record_write(self, entry: tuple) -> None:
        self.writes += 1
        self.log.append(entry)
        if self.writes == self.fail_on_write:
            raise TransportError("USB transfer failed")

    def count(self, name: str) -> int:
        return sum(1 for entry in self.log if entry[0] == name)

    async def open_by_id(self, device_id):
        self.log.append(("open", device_id))
        if self.open_errors:
            raise self.open_errors.pop(0)
        return self._new_handle(self.is_in_dfu_mode)

    async def reopen_in_normal_mode(self, device, *, reset, timeout):
        self.log.append(("reopen_normal", reset, timeout))
        return self._new_handle(False)

    async def reopen_in_dfu_mode(self, device, *, timeout):
        self.log.append(("reopen_dfu", timeout))
        return self._new_handle(True)


@pytest.fixture
def fake_transport() -> Callable[..., FakeTransport]:
    """Factory for fake USB transports."""
    return FakeTransport
