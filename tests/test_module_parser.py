"""Tests for modules/parser.py - module binary parsing."""

import struct

import pytest

from devflash.modules.models import INVALID_SUFFIX_SIZE
from devflash.modules.parser import (
    PREFIX_FORMAT,
    PREFIX_SIZE,
    HalModuleParser,
    ModuleParseError,
    compute_crc,
    parse_prefix,
    parse_suffix,
)
from devflash.types import ModuleFlags, ModuleFunction


class TestParsePrefix:
    """Tests for parse_prefix function."""

    def test_prefix_fields(self, module_binary):
        """Should decode every prefix field."""
        data = module_binary(
            platform_id=13,
            function=ModuleFunction.USER_PART,
            index=1,
            version=6,
            flags=ModuleFlags.DROP_MODULE_INFO,
            start=0xB4000,
            dep=(ModuleFunction.SYSTEM_PART, 1, 5003),
            dep2=(ModuleFunction.BOOTLOADER, 0, 2000),
        )

        prefix = parse_prefix(data)

        assert prefix is not None
        assert prefix.platform_id == 13
        assert prefix.module_function == ModuleFunction.USER_PART
        assert prefix.module_index == 1
        assert prefix.module_version == 6
        assert prefix.module_start_address == "b4000"
        assert int(prefix.module_end_address, 16) == 0xB4000 + len(data) - 4
        assert prefix.dep_module_function == ModuleFunction.SYSTEM_PART
        assert prefix.dep_module_version == 5003
        assert prefix.dep2_module_function == ModuleFunction.BOOTLOADER
        assert prefix.prefix_offset == 0
        assert prefix.prefix_size == PREFIX_SIZE
        assert prefix.drops_module_info is True

    def test_prefix_after_vector_table(self):
        """Should find a prefix placed after the interrupt vector table."""
        start = 0x8020000
        payload = b"\xaa" * 32
        length = 0x184 + PREFIX_SIZE + len(payload) + 4
        prefix_bytes = struct.pack(
            PREFIX_FORMAT,
            start,
            start + length - 4,
            0,
            0,
            100,
            6,
            ModuleFunction.SYSTEM_PART,
            1,
            0,
            0,
            0,
            0,
            0,
            0,
        )
        data = b"\x00" * 0x184 + prefix_bytes + payload + b"\x00" * 4

        prefix = parse_prefix(data)

        assert prefix is not None
        assert prefix.prefix_offset == 0x184
        assert prefix.prefix_size == 0x184 + PREFIX_SIZE
        assert prefix.platform_id == 6
        assert prefix.module_start_address == "8020000"

    def test_dependencies_skip_empty_slots(self, module_binary):
        """Dependencies with function 0 are not reported."""
        data = module_binary(dep=(ModuleFunction.BOOTLOADER, 0, 1))

        prefix = parse_prefix(data)

        assert prefix is not None
        assert len(prefix.dependencies) == 1
        assert prefix.dependencies[0].module_function == ModuleFunction.BOOTLOADER

    def test_drop_flag_is_a_bit(self, module_binary):
        """DROP_MODULE_INFO is tested as a bit, not by equality."""
        data = module_binary(
            flags=ModuleFlags.DROP_MODULE_INFO | ModuleFlags.COMPRESSED
        )

        prefix = parse_prefix(data)

        assert prefix is not None
        assert prefix.drops_module_info is True

    def test_no_prefix(self):
        """Should return None when no candidate has a sane address range."""
        data = struct.pack("<II", 100, 50) + b"\x00" * 40
        assert parse_prefix(data) is None


class TestParseSuffix:
    """Tests for parse_suffix function."""

    def test_product_suffix(self, module_binary):
        """Should read product id and version from a 40-byte suffix."""
        data = module_binary(product_id=1234, product_version=7)

        suffix = parse_suffix(data)

        assert suffix.suffix_size == 40
        assert suffix.product_id == 1234
        assert suffix.product_version == 7
        assert suffix.has_inspection_info is True
        assert suffix.is_product_firmware is True

    def test_default_product(self, module_binary):
        """Non-product firmware keeps the default product fields."""
        suffix = parse_suffix(module_binary())

        assert suffix.has_inspection_info is True
        assert suffix.is_product_firmware is False

    def test_missing_suffix(self, module_binary):
        """An implausible suffix size is reported as invalid."""
        suffix = parse_suffix(module_binary(with_suffix=False))

        assert suffix.suffix_size == INVALID_SUFFIX_SIZE
        assert suffix.has_inspection_info is False

    def test_oversized_suffix(self):
        """A suffix larger than the binary is invalid."""
        data = b"\x00" * 10 + struct.pack("<H", 500) + b"\x00" * 4
        assert parse_suffix(data).suffix_size == INVALID_SUFFIX_SIZE


class TestComputeCrc:
    """Tests for compute_crc function."""

    def test_valid_crc(self, module_binary):
        """Stored big-endian CRC should match."""
        crc = compute_crc(module_binary())
        assert crc.ok is True
        assert crc.actual_crc == crc.stored_crc

    def test_corrupt_crc(self, module_binary):
        """A mismatching CRC should be reported with both values."""
        crc = compute_crc(module_binary(corrupt_crc=True))
        assert crc.ok is False
        assert crc.actual_crc == crc.stored_crc ^ 0xFFFFFFFF


class TestHalModuleParser:
    """Tests for HalModuleParser."""

    def test_parse_buffer(self, module_binary):
        """Should produce a full descriptor."""
        data = module_binary(function=ModuleFunction.BOOTLOADER, index=0)

        module = HalModuleParser().parse_buffer("/tmp/bootloader.bin", data)

        assert module.name == "bootloader.bin"
        assert module.data == data
        assert module.prefix_info.module_function == ModuleFunction.BOOTLOADER
        assert module.crc.ok is True
        assert module.module_info.prefix_info is module.prefix_info

    def test_parse_file(self, tmp_path, module_binary):
        """Should read and parse a file."""
        path = tmp_path / "system-part1.bin"
        path.write_bytes(module_binary())

        module = HalModuleParser().parse_file(path)

        assert module.filename == str(path)
        assert module.name == "system-part1.bin"

    def test_parse_missing_file(self, tmp_path):
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            HalModuleParser().parse_file(tmp_path / "nope.bin")

    def test_too_small(self):
        """Tiny buffers are rejected with the filename."""
        with pytest.raises(ModuleParseError) as exc_info:
            HalModuleParser().parse_buffer("tiny.bin", b"\x00" * 10)

        assert exc_info.value.filename == "tiny.bin"
        assert exc_info.value.error_code == "PARSE_ERROR"
        assert "too small" in exc_info.value.message

    def test_no_prefix(self):
        """Buffers without a plausible prefix are rejected."""
        data = struct.pack("<II", 100, 50) + b"\x00" * 40
        with pytest.raises(ModuleParseError, match="no valid module prefix"):
            HalModuleParser().parse_buffer("garbage.bin", data)
