"""Tests for flash/steps.py - filtering, transport selection and ordering."""

import pytest

from devflash.flash.steps import (
    FlashStep,
    build_flash_steps,
    filter_modules,
    select_flash_mode,
    total_progress_units,
)
from devflash.modules.dependency import DependencyCycleError
from devflash.platforms.registry import PlatformConfigError, get_platform
from devflash.types import (
    FlashMode,
    ModuleFlags,
    ModuleFunction,
    ModuleType,
    StorageLocation,
)

BOOTLOADER = ModuleFunction.BOOTLOADER
SYSTEM = ModuleFunction.SYSTEM_PART
USER = ModuleFunction.USER_PART


@pytest.fixture
def scenario_modules(make_module):
    """Bootloader, system part and user part chained by dependencies."""
    return [
        make_module("bootloader.bin", platform_id=32, function=BOOTLOADER, index=0),
        make_module(
            "system-part1.bin",
            platform_id=32,
            function=SYSTEM,
            index=1,
            dep=(BOOTLOADER, 0, 0),
        ),
        make_module(
            "user-part.bin",
            platform_id=32,
            function=USER,
            index=2,
            dep=(SYSTEM, 1, 0),
        ),
    ]


class TestSelectFlashMode:
    """Tests for select_flash_mode."""

    def test_bootloader_is_normal(self):
        """Bootloaders are written in normal mode."""
        assert select_flash_mode(ModuleType.BOOTLOADER, None) == FlashMode.NORMAL

    def test_assets_are_normal(self):
        """Assets are written in normal mode whatever the storage."""
        assert (
            select_flash_mode(ModuleType.ASSETS, StorageLocation.INTERNAL)
            == FlashMode.NORMAL
        )

    def test_external_is_normal(self):
        """Externally stored modules are written in normal mode."""
        assert (
            select_flash_mode(ModuleType.NCP_FIRMWARE, StorageLocation.EXTERNAL)
            == FlashMode.NORMAL
        )

    def test_internal_is_dfu(self):
        """Everything else goes over DFU."""
        assert (
            select_flash_mode(ModuleType.SYSTEM_PART, StorageLocation.INTERNAL)
            == FlashMode.DFU
        )


class TestFilterModules:
    """Tests for filter_modules."""

    def test_encrypted_always_removed(self, make_module):
        """Encrypted modules are removed even with allow_all."""
        p2 = get_platform("p2")
        radio = make_module("radio.bin", function=ModuleFunction.RADIO_STACK, index=0)
        system = make_module("system.bin", function=SYSTEM, index=1)

        assert filter_modules([radio, system], p2) == [system]
        assert filter_modules([radio, system], p2, allow_all=True) == [system]

    def test_encrypted_matches_any_index(self, make_module):
        """Any radio stack index is encrypted on P2."""
        p2 = get_platform("p2")
        radio = make_module("radio.bin", function=ModuleFunction.RADIO_STACK, index=5)

        assert filter_modules([radio], p2, allow_all=True) == []

    def test_restricted_removed_by_default(self, make_module):
        """Radio stack and NCP modules need allow_all."""
        argon = get_platform("argon")
        radio = make_module("radio.bin", function=ModuleFunction.RADIO_STACK, index=0)
        ncp = make_module("ncp.bin", function=ModuleFunction.NCP_FIRMWARE, index=0)
        user = make_module("user.bin", function=USER, index=1)

        assert filter_modules([radio, ncp, user], argon) == [user]
        assert filter_modules([radio, ncp, user], argon, allow_all=True) == [
            radio,
            ncp,
            user,
        ]

    def test_idempotent(self, make_module):
        """Filtering a filtered set changes nothing."""
        argon = get_platform("argon")
        modules = [
            make_module("radio.bin", function=ModuleFunction.RADIO_STACK, index=0),
            make_module("system.bin", function=SYSTEM, index=1),
            make_module("user.bin", function=USER, index=1),
        ]

        once = filter_modules(modules, argon)
        assert filter_modules(once, argon) == once

    def test_input_not_modified(self, make_module):
        """The input list is left untouched."""
        argon = get_platform("argon")
        modules = [make_module("radio.bin", function=ModuleFunction.RADIO_STACK)]

        filter_modules(modules, argon)

        assert len(modules) == 1


class TestBuildFlashSteps:
    """Tests for build_flash_steps."""

    def test_normal_mode_scenario(self, scenario_modules):
        """A device in normal mode gets its normal-mode steps first."""
        steps = build_flash_steps(
            scenario_modules, is_in_dfu_mode=False, platform=get_platform("p2")
        )

        assert [(s.name, s.flash_mode) for s in steps] == [
            ("bootloader.bin", FlashMode.NORMAL),
            ("system-part1.bin", FlashMode.DFU),
            ("user-part.bin", FlashMode.DFU),
        ]

    def test_dfu_mode_scenario(self, scenario_modules):
        """A device already in DFU mode gets its DFU steps first."""
        steps = build_flash_steps(
            scenario_modules, is_in_dfu_mode=True, platform=get_platform("p2")
        )

        assert [s.name for s in steps] == [
            "system-part1.bin",
            "user-part.bin",
            "bootloader.bin",
        ]

    def test_scenario_independent_of_input_order(self, scenario_modules):
        """Dependency order is restored whatever the input order."""
        steps = build_flash_steps(
            list(reversed(scenario_modules)),
            is_in_dfu_mode=False,
            platform=get_platform("p2"),
        )

        assert [s.name for s in steps] == [
            "bootloader.bin",
            "system-part1.bin",
            "user-part.bin",
        ]

    @pytest.mark.parametrize("is_in_dfu_mode", [True, False])
    def test_assets_always_last(self, make_module, is_in_dfu_mode):
        """Asset steps come last and use normal mode."""
        modules = [
            make_module("asset.bin", function=ModuleFunction.ASSET, index=0),
            make_module("boot.bin", function=BOOTLOADER, index=0),
            make_module("system.bin", function=SYSTEM, index=1),
        ]

        steps = build_flash_steps(
            modules, is_in_dfu_mode=is_in_dfu_mode, platform=get_platform("boron")
        )

        assert steps[-1].name == "asset.bin"
        assert steps[-1].flash_mode == FlashMode.NORMAL
        assert steps[-1].module_type == ModuleType.ASSETS

    def test_external_ncp_is_normal(self, make_module):
        """External NCP firmware is grouped with normal-mode steps."""
        modules = [
            make_module("system.bin", function=SYSTEM, index=1),
            make_module("ncp.bin", function=ModuleFunction.NCP_FIRMWARE, index=0),
        ]

        steps = build_flash_steps(
            modules, is_in_dfu_mode=False, platform=get_platform("argon")
        )

        assert [(s.name, s.flash_mode) for s in steps] == [
            ("ncp.bin", FlashMode.NORMAL),
            ("system.bin", FlashMode.DFU),
        ]

    def test_drop_module_info_strips_prefix(self, make_module):
        """Modules flagged DROP_MODULE_INFO are written without their prefix."""
        module = make_module(
            "user.bin", function=USER, index=1, flags=ModuleFlags.DROP_MODULE_INFO
        )

        steps = build_flash_steps(
            [module], is_in_dfu_mode=False, platform=get_platform("boron")
        )

        assert steps[0].data == module.data[24:]

    def test_data_kept_without_flag(self, make_module):
        """Modules without the flag are written whole."""
        module = make_module("user.bin", function=USER, index=1)

        steps = build_flash_steps(
            [module], is_in_dfu_mode=False, platform=get_platform("boron")
        )

        assert steps[0].data == module.data
        assert steps[0].module_info == module.module_info

    def test_unknown_module_type_for_platform(self, make_module):
        """A module type the platform lacks is a configuration error."""
        module = make_module("ncp.bin", function=ModuleFunction.NCP_FIRMWARE, index=0)

        with pytest.raises(PlatformConfigError):
            build_flash_steps(
                [module], is_in_dfu_mode=False, platform=get_platform("boron")
            )

    def test_cycle_propagates(self, make_module):
        """Dependency cycles abort step building."""
        modules = [
            make_module("a.bin", function=SYSTEM, index=1, dep=(USER, 1, 0)),
            make_module("b.bin", function=USER, index=1, dep=(SYSTEM, 1, 0)),
        ]

        with pytest.raises(DependencyCycleError):
            build_flash_steps(
                modules, is_in_dfu_mode=False, platform=get_platform("boron")
            )


class TestTotalProgressUnits:
    """Tests for total_progress_units."""

    def _step(self, make_module, size, mode):
        module = make_module()
        return FlashStep(
            name=f"{mode.value}.bin",
            module_info=module.module_info,
            data=b"\x00" * size,
            flash_mode=mode,
            module_type=ModuleType.SYSTEM_PART,
        )

    def test_weighted_total(self, make_module):
        """DFU bytes count twice, normal-mode bytes twenty times."""
        steps = [
            self._step(make_module, 100, FlashMode.DFU),
            self._step(make_module, 50, FlashMode.NORMAL),
        ]
        assert total_progress_units(steps) == 1200

    def test_empty(self):
        """No steps means no progress units."""
        assert total_progress_units([]) == 0
