"""Flash service layer for local USB flashing.

This module provides high-level flash operations:
- resolve_binaries / parse_modules: turn user paths, known apps and
  bundles into parsed modules
- plan_flash: validate, filter and order modules without a device
- flash_local: flash a connected device with FlashRun tracking
- get_flash_runs: query the flash history

The order of operations follows the device's safety needs:
- Binaries are validated (CRC, platform) before the device is touched
- Encrypted and restricted modules are filtered out
- The device is always reset and closed once flashing ends
"""

import logging
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath

from sqlalchemy import select
from sqlalchemy.orm import Session

from devflash.cloud.cache import ApiCache
from devflash.cloud.client import CloudApiError
from devflash.config import Settings, get_settings
from devflash.flash.device import DeviceTransport, UsbDevice, open_device
from devflash.flash.executor import FlashSession, FlashStepError, flash_files
from devflash.flash.models import FlashRun
from devflash.flash.progress import FlashProgress, ProgressCallback
from devflash.flash.steps import (
    FlashStep,
    build_flash_steps,
    filter_modules,
    total_progress_units,
)
from devflash.modules.models import ModuleDescriptor
from devflash.modules.parser import HalModuleParser, ModuleParseError, ModuleParser
from devflash.modules.validation import validate_module
from devflash.platforms.registry import get_platform, known_app_names
from devflash.platforms.schema import PlatformSchema
from devflash.types import FlashStatus, ModuleFunction

logger = logging.getLogger(__name__)

BINARY_PATTERN = "*.bin"
BUNDLE_SUFFIX = ".zip"

ProgressFactory = Callable[[list[FlashStep]], ProgressCallback]


class FlashServiceError(Exception):
    """Base exception for flash service errors."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class BinaryNotFoundError(FlashServiceError):
    """A path given for flashing does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"I couldn't find that: {path}", error_code="FILE_NOT_FOUND")
        self.path = path


class KnownAppNotAvailableError(FlashServiceError):
    """A known app has no binary for the device's platform."""

    def __init__(self, app_name: str, platform_name: str) -> None:
        super().__init__(
            f"Known app {app_name} is not available for {platform_name}",
            error_code="KNOWN_APP_NOT_AVAILABLE",
        )
        self.app_name = app_name
        self.platform_name = platform_name


class NothingToFlashError(FlashServiceError):
    """No module is left to flash."""

    def __init__(self, message: str = "No files found to flash") -> None:
        super().__init__(message, error_code="NOTHING_TO_FLASH")


@dataclass
class FlashPlan:
    """Ordered flash steps for one platform (no device required).

    Attributes:
        platform: Target platform.
        is_in_dfu_mode: Device mode the steps were ordered for.
        steps: Ordered flash steps.
        skipped: Names of modules removed by filtering.
        unverified: Names of modules without inspection metadata.
        from_known_app: Whether a known app was resolved for the platform.
        required_device_os_version: Device OS release the application
            depends on, when known.
    """

    platform: PlatformSchema
    is_in_dfu_mode: bool
    steps: list[FlashStep]
    skipped: list[str] = field(default_factory=list)
    unverified: list[str] = field(default_factory=list)
    from_known_app: bool = False
    required_device_os_version: str | None = None

    @property
    def total_bytes(self) -> int:
        return sum(len(step.data) for step in self.steps)

    @property
    def progress_units(self) -> int:
        return total_progress_units(self.steps)


@dataclass
class FlashResult:
    """Result of a flash operation.

    Attributes:
        success: Whether every step was written.
        flash_run_id: ID of the FlashRun (if persisted).
        device_id: Id of the flashed device.
        platform_name: Platform of the device.
        step_names: Steps in execution order.
        bytes_written: Bytes of the steps that completed.
        error_message: Error message if flashing failed.
        error_code: Error code if flashing failed.
    """

    success: bool
    flash_run_id: int | None
    device_id: str
    platform_name: str
    step_names: list[str]
    bytes_written: int
    error_message: str | None = None
    error_code: str | None = None


def resolve_known_app(
    name: str, platform: PlatformSchema, known_apps_dir: Path | None = None
) -> Path:
    """Binary of a known app for a platform.

    Args:
        name: Known app name (e.g., 'tinker').
        platform: Target platform.
        known_apps_dir: Directory holding known app binaries; defaults
            to settings.known_apps_dir.

    Returns:
        Path of the app binary.

    Raises:
        KnownAppNotAvailableError: The platform has no such app.
        BinaryNotFoundError: The app binary is not installed.
    """
    relative = platform.known_apps.get(name)
    if relative is None:
        raise KnownAppNotAvailableError(name, platform.name)

    if known_apps_dir is None:
        known_apps_dir = get_settings().known_apps_dir
    path = Path(known_apps_dir) / relative
    if not path.is_file():
        raise BinaryNotFoundError(str(path))

    logger.info("Using known app %s for %s: %s", name, platform.name, path)
    return path


def resolve_binaries(
    paths: list[str | Path],
    *,
    platform: PlatformSchema | None = None,
    known_apps_dir: Path | None = None,
) -> list[Path]:
    """Expand user paths into binary files.

    Files (binaries and .zip bundles) pass through. Directories expand
    to the binaries they contain, sorted by name. A path that does not
    exist is looked up as a known app when a platform is given.
    Duplicates are dropped, keeping the first occurrence.

    Args:
        paths: Files, directories and known app names.
        platform: Target platform for known apps.
        known_apps_dir: Directory holding known app binaries.

    Returns:
        Binary and bundle file paths.

    Raises:
        BinaryNotFoundError: A path does not exist.
        KnownAppNotAvailableError: A known app is missing for the platform.
        NothingToFlashError: No binaries were found.
    """
    binaries: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            found = sorted(p for p in path.glob(BINARY_PATTERN) if p.is_file())
            logger.debug("Found %d binaries in %s", len(found), path)
        elif path.exists():
            found = [path]
        elif platform is not None and (
            str(raw) in platform.known_apps or str(raw) in known_app_names()
        ):
            found = [resolve_known_app(str(raw), platform, known_apps_dir)]
        else:
            raise BinaryNotFoundError(str(raw))
        for binary in found:
            if binary not in binaries:
                binaries.append(binary)

    if not binaries:
        raise NothingToFlashError()
    return binaries


def parse_bundle(
    path: Path, parser: ModuleParser | None = None
) -> list[ModuleDescriptor]:
    """Parse the module binaries inside a .zip bundle.

    Members ending in .bin are parsed in name order. Other members
    (manifests, assets) are ignored.

    Args:
        path: Bundle file.
        parser: Module parser; defaults to HalModuleParser.

    Returns:
        Descriptors named after the bundle members.

    Raises:
        ModuleParseError: The bundle is not a valid zip file, holds no
            binaries, or a member could not be parsed.
    """
    if parser is None:
        parser = HalModuleParser()

    try:
        with zipfile.ZipFile(path) as bundle:
            members = sorted(
                name
                for name in bundle.namelist()
                if PurePosixPath(name).suffix == ".bin"
            )
            modules = [
                parser.parse_buffer(
                    str(path / PurePosixPath(name).name), bundle.read(name)
                )
                for name in members
            ]
    except zipfile.BadZipFile as e:
        raise ModuleParseError(str(path), f"not a valid bundle ({e})") from e

    if not modules:
        raise ModuleParseError(str(path), "bundle contains no binaries")

    logger.debug("Extracted %d modules from bundle %s", len(modules), path)
    return modules


def parse_modules(
    paths: list[Path], parser: ModuleParser | None = None
) -> list[ModuleDescriptor]:
    """Parse binaries and bundles into module descriptors.

    Args:
        paths: Binary files and .zip bundles.
        parser: Module parser; defaults to HalModuleParser.

    Returns:
        Descriptors in input order, bundle members in place of their
        bundle.

    Raises:
        ModuleParseError: A file could not be read or parsed.
    """
    if parser is None:
        parser = HalModuleParser()

    modules = []
    for path in paths:
        try:
            if Path(path).suffix.lower() == BUNDLE_SUFFIX:
                modules.extend(parse_bundle(Path(path), parser))
            else:
                modules.append(parser.parse_file(path))
        except ModuleParseError:
            raise
        except OSError as e:
            raise ModuleParseError(str(path), str(e)) from e
    return modules


def find_required_device_os(
    modules: list[ModuleDescriptor], api_cache: ApiCache
) -> str | None:
    """Device OS release required by the first application module.

    Lookup failures are logged and treated as unknown.

    Args:
        modules: Parsed modules.
        api_cache: Cloud lookup.

    Returns:
        Version string such as '5.8.0', or None.
    """
    application = next(
        (
            m
            for m in modules
            if m.prefix_info.module_function == ModuleFunction.USER_PART
        ),
        None,
    )
    if application is None:
        return None

    prefix = application.prefix_info
    try:
        data = api_cache.get_device_os_version(
            prefix.platform_id, prefix.dep_module_version
        )
    except CloudApiError as e:
        logger.info("Device OS version lookup failed: %s", e.message)
        return None

    version = data.get("version")
    return str(version) if version else None


def plan_flash(
    paths: list[str | Path],
    platform: PlatformSchema,
    *,
    is_in_dfu_mode: bool = False,
    allow_all: bool = False,
    force: bool = False,
    parser: ModuleParser | None = None,
    api_cache: ApiCache | None = None,
    known_apps_dir: Path | None = None,
) -> FlashPlan:
    """Create a plan for flashing binaries to a platform.

    This validates inputs and computes the flash steps without touching
    a device. Useful for dry-run mode.

    Args:
        paths: Files, directories, bundles and known app names.
        platform: Target platform.
        is_in_dfu_mode: Current device mode.
        allow_all: Keep radio stack and NCP firmware modules.
        force: Accept CRC and platform mismatches.
        parser: Module parser; defaults to HalModuleParser.
        api_cache: Cloud lookup for the application's Device OS version.
            Skipped for known apps, which may target an older release.
        known_apps_dir: Directory holding known app binaries.

    Returns:
        FlashPlan with the ordered steps.

    Raises:
        BinaryNotFoundError: A path does not exist.
        KnownAppNotAvailableError: A known app is missing for the platform.
        NothingToFlashError: Nothing is left to flash.
        ModuleParseError: A binary could not be parsed.
        IntegrityError: CRC mismatch without force.
        PlatformMismatchError: Platform mismatch without force.
        DependencyCycleError: Circular module dependencies.
        PlatformConfigError: A module has no registry entry on the platform.
    """
    binaries = resolve_binaries(
        paths, platform=platform, known_apps_dir=known_apps_dir
    )
    modules = parse_modules(binaries, parser)
    # Paths that resolved without existing on disk were known apps
    from_known_app = any(not Path(p).exists() for p in paths)

    unverified = [
        m.name for m in modules if not validate_module(m, platform.id, force=force)
    ]

    required_version = None
    if api_cache is not None and not from_known_app:
        required_version = find_required_device_os(modules, api_cache)

    kept = filter_modules(modules, platform, allow_all=allow_all)
    kept_ids = {id(m) for m in kept}
    skipped = [m.name for m in modules if id(m) not in kept_ids]
    if not kept:
        raise NothingToFlashError("No modules left to flash after filtering")

    steps = build_flash_steps(kept, is_in_dfu_mode=is_in_dfu_mode, platform=platform)

    return FlashPlan(
        platform=platform,
        is_in_dfu_mode=is_in_dfu_mode,
        steps=steps,
        skipped=skipped,
        unverified=unverified,
        from_known_app=from_known_app,
        required_device_os_version=required_version,
    )


async def flash_local(
    paths: list[str | Path],
    transport: DeviceTransport,
    *,
    device_id: str | None = None,
    settings: Settings | None = None,
    session: Session | None = None,
    force: bool = False,
    allow_all: bool = False,
    parser: ModuleParser | None = None,
    api_cache: ApiCache | None = None,
    progress_factory: ProgressFactory | None = None,
) -> FlashResult:
    """Flash binaries to a USB device.

    This is the main entry point for flashing. It:
    1. Opens the device (bounded retry)
    2. Plans the flash for the device's platform and mode
    3. Optionally creates a FlashRun for tracking
    4. Runs the flash steps
    5. Updates the FlashRun with the outcome

    Args:
        paths: Files, directories, bundles and known app names.
        transport: USB transport.
        device_id: Device to open; None for the only attached device.
        settings: Application settings (optional).
        session: Database session (optional, for FlashRun tracking).
        force: Accept CRC and platform mismatches.
        allow_all: Keep radio stack and NCP firmware modules.
        parser: Module parser; defaults to HalModuleParser.
        api_cache: Cloud lookup for the application's Device OS version.
        progress_factory: Builds the progress receiver for the steps;
            defaults to FlashProgress.

    Returns:
        FlashResult with operation details. A failed step is reported
        here rather than raised.

    Raises:
        TransportError: The device could not be opened.
        UnknownPlatformError: The device reports an unknown platform.
        FlashServiceError: Paths could not be resolved.
        ModuleParseError: A binary could not be parsed.
        ModuleValidationError: CRC or platform check failed without force.
    """
    if settings is None:
        settings = get_settings()
    if progress_factory is None:
        progress_factory = FlashProgress

    device = await open_device(
        transport,
        device_id,
        timeout=settings.open_timeout,
        poll_interval=settings.open_poll_interval,
    )

    # The device stays open until flash_files takes ownership of it
    try:
        platform = get_platform(device.platform_id)
        plan = plan_flash(
            paths,
            platform,
            is_in_dfu_mode=device.is_in_dfu_mode,
            allow_all=allow_all,
            force=force,
            parser=parser,
            api_cache=api_cache,
            known_apps_dir=settings.known_apps_dir,
        )

        if (
            plan.required_device_os_version
            and plan.required_device_os_version != device.firmware_version
        ):
            logger.warning(
                "Application targets Device OS %s, device runs %s",
                plan.required_device_os_version,
                device.firmware_version or "unknown",
            )

        step_names = [step.name for step in plan.steps]
        logger.info(
            "Flashing %s %s: %s", platform.name, device.id, ", ".join(step_names)
        )

        flash_run: FlashRun | None = None
        if session is not None:
            flash_run = FlashRun(
                device_id=device.id,
                platform_id=platform.id,
                step_names=step_names,
                step_count=len(plan.steps),
                total_bytes=plan.total_bytes,
                status=FlashStatus.PENDING.value,
                requested_at=datetime.now(),
            )
            session.add(flash_run)
            session.flush()
            logger.debug("Created FlashRun id=%d", flash_run.id)

        flash_session = FlashSession(
            transport=transport,
            settings=settings,
            progress=progress_factory(plan.steps),
        )

        if flash_run:
            flash_run.mark_running()
            session.flush()  # type: ignore[union-attr]
    except Exception:
        await _close_quietly(device)
        raise

    try:
        await flash_files(flash_session, device, plan.steps)
    except FlashStepError as e:
        if flash_run:
            flash_run.mark_failed(error_type=e.error_code, message=e.message)
            session.flush()  # type: ignore[union-attr]

        return FlashResult(
            success=False,
            flash_run_id=flash_run.id if flash_run else None,
            device_id=device.id,
            platform_name=platform.name,
            step_names=step_names,
            bytes_written=sum(len(s.data) for s in plan.steps[: e.index - 1]),
            error_message=e.message,
            error_code=e.error_code,
        )

    if flash_run:
        flash_run.mark_succeeded()
        session.flush()  # type: ignore[union-attr]

    logger.info("Flash succeeded: %d bytes written to %s", plan.total_bytes, device.id)

    return FlashResult(
        success=True,
        flash_run_id=flash_run.id if flash_run else None,
        device_id=device.id,
        platform_name=platform.name,
        step_names=step_names,
        bytes_written=plan.total_bytes,
    )


async def _close_quietly(device: UsbDevice) -> None:
    try:
        await device.close()
    except Exception as e:
        logger.warning("Could not close device %s: %s", device.id, e)


def get_flash_runs(
    session: Session,
    device_id: str | None = None,
    status: FlashStatus | None = None,
    limit: int = 100,
) -> list[FlashRun]:
    """List flash runs with optional filters.

    Args:
        session: Database session.
        device_id: Filter by device id.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of FlashRun instances, newest first.
    """
    stmt = select(FlashRun)

    if device_id is not None:
        stmt = stmt.where(FlashRun.device_id == device_id)
    if status is not None:
        stmt = stmt.where(FlashRun.status == status.value)

    stmt = stmt.order_by(FlashRun.id.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


__all__ = [
    "BinaryNotFoundError",
    "FlashPlan",
    "FlashResult",
    "FlashServiceError",
    "KnownAppNotAvailableError",
    "NothingToFlashError",
    "find_required_device_os",
    "flash_local",
    "get_flash_runs",
    "parse_bundle",
    "parse_modules",
    "plan_flash",
    "resolve_binaries",
    "resolve_known_app",
]
