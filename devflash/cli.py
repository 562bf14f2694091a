"""Thin CLI wrapper for devflash.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from devflash import __version__
from devflash.config import get_settings, print_settings_json

app = typer.Typer(
    name="devflash",
    help="Device firmware flasher - inspect module binaries and flash USB devices",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"devflash version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Device firmware flasher - inspect module binaries and flash USB devices."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Offline mode:        {settings.offline}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  USB transport:       {settings.usb_transport or '(not set)'}")
        console.print()
        console.print("[bold]Cloud API:[/bold]")
        console.print(f"  API URL:             {settings.api_url}")
        token_display = "***" if settings.access_token else "(not set)"
        console.print(f"  Access token:        {token_display}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Open timeout:        {settings.open_timeout}")
        console.print(f"  Reopen timeout:      {settings.reopen_timeout}")
        console.print(f"  Apply reopen:        {settings.apply_reopen_timeout}")
        console.print(f"  Apply delay:         {settings.flash_apply_delay}")


platforms_app = typer.Typer(help="Show supported hardware platforms")
app.add_typer(platforms_app, name="platforms")


@platforms_app.command("list")
def platforms_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List supported platforms."""
    from devflash.platforms.registry import get_platforms

    platforms = get_platforms()

    if json_output:
        output = [p.model_dump(mode="json") for p in platforms]
        console.print(json.dumps(output, indent=2))
        return

    console.print(f"[bold]{len(platforms)} platform(s):[/bold]")
    for p in platforms:
        console.print(
            f"  {p.id:>4}  {p.name:<10} {p.display_name} (Gen {p.generation})"
        )


@platforms_app.command("show")
def platforms_show(
    platform: Annotated[str, typer.Argument(help="Platform id or name")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a platform and where it stores each firmware module."""
    from devflash.platforms.registry import UnknownPlatformError, get_platform

    try:
        p = get_platform(platform)
    except UnknownPlatformError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(json.dumps(p.model_dump(mode="json"), indent=2))
        return

    console.print(f"[bold]{p.display_name}[/bold] ({p.name}, id {p.id})")
    console.print(f"  Generation: {p.generation}")
    console.print("  Firmware modules:")
    for m in p.firmware_modules:
        encrypted = " [yellow]encrypted[/yellow]" if m.encrypted else ""
        console.print(
            f"    {m.type.value:<13} index {m.index:<3} {m.storage.value}{encrypted}"
        )


binary_app = typer.Typer(help="Inspect firmware module binaries")
app.add_typer(binary_app, name="binary")


@binary_app.command("inspect")
def binary_inspect(
    file: Annotated[Path, typer.Argument(help="Module binary to inspect")],
) -> None:
    """Describe a module binary: CRC, platform, module type and dependencies."""
    from devflash.modules.classifier import (
        describe_module_type,
        module_type_for_function,
    )
    from devflash.modules.parser import HalModuleParser, ModuleParseError
    from devflash.platforms.registry import UnknownPlatformError, get_platform

    try:
        module = HalModuleParser().parse_file(file)
    except ModuleParseError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None
    except OSError as e:
        console.print(f"[red]I couldn't find that: {file} ({e.strerror})[/red]")
        raise typer.Exit(code=1) from None

    if not module.suffix_info.has_inspection_info:
        console.print(
            f"[red]{module.name} does not contain inspection information[/red]"
        )
        raise typer.Exit(code=1)

    prefix = module.prefix_info
    suffix = module.suffix_info

    console.print(f"[bold]{module.name}[/bold]")

    if module.crc.ok:
        console.print(f"[green] CRC is ok ({module.crc.actual_crc:08x})[/green]")
    else:
        console.print(
            f"[red] CRC failed (should be [bold]{module.crc.stored_crc:08x}[/bold]"
            f" but is [bold]{module.crc.actual_crc:08x}[/bold])[/red]"
        )

    try:
        platform = get_platform(prefix.platform_id)
        console.print(f" Compiled for [bold]{platform.name}[/bold]")
    except UnknownPlatformError:
        console.print(
            f" Compiled for unknown platform (ID: [bold]{prefix.platform_id}[/bold])"
        )

    label = describe_module_type(module_type_for_function(prefix.module_function))
    console.print(
        f" This is [bold]{label}[/bold] number [bold]{prefix.module_index}[/bold]"
        f" at version [bold]{prefix.module_version}[/bold]"
    )

    if suffix.is_product_firmware:
        console.print(
            f" It is firmware for [bold]product id {suffix.product_id}[/bold]"
            f" at version [bold]{suffix.product_version}[/bold]"
        )

    for i, dep in enumerate(prefix.dependencies):
        dep_label = describe_module_type(module_type_for_function(dep.module_function))
        also = "also " if i else ""
        console.print(
            f" It {also}depends on [bold]{dep_label}[/bold]"
            f" number [bold]{dep.module_index}[/bold]"
            f" at version [bold]{dep.module_version}[/bold]"
        )


flash_app = typer.Typer(help="Flash module binaries to USB devices")
app.add_typer(flash_app, name="flash")


@flash_app.command("plan")
def flash_plan(
    files: Annotated[
        list[Path],
        typer.Argument(
            help="Module binaries, .zip bundles, directories or a known app name"
        ),
    ],
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="Target platform id or name"),
    ],
    dfu: Annotated[
        bool,
        typer.Option("--dfu", help="Plan for a device that is already in DFU mode"),
    ] = False,
    allow_all: Annotated[
        bool,
        typer.Option("--allow-all", help="Include radio stack and NCP modules"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Ignore CRC and platform mismatches"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the flash steps for binaries without touching a device.

    Steps are filtered, ordered by dependency and grouped by transport
    exactly as 'flash usb' would run them.
    """
    from devflash.cloud.cache import ApiCache
    from devflash.flash.service import plan_flash
    from devflash.platforms.registry import get_platform

    settings = get_settings()

    try:
        target = get_platform(platform)
        api_cache = (
            ApiCache(settings=settings)
            if settings.access_token or settings.offline
            else None
        )
        plan = plan_flash(
            list(files),
            target,
            is_in_dfu_mode=dfu,
            allow_all=allow_all,
            force=force,
            api_cache=api_cache,
            known_apps_dir=settings.known_apps_dir,
        )
    except Exception as e:
        console.print(f"[red]Planning failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = {
            "platform": target.name,
            "is_in_dfu_mode": plan.is_in_dfu_mode,
            "steps": [
                {
                    "name": s.name,
                    "module_type": s.module_type.value,
                    "flash_mode": s.flash_mode.value,
                    "size": len(s.data),
                }
                for s in plan.steps
            ],
            "skipped": plan.skipped,
            "unverified": plan.unverified,
            "from_known_app": plan.from_known_app,
            "total_bytes": plan.total_bytes,
            "progress_units": plan.progress_units,
            "required_device_os_version": plan.required_device_os_version,
        }
        console.print(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Flash plan for {target.display_name}[/bold]")
    for index, s in enumerate(plan.steps, start=1):
        console.print(
            f"  {index}. {s.name} ({s.module_type.value}, "
            f"{s.flash_mode.value} mode, {len(s.data)} bytes)"
        )
    for name in plan.skipped:
        console.print(f"  [yellow]Skipped {name}[/yellow]")
    for name in plan.unverified:
        console.print(f"  [yellow]Unable to verify binary info for {name}[/yellow]")
    console.print(f"  Total: {plan.total_bytes} bytes")
    if plan.required_device_os_version:
        console.print(
            f"  Application requires Device OS {plan.required_device_os_version}"
        )


@flash_app.command("usb")
def flash_usb(
    files: Annotated[
        list[Path],
        typer.Argument(
            help="Module binaries, .zip bundles, directories or a known app name"
        ),
    ],
    device_id: Annotated[
        str | None,
        typer.Option("--device", "-d", help="Device id (default: the only device)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Ignore CRC and platform mismatches"),
    ] = False,
    allow_all: Annotated[
        bool,
        typer.Option("--allow-all", help="Include radio stack and NCP modules"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Flash binaries to a device connected over USB.

    The device is switched between normal and DFU mode as needed and is
    reset once flashing ends.
    """
    from devflash.cloud.cache import ApiCache
    from devflash.db import create_all_tables, get_engine, get_session_factory
    from devflash.flash.device import load_transport
    from devflash.flash.progress import FlashProgress
    from devflash.flash.service import flash_local

    settings = get_settings()

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    # Keep stdout clean for JSON output
    progress_console = err_console if json_output else console

    with factory() as session:
        try:
            transport = load_transport(settings.usb_transport)
            api_cache = (
                ApiCache(settings=settings)
                if settings.access_token or settings.offline
                else None
            )
            result = asyncio.run(
                flash_local(
                    list(files),
                    transport,
                    device_id=device_id,
                    settings=settings,
                    session=session,
                    force=force,
                    allow_all=allow_all,
                    api_cache=api_cache,
                    progress_factory=lambda steps: FlashProgress(
                        steps, console=progress_console
                    ),
                )
            )
            session.commit()
        except Exception as e:
            console.print(f"[red]Flash failed: {e}[/red]")
            raise typer.Exit(code=1) from None

    if json_output:
        output = {
            "success": result.success,
            "flash_run_id": result.flash_run_id,
            "device_id": result.device_id,
            "platform": result.platform_name,
            "steps": result.step_names,
            "bytes_written": result.bytes_written,
            "error_message": result.error_message,
            "error_code": result.error_code,
        }
        console.print(json.dumps(output, indent=2))
    elif result.success:
        console.print("[green]✓ Flash success![/green]")
        console.print(f"  Device: {result.device_id} ({result.platform_name})")
        console.print(f"  Bytes written: {result.bytes_written}")
        if result.flash_run_id:
            console.print(f"  Run ID: {result.flash_run_id}")
    else:
        console.print("[red]✗ Flash failed[/red]")
        if result.error_message:
            console.print(f"  Error: {result.error_message}")

    if not result.success:
        raise typer.Exit(code=1)


@flash_app.command("list")
def flash_list(
    device_id: Annotated[
        str | None,
        typer.Option("--device", "-d", help="Filter by device id"),
    ] = None,
    status: Annotated[
        str | None,
        typer.Option(
            "--status", "-s", help="Filter by status (pending/running/succeeded/failed)"
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of runs to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List flash runs.

    Shows history of flash runs with optional filters.
    """
    from devflash.db import create_all_tables, get_engine, get_session_factory
    from devflash.flash.service import get_flash_runs
    from devflash.types import FlashStatus

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    # Parse status filter
    status_filter: FlashStatus | None = None
    if status:
        try:
            status_filter = FlashStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print("Valid values: pending, running, succeeded, failed")
            raise typer.Exit(code=1) from None

    with factory() as session:
        runs = get_flash_runs(
            session, device_id=device_id, status=status_filter, limit=limit
        )

        if not runs:
            if json_output:
                console.print("[]")
            else:
                console.print("[yellow]No flash runs found[/yellow]")
            return

        if json_output:
            output = [
                {
                    "id": r.id,
                    "device_id": r.device_id,
                    "platform_id": r.platform_id,
                    "steps": r.step_names,
                    "total_bytes": r.total_bytes,
                    "status": r.status,
                    "requested_at": r.requested_at.isoformat()
                    if r.requested_at
                    else None,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "finished_at": r.finished_at.isoformat() if r.finished_at else None,
                    "error_type": r.error_type,
                    "error_message": r.error_message,
                }
                for r in runs
            ]
            console.print(json.dumps(output, indent=2))
        else:
            console.print(f"[bold]Found {len(runs)} flash run(s):[/bold]")
            console.print()
            for r in runs:
                status_color = {
                    "succeeded": "green",
                    "failed": "red",
                    "running": "blue",
                    "pending": "yellow",
                }.get(r.status, "white")
                console.print(f"  [{status_color}]Flash #{r.id}[/{status_color}]")
                console.print(f"    Device: {r.device_id}")
                console.print(f"    Platform ID: {r.platform_id}")
                console.print(f"    Steps: {', '.join(r.step_names)}")
                console.print(f"    Status: {r.status}")
                console.print(
                    f"    Requested: {r.requested_at.isoformat() if r.requested_at else 'N/A'}"
                )
                if r.error_message:
                    console.print(f"    Error: {r.error_message}")
                console.print()


if __name__ == "__main__":
    app()
