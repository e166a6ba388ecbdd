"""Thin CLI wrapper for kernelgen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from kernelgen import __version__
from kernelgen.clean import clean_workspace
from kernelgen.config import Settings, get_settings, print_settings_json
from kernelgen.devices import (
    BUILTIN_PROFILES,
    DEFAULT_DEVICE_ID,
    DeviceProfileSchema,
    ProfileLoadError,
    load_profile,
)
from kernelgen.devices.io import profile_to_yaml_string
from kernelgen.features import FEATURES, ROOT_FEATURES_FRAGMENT
from kernelgen.pipeline import PipelineError, PipelineReport, run_pipeline
from kernelgen.types import FeatureToggles

app = typer.Typer(
    name="kernelgen",
    help="Android kernel builder - sync, integrate root features, build, package",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

INTERRUPTED_EXIT_CODE = 130

STATUS_STYLES = {
    "succeeded": "green",
    "degraded": "yellow",
    "failed": "red",
    "skipped": "dim",
}


def configure_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    logging.getLogger().setLevel(level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kernelgen version {__version__}")
        raise typer.Exit()


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
    """Android kernel builder - sync, integrate root features, build, package."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


def resolve_toggles(
    settings: Settings,
    no_sukisu: bool = False,
    no_susfs: bool = False,
    no_anykernel3: bool = False,
    sukisu_only: bool = False,
    susfs_only: bool = False,
    stock: bool = False,
) -> FeatureToggles:
    """Resolve feature toggles from settings and command-line flags.

    A composite mode sets both overlays; the individual --no-* flags are
    applied on top of it.

    Raises:
        typer.BadParameter: If more than one composite mode is given.
    """
    if sum((sukisu_only, susfs_only, stock)) > 1:
        raise typer.BadParameter(
            "--sukisu-only, --susfs-only and --stock are mutually exclusive"
        )

    privilege = settings.enable_privilege_overlay
    hiding = settings.enable_hiding_overlay
    if sukisu_only:
        privilege, hiding = True, False
    elif susfs_only:
        privilege, hiding = False, True
    elif stock:
        privilege, hiding = False, False

    return FeatureToggles(
        privilege_overlay=privilege and not no_sukisu,
        hiding_overlay=hiding and not no_susfs,
        archive=settings.enable_archive and not no_anykernel3,
    )


def _load_settings(workspace: Path | None, jobs: int | None = None) -> Settings:
    settings = get_settings()
    update: dict[str, object] = {}
    if workspace is not None:
        update["workspace_dir"] = workspace
    if jobs is not None:
        update["jobs"] = jobs
    return settings.model_copy(update=update) if update else settings


def _resolve_profile(settings: Settings, path: Path | None) -> DeviceProfileSchema:
    """Load the profile file if one is given, else the built-in profile."""
    profile_path = path or settings.profile_path
    if profile_path is None:
        return BUILTIN_PROFILES[DEFAULT_DEVICE_ID]
    try:
        return load_profile(profile_path)
    except ProfileLoadError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None


def _print_report(report: PipelineReport) -> None:
    console.print()
    console.print("[bold]Build summary:[/bold]")
    for stage in report.stages:
        style = STATUS_STYLES.get(stage.status.value, "white")
        console.print(f"  {stage.name:<12} [{style}]{stage.status.value}[/{style}]")
        for note in stage.notes:
            console.print(f"    [dim]{note}[/dim]")
    for result in report.integrations:
        if not result.enabled:
            continue
        patches = f", patches {result.patches.summary()}" if result.patches else ""
        console.print(
            f"  {result.feature}: {result.outcome.value} "
            f"({result.strategy.value}{patches})"
        )
    if report.warning_count:
        console.print(f"  [yellow]Warnings: {report.warning_count}[/yellow]")
    if report.output is not None:
        for path in report.output.files:
            console.print(f"  Output: {path}")
    if report.archive_path is not None:
        console.print(f"  [green]Archive: {report.archive_path}[/green]")


@app.command()
def build(
    no_sukisu: Annotated[
        bool,
        typer.Option("--no-sukisu", help="Disable SukiSU Ultra integration"),
    ] = False,
    no_susfs: Annotated[
        bool,
        typer.Option("--no-susfs", help="Disable SUSFS integration"),
    ] = False,
    no_anykernel3: Annotated[
        bool,
        typer.Option("--no-anykernel3", help="Disable AnyKernel3 ZIP creation"),
    ] = False,
    sukisu_only: Annotated[
        bool,
        typer.Option("--sukisu-only", help="Build with SukiSU Ultra only"),
    ] = False,
    susfs_only: Annotated[
        bool,
        typer.Option("--susfs-only", help="Build with SUSFS only"),
    ] = False,
    stock: Annotated[
        bool,
        typer.Option("--stock", help="Build a stock kernel (no root features)"),
    ] = False,
    profile_path: Annotated[
        Path | None,
        typer.Option("--profile", help="Device profile file (YAML or JSON)"),
    ] = None,
    workspace: Annotated[
        Path | None,
        typer.Option("--workspace", help="Workspace directory"),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", help="Parallel build jobs", min=1),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the build report as JSON"),
    ] = False,
) -> None:
    """Sync sources, integrate features, configure, build and package."""
    settings = _load_settings(workspace, jobs)
    toggles = resolve_toggles(
        settings, no_sukisu, no_susfs, no_anykernel3, sukisu_only, susfs_only, stock
    )
    profile = _resolve_profile(settings, profile_path)

    try:
        report = run_pipeline(settings, toggles, profile)
    except PipelineError as e:
        if json_output and e.report is not None:
            data = e.report.to_dict()
            data["error"] = {"stage": e.stage, "code": e.code, "message": str(e)}
            typer.echo(json.dumps(data, indent=2))
        else:
            if e.report is not None:
                _print_report(e.report)
            console.print(f"[red]Build failed during {e.stage}: {e}[/red]")
            if e.log_path is not None:
                console.print(f"[red]Check {e.log_path} for details[/red]")
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE) from None

    if json_output:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)


@app.command()
def clean(
    profile_path: Annotated[
        Path | None,
        typer.Option("--profile", help="Device profile file (YAML or JSON)"),
    ] = None,
    workspace: Annotated[
        Path | None,
        typer.Option("--workspace", help="Workspace directory"),
    ] = None,
) -> None:
    """Clean build artifacts (preserves sources and integrations)."""
    settings = _load_settings(workspace)
    profile = _resolve_profile(settings, profile_path)
    try:
        result = clean_workspace(
            settings.workspace_dir,
            settings.output_dir,
            build_output=profile.build_output,
        )
    except OSError as e:
        console.print(f"[red]Clean failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE) from None

    console.print(
        f"[green]Cleaned {len(result.removed_dirs)} directories "
        f"and {result.removed_files} files[/green]"
    )


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
        typer.echo(print_settings_json(settings))
        return

    ndk_display = str(settings.android_ndk_home) if settings.android_ndk_home else "-"
    profile_display = (
        str(settings.profile_path) if settings.profile_path else "(built-in)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Workspace:           {settings.workspace_dir}")
    console.print(f"  Output directory:    {settings.output_dir}")
    console.print(f"  Device profile:      {profile_display}")
    console.print(f"  Android NDK:         {ndk_display}")
    console.print()
    console.print("[bold]Features:[/bold]")
    console.print(f"  SukiSU Ultra:        {settings.enable_privilege_overlay}")
    console.print(f"  SUSFS:               {settings.enable_hiding_overlay}")
    console.print(f"  AnyKernel3 ZIP:      {settings.enable_archive}")
    console.print()
    console.print("[bold]Build:[/bold]")
    console.print(f"  Jobs:                {settings.jobs}")
    console.print(f"  KCFLAGS:             {settings.kcflags}", markup=False)
    console.print(f"  HOSTCFLAGS:          {settings.hostcflags}", markup=False)
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Sync timeout:        {settings.sync_timeout}")
    console.print(f"  Setup timeout:       {settings.setup_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")


@app.command()
def features(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List feature overlays and their config fragments."""
    if json_output:
        output = {
            "root_fragment": ROOT_FEATURES_FRAGMENT,
            "features": [f.model_dump(mode="json") for f in FEATURES],
        }
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(
        f"[bold]Shared root-feature fragment:[/bold] "
        f"{len(ROOT_FEATURES_FRAGMENT)} options"
    )
    console.print()
    for feature in FEATURES:
        console.print(f"  [green]{feature.name}[/green] ({feature.display_name})")
        console.print(f"    Repository: {feature.repo.url}")
        console.print(f"    Integration: {feature.integration}")
        console.print(f"    Archive label: {feature.label}")
        for key, value in feature.config_fragment.items():
            rendered = f"# {key} is not set" if value is None else f"{key}={value}"
            console.print(f"      {rendered}", markup=False)
        console.print()


@app.command()
def profile(
    path: Annotated[
        Path | None,
        typer.Argument(help="Profile file to validate (default: built-in profile)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Validate and show a device profile."""
    if path is not None and not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)

    schema = _resolve_profile(get_settings(), path)
    if json_output:
        typer.echo(schema.model_dump_json(indent=2, exclude_none=True))
        return

    if path is not None:
        console.print(f"[green]✓ Valid profile: {schema.device_id}[/green]")
    console.print(profile_to_yaml_string(schema), markup=False)


if __name__ == "__main__":
    app()
