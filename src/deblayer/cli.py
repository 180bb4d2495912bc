"""deblayer command line interface."""

import asyncio
import logging
from pathlib import Path

import typer
from pydantic import ValidationError

from deblayer.build import build_layer, resolve_packages
from deblayer.config import Settings, get_settings
from deblayer.errors import ConfigError, DebLayerError
from deblayer.models import Distribution, RequestedPackage, Resolution
from deblayer.project import load_project
from deblayer.system import detect_distribution, read_installed_packages

logger = logging.getLogger(__name__)

cli = typer.Typer(help="Install Debian packages into a build layer without a package manager.", no_args_is_help=True)

ProjectOption = typer.Option(Path("project.toml"), "--project", help="Project descriptor listing the packages")
LayersDirOption = typer.Option(None, "--layers-dir", help="Layers root (defaults to CNB_LAYERS_DIR)")
CodenameOption = typer.Option(None, "--codename", help="Target codename (defaults to the base image's)")
ArchOption = typer.Option(None, "--arch", help="Target architecture (defaults to the machine's)")
CacheDaysOption = typer.Option(None, "--cache-days", min=0, help="Days a cached layer stays valid, 0 disables it")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def _configure(layers_dir: Path | None, cache_days: int | None, verbose: bool) -> Settings:
    try:
        settings = get_settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    updates: dict = {}
    if layers_dir is not None:
        updates["layers_dir"] = layers_dir
    if cache_days is not None:
        updates["package_cache_days"] = cache_days
    settings = settings.model_copy(update=updates)

    logging.getLogger().setLevel(logging.DEBUG if verbose else settings.log_level.upper())
    return settings


def _prepare(
    project: Path, codename: str | None, arch: str | None, settings: Settings
) -> tuple[list[RequestedPackage], Distribution, set[str]]:
    requested = load_project(project)
    if not requested:
        logger.warning(f"No packages listed under [tool.deblayer] in {project}")
    distribution = detect_distribution(settings.os_release_path, codename, arch, settings.keyring_path)
    installed = read_installed_packages(settings.dpkg_status_path)
    return requested, distribution, installed


def _print_plan(resolution: Resolution) -> None:
    for package in resolution.resolved:
        origin = f" (via {' -> '.join(package.dependency_path)})" if package.dependency_path else ""
        typer.echo(f"install {package.name} {package.version} [{package.provenance.value}]{origin}")
    for package in resolution.skipped:
        typer.echo(f"skip    {package.name} [already installed]")
    for notification in resolution.notifications:
        typer.echo(notification.message, err=True)


@cli.command()
def build(
    project: Path = ProjectOption,
    layers_dir: Path | None = LayersDirOption,
    codename: str | None = CodenameOption,
    arch: str | None = ArchOption,
    cache_days: int | None = CacheDaysOption,
    verbose: bool = VerboseOption,
):
    """Build the packages layer: index, resolve, install and write its environment."""
    try:
        settings = _configure(layers_dir, cache_days, verbose)
        requested, distribution, installed = _prepare(project, codename, arch, settings)
        result = asyncio.run(build_layer(requested, distribution, installed, settings))
    except DebLayerError as e:
        logger.error(str(e))
        raise typer.Exit(code=1) from e

    state = "restored from cache" if result.restored else "built"
    typer.echo(f"Layer {result.layer_root} {state} with {len(result.resolution.resolved)} packages")


@cli.command("resolve")
def resolve_command(
    project: Path = ProjectOption,
    layers_dir: Path | None = LayersDirOption,
    codename: str | None = CodenameOption,
    arch: str | None = ArchOption,
    cache_days: int | None = CacheDaysOption,
    verbose: bool = VerboseOption,
):
    """Show what would be installed, without installing it."""
    try:
        settings = _configure(layers_dir, cache_days, verbose)
        requested, distribution, installed = _prepare(project, codename, arch, settings)
        resolution = asyncio.run(resolve_packages(requested, distribution, installed, settings))
    except DebLayerError as e:
        logger.error(str(e))
        raise typer.Exit(code=1) from e

    _print_plan(resolution)


def main() -> None:
    """Main entry point for the deblayer CLI."""
    cli()


if __name__ == "__main__":
    main()
