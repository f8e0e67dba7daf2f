"""selfupdate CLI entry point."""

import logging
from collections.abc import Callable
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from selfupdate.config import UpdaterConfig
from selfupdate.context import Context
from selfupdate.domain.models import Release
from selfupdate.domain.repository import Repository, parse_slug, split_domain_slug
from selfupdate.errors import ConfigurationError, SelfUpdateError, rollback_error
from selfupdate.sources.base import Source
from selfupdate.sources.github import GitHubSource
from selfupdate.sources.http import HttpSource
from selfupdate.updater import Updater
from selfupdate.validation.validators import ChecksumValidator

console = Console()

GITHUB_DOMAIN = "https://github.com"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def build_source(repo: str, source_type: str, base_url: str | None) -> tuple[Source, Repository]:
    """Pick the release source for a repository argument.

    ``auto`` reads the domain from the argument: none or github.com means
    GitHub, any other host is taken as a GitHub Enterprise server.
    """
    if source_type == "http":
        if not base_url:
            raise ConfigurationError("--base-url is required for the http source")
        return HttpSource(base_url), parse_slug(repo)

    domain, slug = split_domain_slug(repo)
    if source_type == "github" or not domain or domain == GITHUB_DOMAIN:
        return GitHubSource(enterprise_base_url=base_url), parse_slug(slug)
    return GitHubSource(enterprise_base_url=f"{domain}/api/v3/"), parse_slug(slug)


def source_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by commands talking to a release source."""
    options = [
        click.option(
            "--source",
            "-t",
            "source_type",
            type=click.Choice(["auto", "github", "http"]),
            default="auto",
            show_default=True,
            help="Release source",
        ),
        click.option("--base-url", help="API base URL (GitHub Enterprise) or manifest server URL"),
        click.option("--os", "os_name", default="", help="Target OS (default: this host)"),
        click.option("--arch", default="", help="Target arch (default: this host)"),
        click.option("--arm", default=0, help="ARM sub-version (5, 6 or 7)"),
        click.option("--filter", "filters", multiple=True, help="Regular expression selecting the asset"),
        click.option("--prerelease", is_flag=True, help="Consider pre-releases"),
        click.option("--draft", is_flag=True, help="Consider draft releases"),
        click.option("--checksums", help="Validate assets against this checksum file of the release"),
        click.option("--timeout", type=float, help="Give up after this many seconds"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_updater(
    repo: str,
    source_type: str,
    base_url: str | None,
    os_name: str,
    arch: str,
    arm: int,
    filters: tuple[str, ...],
    prerelease: bool,
    draft: bool,
    checksums: str | None,
) -> tuple[Updater, Repository]:
    source, repository = build_source(repo, source_type, base_url)
    config = UpdaterConfig(
        source=source,
        validator=ChecksumValidator(unique_filename=checksums) if checksums else None,
        filters=list(filters),
        os=os_name,
        arch=arch,
        arm=arm,
        prerelease=prerelease,
        draft=draft,
    )
    return Updater(config), repository


def release_table(release: Release) -> Table:
    table = Table(title=f"Release {release.version}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Name", release.name or "-")
    table.add_row("Version", release.version)
    table.add_row("Published", release.published_at.isoformat() if release.published_at else "-")
    table.add_row("Prerelease", "yes" if release.prerelease else "no")
    table.add_row("Platform", f"{release.os}/{release.arch}")
    table.add_row("Asset", release.asset_name)
    table.add_row("Asset URL", release.asset_url)
    table.add_row("Size", str(release.asset_byte_size))
    for index, hop in enumerate(release.validation_chain, start=1):
        table.add_row(f"Validation {index}", hop.asset_name)
    table.add_row("Release URL", release.url or "-")
    return table


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """selfupdate - Update executables from their published releases."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("repo")
@click.option("--version", "version", default="", help="Exact release tag to look for")
@source_options
def detect(
    repo: str,
    version: str,
    source_type: str,
    base_url: str | None,
    os_name: str,
    arch: str,
    arm: int,
    filters: tuple[str, ...],
    prerelease: bool,
    draft: bool,
    checksums: str | None,
    timeout: float | None,
) -> None:
    """Show the release that would be installed for REPO."""
    try:
        updater, repository = build_updater(
            repo, source_type, base_url, os_name, arch, arm, filters, prerelease, draft, checksums
        )
        detection = updater.detect_version(Context(timeout=timeout), repository, version)
    except SelfUpdateError as e:
        console.print(f"[red]✗[/red] {e}")
        raise SystemExit(1) from e

    if not detection.found:
        console.print(f"[yellow]No release found for {updater.os}/{updater.arch}[/yellow]")
        raise SystemExit(1)

    console.print(release_table(detection.release))


@cli.command()
@click.argument("cmd_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("current_version")
@click.argument("repo")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@source_options
def update(
    cmd_path: str,
    current_version: str,
    repo: str,
    yes: bool,
    source_type: str,
    base_url: str | None,
    os_name: str,
    arch: str,
    arm: int,
    filters: tuple[str, ...],
    prerelease: bool,
    draft: bool,
    checksums: str | None,
    timeout: float | None,
) -> None:
    """Update the executable CMD_PATH, currently at CURRENT_VERSION, from REPO."""
    try:
        updater, repository = build_updater(
            repo, source_type, base_url, os_name, arch, arm, filters, prerelease, draft, checksums
        )
        ctx = Context(timeout=timeout)

        if not yes:
            detection = updater.detect_latest(ctx, repository)
            if detection.found and detection.release.greater_than(current_version):
                if not click.confirm(f"Update {cmd_path} {current_version} → {detection.release.version}?"):
                    console.print("Aborted")
                    return

        release = updater.update_command(ctx, cmd_path, current_version, repository)
    except SelfUpdateError as e:
        console.print(f"[red]✗[/red] Update failed: {e}")
        if rollback_error(e) is not None:
            console.print("[bold red]The previous executable could not be restored.[/bold red]")
            console.print(f"  Recover it manually next to [cyan]{cmd_path}[/cyan]")
        raise SystemExit(1) from e

    if release.greater_than(current_version):
        console.print(f"[green]✓[/green] Updated to [cyan]{release.version}[/cyan]")
        if release.release_notes:
            console.print(f"\n[dim]{release.release_notes}[/dim]")
    else:
        console.print(f"[green]✓[/green] Already up to date ([cyan]{current_version}[/cyan])")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
