"""Command line interface.

Exit codes:
    0  every plugin installed
    1  at least one plugin failed
    2  fatal error (configuration, resolution, plugin directory reset)
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import StrandConfig
from .config import get_config_path
from .config import load_config
from .config import save_config
from .exceptions import StrandError
from .installer import install_plugins
from .resolver import resolve_all
from .schema import ArchivePlugin
from .schema import GitPlugin
from .schema import GitProvider
from .schema import InstallReport
from .schema import InstallStatus
from .schema import PluginDeclaration
from .schema import parse_declaration

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2

app = typer.Typer(
    add_completion=False,
    help="Reinstall every plugin listed in the config file, concurrently.",
)

_console = Console()
_err_console = Console(stderr=True)


def _fail(error: StrandError) -> typer.Exit:
    _err_console.print(f"[bold red]Error:[/] {error.message}", highlight=False)
    return typer.Exit(EXIT_FATAL)


def render_report(report: InstallReport, console: Console = _console) -> None:
    """Print one line per plugin and a summary."""
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Status", no_wrap=True)
    table.add_column("Plugin", style="bold", no_wrap=True)
    table.add_column("Details", style="dim")

    for outcome in sorted(report.outcomes, key=lambda o: o.target_name):
        if outcome.ok:
            table.add_row("[green]installed[/]", outcome.target_name, "")
        else:
            label = "download failed" if outcome.status is InstallStatus.FETCH_FAILED else "extract failed"
            table.add_row(f"[red]{label}[/]", outcome.target_name, outcome.reason or "")

    if report.outcomes:
        console.print(table)

    summary = f"{len(report.succeeded)} of {len(report)} plugins installed"
    console.print(f"[green]{summary}[/]" if report.ok else f"[yellow]{summary}[/]")


def exit_code_for(report: InstallReport) -> int:
    return EXIT_OK if report.ok else EXIT_PARTIAL


def _install(config: StrandConfig, jobs: int | None) -> int:
    report = asyncio.run(
        install_plugins(
            config.plugins,
            config.plugin_dir,
            max_concurrent=jobs or config.max_concurrent,
            timeout=config.timeout,
        )
    )
    render_report(report)
    return exit_code_for(report)


def _add_and_install(ctx: typer.Context, declaration: PluginDeclaration) -> None:
    config_path: Path = ctx.obj["config_path"]
    try:
        config = load_config(config_path).with_plugin(declaration)
        resolve_all(config.plugins)
        save_config(config, config_path)
        _console.print(f"Added [bold]{declaration}[/] to {config_path}", highlight=False)
        code = _install(config, ctx.obj["jobs"])
    except StrandError as e:
        raise _fail(e) from e
    raise typer.Exit(code)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to the config file."),
    config_location: bool = typer.Option(False, "--config-location", help="Print the config file location and exit."),
    jobs: int | None = typer.Option(None, "--jobs", "-j", min=1, help="Maximum number of concurrent installs."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Reinstall every plugin listed in the config file."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path = config or get_config_path()

    # Loading the config is not needed to show where it lives.
    if config_location:
        typer.echo(str(config_path))
        raise typer.Exit(EXIT_OK)

    ctx.obj = {"config_path": config_path, "jobs": jobs}
    if ctx.invoked_subcommand is not None:
        return

    try:
        code = _install(load_config(config_path), jobs)
    except StrandError as e:
        raise _fail(e) from e
    raise typer.Exit(code)


@app.command("install-git")
def install_git(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="The Git repo owner's username."),
    repo: str = typer.Option(..., "--repo", "-r", help="The Git repo's name."),
    provider: str = typer.Option("github", "--provider", "-p", help="Either 'github' or 'bitbucket'."),
    git_ref: str | None = typer.Option(None, "--git-ref", "-g", help="A branch name, tag name, or commit hash."),
) -> None:
    """Add a Git plugin to the config file, then reinstall everything."""
    try:
        declaration = GitPlugin(provider=GitProvider.parse(provider), owner=user, repo=repo, ref=git_ref)
    except StrandError as e:
        raise _fail(e) from e
    _add_and_install(ctx, declaration)


@app.command("install-tar")
def install_tar(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Direct link to a tar.gz archive."),
) -> None:
    """Add a tar.gz plugin to the config file, then reinstall everything."""
    _add_and_install(ctx, ArchivePlugin(url=url))


@app.command("add")
def add(
    ctx: typer.Context,
    spec: str = typer.Argument(..., help="Plugin as [provider@]owner/repo[:ref] or an archive URL."),
) -> None:
    """Add a plugin in shorthand form to the config file, then reinstall everything."""
    try:
        declaration = parse_declaration(spec)
    except StrandError as e:
        raise _fail(e) from e
    _add_and_install(ctx, declaration)
