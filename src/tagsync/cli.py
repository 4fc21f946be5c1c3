# src/tagsync/cli.py
"""Command-line interface for tagsync."""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from . import __version__, config, errors
from .errors import ExitCode, TagSyncError
from .util import paths as app_paths
from .util.log import setup_logging

app = typer.Typer(
    name="tagsync",
    help="tagsync: mirror upstream tags as sync branches in a fork.",
    add_completion=False,
)

console = Console(stderr=True)

# Commands that do not need a valid run configuration.
_NO_CONFIG_COMMANDS = {"paths"}


def version_callback(value: bool):
    """Print the version and exit."""
    if value:
        print(f"tagsync version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to a tagsync.yaml file. Environment variables override its values. [example: {app_paths.get_default_config_path()}]",
        resolve_path=True,
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """
    tagsync CLI.
    """
    setup_logging()
    if ctx.invoked_subcommand in _NO_CONFIG_COMMANDS:
        return
    try:
        settings = config.load_config(config_path)
        setup_logging(settings.logging.level, settings.logging.json_format)
        ctx.obj = settings
    except TagSyncError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(code=e.exit_code)


def _run(ctx: typer.Context, stage_name: str, tags_file: Optional[Path] = None) -> None:
    from .github import GitHubClient
    from .stages import Stage, run_stage

    settings: config.Settings = ctx.obj
    try:
        stage = Stage.parse(stage_name)
        with GitHubClient.from_settings(settings) as client:
            run_stage(stage, settings, client, tags_file=tags_file)
    except errors.PartialSyncError as e:
        console.print("[bold yellow]Some tags could not be synced:[/bold yellow]")
        for tag, error in e.failed:
            console.print(f"  {tag}: {error}", highlight=False)
        raise typer.Exit(code=e.exit_code)
    except TagSyncError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(code=e.exit_code)


@app.command()
def detect(ctx: typer.Context):
    """List base-repo tags without a sync branch and write them to the workspace."""
    _run(ctx, "detect")


@app.command()
def sync(
    ctx: typer.Context,
    tags_file: Optional[Path] = typer.Option(
        None, "--tags-file", help="Tag list written by 'detect'. Defaults to new_tags.txt in the workspace."
    ),
):
    """Create, patch and push a sync branch for each detected tag."""
    _run(ctx, "sync", tags_file=tags_file)


@app.command()
def run(ctx: typer.Context):
    """Run detect followed by sync."""
    _run(ctx, "run")


@app.command()
def stage(ctx: typer.Context, name: str = typer.Argument(..., help="Stage to run: detect, sync or run.")):
    """Run a stage selected by name, as the Action entrypoint does."""
    _run(ctx, name)


@app.command()
def paths(ctx: typer.Context):
    """Print resolved application paths as JSON."""
    import orjson

    data = {
        "config_home": str(app_paths.get_config_home()),
        "cache_home": str(app_paths.get_cache_home()),
        "default_config_path": str(app_paths.get_default_config_path()),
        "default_workspace": str(app_paths.get_cache_home()),
    }
    print(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def run_cli():
    """Main entry point for the CLI application."""
    try:
        app()
    except typer.Exit:
        raise
    except TagSyncError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        sys.exit(e.exit_code)
    except Exception as e:
        console.print(f"[bold red]An unexpected error occurred:[/bold red] {e}")
        sys.exit(ExitCode.UNKNOWN_ERROR)


if __name__ == "__main__":
    run_cli()
