"""VersionKV CLI: operator console for inspecting and writing versioned stores."""

from __future__ import annotations

import logging
from typing import Optional

import typer
from click.core import ParameterSource

from versionkv.cli import info, keys, load_cmd, versions

app = typer.Typer(
    name="vkv",
    help="VersionKV CLI: operator console for versioned key-value stores.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str | None = None
    storage_uri: str | None = None
    config: str | None = None
    json_output: bool = False
    log_level: str | None = None


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("versionkv")
        except Exception:
            v = "unknown"
        print(f"vkv {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="VERSIONKV_DB",
        help="SQLite database file path (default: vkv.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="VERSIONKV_STORAGE_URI",
        help="Backend storage URI (e.g. sqlite:///vkv.db)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="VERSIONKV_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (default: config log_level)"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all vkv commands."""
    from versionkv.storage import parse_storage_target

    logging.basicConfig(
        level=getattr(logging, (log_level or "WARNING").upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db_source = ctx.get_parameter_source("db")
    uri_source = ctx.get_parameter_source("storage_uri")

    resolved_uri = storage_uri
    # Explicit --db overrides VERSIONKV_STORAGE_URI when --storage-uri is not explicitly set.
    if db_source == ParameterSource.COMMANDLINE and uri_source == ParameterSource.ENVIRONMENT:
        resolved_uri = None

    if resolved_uri:
        db_for_validation = db if db_source == ParameterSource.COMMANDLINE else None
        try:
            parse_storage_target(db_path=db_for_validation, storage_uri=resolved_uri)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.db = db
    state.storage_uri = resolved_uri
    state.config = config
    state.json_output = json_output
    state.log_level = log_level
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


# Key commands
app.command(name="register")(keys.register_cmd)
app.command(name="set")(keys.set_cmd)
app.command(name="publish")(keys.publish_cmd)
app.command(name="get")(keys.get_cmd)
app.command(name="has")(keys.has_cmd)
app.command(name="unregister")(keys.unregister_cmd)
app.command(name="describe")(keys.describe_cmd)

# Version and job inspection
app.command(name="versions")(versions.versions_cmd)
app.command(name="history")(versions.history_cmd)
app.command(name="job")(versions.job_cmd)

app.command(name="info")(info.info_cmd)
app.command(name="load")(load_cmd.load_cmd)


def main() -> None:
    """Entry point for the vkv CLI."""
    app()
