"""CLI helpers for config-aware store construction."""

from __future__ import annotations

import json
import logging
from typing import Any

import typer

from versionkv.cli import _exitcodes as ec
from versionkv.cli._output import print_error
from versionkv.config import StoreConfig, load_config
from versionkv.store import VersionedStore


def resolve_config() -> StoreConfig:
    """Load config from the --config file and VERSIONKV_* environment."""
    from versionkv.cli import state

    try:
        cfg = load_config(state.config)
    except (OSError, ValueError) as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(ec.USAGE_ERROR)
    if state.db:
        cfg.db_path = state.db
    if state.log_level is None:
        logging.getLogger().setLevel(getattr(logging, cfg.log_level.upper(), logging.WARNING))
    return cfg


def open_store() -> VersionedStore:
    """Open a store using the global CLI storage selection."""
    from versionkv.cli import state

    cfg = resolve_config()
    try:
        return VersionedStore.open(
            None if state.storage_uri else cfg.db_path,
            storage_uri=state.storage_uri,
            config=cfg,
        )
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)


def parse_json_object(raw: str) -> Any:
    """Parse a JSON command-line argument; '@path' reads the JSON from a file."""
    try:
        if raw.startswith("@"):
            with open(raw[1:], encoding="utf-8") as fh:
                return json.load(fh)
        return json.loads(raw)
    except (OSError, ValueError) as e:
        print_error(f"Invalid JSON input: {e}")
        raise typer.Exit(ec.INVALID_INPUT)
