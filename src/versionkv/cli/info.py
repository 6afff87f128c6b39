"""vkv info: show store status and counts."""

from __future__ import annotations

import os
from typing import Any

import typer

from versionkv.cli import _exitcodes as ec
from versionkv.cli._output import print_error, print_object
from versionkv.cli._storage import open_store, resolve_config
from versionkv.errors import StorageBackendError
from versionkv.storage import parse_storage_target


def info_cmd() -> None:
    """Show store status, health and row counts."""
    from versionkv.cli import state

    json_mode = state.json_output
    cfg = resolve_config()
    try:
        target = parse_storage_target(
            db_path=None if state.storage_uri else cfg.db_path, storage_uri=state.storage_uri
        )
    except StorageBackendError as e:
        print_error(f"Invalid storage URI: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    if target.db_path != ":memory:" and not os.path.exists(target.db_path):
        print_error(f"Database not found: {target.db_path}")
        raise typer.Exit(ec.DATABASE_ERROR)

    store = open_store()
    try:
        data: dict[str, Any] = {**store.storage_info(), **store.health()}
        data["alive_token"] = store.registry.alive_token
        if os.path.exists(target.db_path):
            data["file_size_bytes"] = os.path.getsize(target.db_path)
    finally:
        store.close()

    if json_mode:
        print_object(data, json_mode=True)
        return
    print(f"Backend: {data['backend']}")
    print(f"Database: {data['db_path']}")
    print(f"Status: {data['status']}")
    if "file_size_bytes" in data:
        print(f"File size: {int(data['file_size_bytes']):,} bytes")
    print(f"Keys: {data['keys']}")
    print(f"Versions: {data['versions']}")
    print(f"Job links: {data['job_links']}")
