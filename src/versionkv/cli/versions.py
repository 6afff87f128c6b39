"""vkv versions/history/job: inspect version ids and job links."""

from __future__ import annotations

from typing import Optional

import typer

from versionkv.cli import _exitcodes as ec
from versionkv.cli._output import print_error, print_table
from versionkv.cli._storage import open_store
from versionkv.errors import VersionKVError
from versionkv.ids import id_timestamp_ms


def _rows(version_ids: list[str]) -> list[list[object]]:
    return [[v, id_timestamp_ms(v)] for v in version_ids]


def _emit(version_ids: list[str], empty_msg: str) -> None:
    from versionkv.cli import state

    if not version_ids and not state.json_output:
        print(empty_msg)
        return
    print_table(["version_id", "timestamp_ms"], _rows(version_ids), json_mode=state.json_output)


def versions_cmd(
    obj_type: str = typer.Argument(..., help="Object type (schema key) to list"),
    job: Optional[str] = typer.Option(None, "--job", help="Job id glob pattern, e.g. '01J*'"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum ids to show"),
) -> None:
    """List version ids stored for an object type."""
    store = open_store()
    try:
        ids: list[str] = []
        for version_id in store.list_versions_by_type(obj_type, job):
            if limit is not None and len(ids) >= limit:
                break
            ids.append(version_id)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    _emit(ids, f"No versions for type '{obj_type}'.")


def history_cmd(key: str = typer.Argument(..., help="Key whose versions to list")) -> None:
    """List every version written under a key, oldest first."""
    store = open_store()
    try:
        ids = store.history(key)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    _emit(ids, f"No versions for key '{key}'.")


def job_cmd(job_id: str = typer.Argument(..., help="Job id")) -> None:
    """List the versions linked to a job."""
    store = open_store()
    try:
        ids = store.job_versions(job_id)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        store.close()
    if not ids:
        print_error(f"Job not found: {job_id}")
        raise typer.Exit(ec.NOT_FOUND)
    _emit(ids, "")
