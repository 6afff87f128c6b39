"""vkv register/set/publish/get/has/unregister/describe: key operations."""

from __future__ import annotations

from typing import Optional

import typer

from versionkv.cli import _exitcodes as ec
from versionkv.cli._output import print_document, print_error, print_object
from versionkv.cli._storage import open_store, parse_json_object
from versionkv.errors import (
    EmptyKeyError,
    InvalidInitError,
    InvalidPayloadError,
    MissingKeyError,
    NoVersionError,
    VersionKVError,
)
from versionkv.records import MetadataRecord

_INPUT_ERRORS = (EmptyKeyError, InvalidInitError, InvalidPayloadError, MissingKeyError)


def _exit_code(err: VersionKVError) -> int:
    if isinstance(err, _INPUT_ERRORS):
        return ec.INVALID_INPUT
    if isinstance(err, NoVersionError):
        return ec.NOT_FOUND
    return ec.EXECUTION_FAILURE


def _print_record(record: MetadataRecord) -> None:
    from versionkv.cli import state

    print_object(record.model_dump(by_alias=True), json_mode=state.json_output)


def register_cmd(
    key: str = typer.Argument(..., help="Key to register"),
    obj: Optional[str] = typer.Option(
        None, "--object", help="Initial object as JSON (or @file.json)"
    ),
    check: bool = typer.Option(False, "--check", help="Validate objects on write"),
    schema_key: Optional[str] = typer.Option(None, "--schema-key", help="Grouping key"),
) -> None:
    """Register a key, optionally with an initial object."""
    initial = parse_json_object(obj) if obj is not None else None
    store = open_store()
    try:
        record = store.register(key, initial, check=check, schema_key=schema_key)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(_exit_code(e))
    finally:
        store.close()
    _print_record(record)


def set_cmd(
    key: str = typer.Argument(..., help="Key to write"),
    obj: str = typer.Argument(..., help="Object as JSON (or @file.json)"),
    job_id: Optional[str] = typer.Option(None, "--job-id", help="Job to group the write under"),
    schema_key: Optional[str] = typer.Option(None, "--schema-key", help="Grouping key"),
    check: bool = typer.Option(False, "--check", help="Validate the object before writing"),
) -> None:
    """Write a new version of a key."""
    payload = parse_json_object(obj)
    store = open_store()
    try:
        record = store.set(key, payload, job_id=job_id, schema_key=schema_key, check=check)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(_exit_code(e))
    finally:
        store.close()
    _print_record(record)


def publish_cmd(
    key: str = typer.Argument(..., help="Key to append to"),
    obj: str = typer.Argument(..., help="Object as JSON (or @file.json)"),
    job_id: Optional[str] = typer.Option(None, "--job-id", help="Job to group the write under"),
) -> None:
    """Append an object under a key."""
    payload = parse_json_object(obj)
    store = open_store()
    try:
        record = store.publish(key, payload, job_id=job_id)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(_exit_code(e))
    finally:
        store.close()
    _print_record(record)


def get_cmd(
    key: Optional[str] = typer.Argument(None, help="Key to read"),
    version_id: Optional[str] = typer.Option(None, "--version-id", help="Explicit version"),
    fmt: str = typer.Option("json", "--format", help="Output format: json or yaml"),
    meta: bool = typer.Option(False, "--meta", help="Show the metadata record instead"),
) -> None:
    """Read the latest (or an explicit) version of a key."""
    if fmt not in ("json", "yaml"):
        print_error("--format must be 'json' or 'yaml'")
        raise typer.Exit(ec.USAGE_ERROR)
    store = open_store()
    try:
        if meta:
            if not key:
                print_error("--meta requires a key")
                raise typer.Exit(ec.USAGE_ERROR)
            record = store.metadata(key, include_deleted=True)
            if record is None:
                print_error(f"Key not registered: {key}")
                raise typer.Exit(ec.NOT_FOUND)
            print_document(record.model_dump(by_alias=True), fmt=fmt)
            return
        data = store.get(key, version_id=version_id)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(_exit_code(e))
    finally:
        store.close()
    print_document(data, fmt=fmt)


def has_cmd(key: str = typer.Argument(..., help="Key to probe")) -> None:
    """Report whether a key is registered and live (exit 4 if not)."""
    from versionkv.cli import state

    store = open_store()
    try:
        found = store.has(key)
    finally:
        store.close()
    if state.json_output:
        print_object({"key": key, "registered": found}, json_mode=True)
    else:
        print("yes" if found else "no")
    if not found:
        raise typer.Exit(ec.NOT_FOUND)


def unregister_cmd(key: str = typer.Argument(..., help="Key to tombstone")) -> None:
    """Soft-delete a key; its versions stay readable by version id."""
    store = open_store()
    try:
        ok = store.unregister(key)
    finally:
        store.close()
    if not ok:
        print_error(f"Key not registered: {key}")
        raise typer.Exit(ec.NOT_FOUND)
    print(f"Unregistered: {key}")


def describe_cmd(
    key: Optional[str] = typer.Argument(None, help="Key to describe"),
    version_id: Optional[str] = typer.Option(None, "--version-id", help="Explicit version"),
    fmt: str = typer.Option("json", "--format", help="Output format: json or yaml"),
) -> None:
    """Show the structural shape of a stored object."""
    store = open_store()
    try:
        shape = store.describe(key, version_id=version_id)
    except VersionKVError as e:
        print_error(str(e))
        raise typer.Exit(_exit_code(e))
    finally:
        store.close()
    print_document(shape.to_dict(), fmt=fmt)
