"""vkv load: bulk-load a JSON-LD @graph document."""

from __future__ import annotations

from typing import Optional

import httpx
import typer

from versionkv.cli import _exitcodes as ec
from versionkv.cli._output import print_error, print_object
from versionkv.cli._storage import open_store
from versionkv.loader import SCHEMA_ORG_URL, fetch_jsonld, load_jsonld_graph


def load_cmd(
    source: str = typer.Argument(
        SCHEMA_ORG_URL, help="JSON-LD file path or http(s) URL (default: schema.org)"
    ),
    job_id: Optional[str] = typer.Option(None, "--job-id", help="Job id for the whole load"),
) -> None:
    """Store every @graph entry of a JSON-LD document under its @id."""
    from versionkv.cli import state

    try:
        document = fetch_jsonld(source)
    except (OSError, ValueError, httpx.HTTPError) as e:
        print_error(f"Cannot read JSON-LD document: {e}")
        raise typer.Exit(ec.INVALID_INPUT)

    store = open_store()
    try:
        report = load_jsonld_graph(store, document, job_id=job_id)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.INVALID_INPUT)
    finally:
        store.close()

    data = {"loaded": report.loaded, "skipped": report.skipped, "job_id": report.job_id}
    if state.json_output:
        data["errors"] = report.errors
        print_object(data, json_mode=True)
    else:
        print(f"Loaded {report.loaded} items ({report.skipped} skipped) as job {report.job_id}")
        for err in report.errors[:10]:
            print_error(err)
    if report.errors:
        raise typer.Exit(ec.EXECUTION_FAILURE)
