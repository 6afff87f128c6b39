"""Bulk loading of JSON-LD ``@graph`` documents into a store."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from versionkv.errors import VersionKVError
from versionkv.store import VersionedStore

logger = logging.getLogger(__name__)

SCHEMA_ORG_URL = "https://schema.org/version/latest/schemaorg-current-https.jsonld"

_PROGRESS_EVERY = 100


@dataclass
class LoadReport:
    """Outcome of one graph load."""

    loaded: int
    skipped: int
    job_id: str
    errors: list[str]


def fetch_jsonld(source: str, *, timeout_s: float = 30.0) -> dict[str, Any]:
    """Read a JSON-LD document from a local path or an http(s) URL."""
    if urlparse(source).scheme in ("http", "https"):
        response = httpx.get(source, timeout=timeout_s, follow_redirects=True)
        response.raise_for_status()
        doc = response.json()
    else:
        with open(source, encoding="utf-8") as fh:
            doc = json.load(fh)
    if not isinstance(doc, dict):
        raise ValueError(f"JSON-LD document at '{source}' is not an object")
    return doc


def load_jsonld_graph(
    store: VersionedStore,
    document: dict[str, Any],
    *,
    job_id: str | None = None,
) -> LoadReport:
    """Write every ``@graph`` entry under its ``@id``, all in one job.

    Entries that are not objects or lack a string ``@id`` are skipped, as are
    entries the store rejects; the load carries on past them.
    """
    graph = document.get("@graph")
    if not isinstance(graph, list):
        raise ValueError("JSON-LD document does not contain a @graph array")

    job_id = job_id or store.new_job_id()
    loaded = 0
    skipped = 0
    errors: list[str] = []
    started = time.monotonic()
    logger.info("loading %d graph items job=%s", len(graph), job_id)

    for item in graph:
        if not isinstance(item, dict):
            logger.debug("skipping non-object graph item")
            skipped += 1
            continue
        key = item.get("@id")
        if not isinstance(key, str) or not key:
            logger.debug("skipping graph item with non-string @id")
            skipped += 1
            continue
        try:
            store.set(key, item, job_id=job_id)
        except VersionKVError as e:
            logger.warning("error storing graph item %s: %s", key, e)
            errors.append(f"{key}: {e}")
            skipped += 1
            continue
        loaded += 1
        if loaded % _PROGRESS_EVERY == 0:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info("processed %d items in %d ms", loaded, elapsed_ms)

    logger.info("loaded %d graph items (%d skipped) job=%s", loaded, skipped, job_id)
    return LoadReport(loaded=loaded, skipped=skipped, job_id=job_id, errors=errors)
