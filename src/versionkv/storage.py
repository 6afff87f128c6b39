"""Persistence gateway contract and its SQLite implementation."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ContextManager, Protocol, TypeVar, runtime_checkable
from urllib.parse import urlparse

from versionkv.config import StoreConfig
from versionkv.errors import StorageBackendError, StorageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite VM instructions between deadline checks
_PROGRESS_STEPS = 1000


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from a plain path or a sqlite:// URI."""

    backend: str
    uri: str
    db_path: str


def parse_storage_target(
    db_path: str | None = None,
    storage_uri: str | None = None,
) -> StorageTarget:
    """Resolve backend target from db_path and URI forms."""
    if storage_uri is None:
        path = db_path or "vkv.db"
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{path}", db_path=path)

    parsed = urlparse(storage_uri)
    if parsed.scheme != "sqlite":
        raise StorageBackendError(
            "parse_storage_uri",
            f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
        )
    sqlite_path = parsed.path
    if parsed.netloc:
        sqlite_path = f"{parsed.netloc}{sqlite_path}"
    elif sqlite_path.startswith("//"):
        # sqlite:////abs/path -> /abs/path
        sqlite_path = sqlite_path[1:]
    elif sqlite_path.startswith("/"):
        # sqlite:///rel/path -> rel/path
        sqlite_path = sqlite_path[1:]
    if not sqlite_path:
        raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
    if db_path is not None and os.path.abspath(db_path) != os.path.abspath(sqlite_path):
        raise StorageBackendError(
            "parse_storage_uri",
            f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
        )
    return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)


@runtime_checkable
class GatewayProtocol(Protocol):
    """Backend-agnostic persistence contract used by the registry and store.

    Payloads cross this boundary as serialized JSON text. Write methods return
    the number of rows affected. ``transaction`` commits when its block exits
    normally and rolls back (re-raising) otherwise.
    """

    def close(self) -> None: ...

    def transaction(self, timeout: float | None = None) -> ContextManager[None]: ...

    def with_transaction(self, fn: Callable[[], T], *, timeout: float | None = None) -> T: ...

    def insert_object_version(
        self,
        version_id: str,
        job_id: str,
        key: str,
        payload: str,
        *,
        obj_type: str | None = None,
        meta_payload: str | None = None,
        timeout: float | None = None,
    ) -> int: ...

    def insert_metadata(
        self,
        key: str,
        payload: str,
        *,
        schema_key: str | None = None,
        timeout: float | None = None,
    ) -> int: ...

    def insert_job_link(
        self, job_id: str, version_id: str, payload: str, *, timeout: float | None = None
    ) -> int: ...

    def get_metadata(
        self, key: str, schema_key_hint: str | None = None, *, timeout: float | None = None
    ) -> str | None: ...

    def get_object_version(self, version_id: str, *, timeout: float | None = None) -> str | None: ...

    def has_object_version(self, version_id: str, *, timeout: float | None = None) -> bool: ...

    def get_latest_version_id(self, key: str, *, timeout: float | None = None) -> str | None: ...

    def list_version_ids_by_type(
        self,
        obj_type: str,
        job_id_pattern: str = "*",
        *,
        batch_size: int = 500,
        timeout: float | None = None,
    ) -> Iterator[str]: ...

    def list_version_ids_by_key(self, key: str, *, timeout: float | None = None) -> list[str]: ...

    def list_job_version_ids(self, job_id: str, *, timeout: float | None = None) -> list[str]: ...

    def ensure_store_meta(self, name: str, value: str) -> str: ...

    def storage_info(self) -> dict[str, Any]: ...

    def health(self) -> dict[str, str]: ...


class SqliteGateway:
    """SQLite-backed gateway for metadata, object versions and job links.

    One connection is shared by all threads using the gateway; transactions
    and single statements are serialized on an internal lock and every call
    runs under a deadline enforced by a progress handler.
    """

    def __init__(
        self,
        db_path: str,
        *,
        timeout_s: float = 5.0,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        self.db_path = db_path
        self.timeout_s = timeout_s
        self.busy_timeout_ms = busy_timeout_ms
        self._conn = sqlite3.connect(
            db_path,
            timeout=busy_timeout_ms / 1000.0,
            check_same_thread=False,
            isolation_level=None,
        )
        if wal_mode and db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._deadline: float | None = None
        self._deadline_timeout: float = timeout_s
        self._busy_capped = False
        self._closed = False
        self._conn.set_progress_handler(self._check_deadline, _PROGRESS_STEPS)
        self._create_tables()

    @classmethod
    def from_config(cls, config: StoreConfig, db_path: str | None = None) -> SqliteGateway:
        return cls(
            db_path or config.db_path,
            timeout_s=config.timeout_s,
            busy_timeout_ms=config.busy_timeout_ms,
            wal_mode=config.wal_mode,
        )

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS store_meta (
                name  TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS meta (
                meta_key   TEXT PRIMARY KEY,
                schema_key TEXT NOT NULL,
                meta_data  TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_meta_schema_key ON meta(schema_key);

            CREATE TABLE IF NOT EXISTS data (
                data_id    TEXT PRIMARY KEY,
                job_id     TEXT NOT NULL,
                meta_key   TEXT NOT NULL,
                obj_type   TEXT NOT NULL,
                obj_data   TEXT NOT NULL,
                meta_data  TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_data_job_id ON data(job_id);
            CREATE INDEX IF NOT EXISTS idx_data_obj_type ON data(obj_type, data_id);
            CREATE INDEX IF NOT EXISTS idx_data_meta_key ON data(meta_key, data_id DESC);

            CREATE TABLE IF NOT EXISTS job (
                job_id   TEXT NOT NULL,
                data_id  TEXT NOT NULL REFERENCES data(data_id),
                job_data TEXT NOT NULL,
                PRIMARY KEY (job_id, data_id)
            );
        """)

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True
                logger.debug("closed sqlite gateway db_path=%s", self.db_path)

    # --- Deadlines ---

    def _check_deadline(self) -> int:
        if self._deadline is not None and time.monotonic() > self._deadline:
            return 1
        return 0

    def _cap_busy_wait(self) -> None:
        """Bound SQLite's lock wait by whatever is left of the deadline."""
        assert self._deadline is not None
        remaining_ms = max(0, int((self._deadline - time.monotonic()) * 1000))
        self._busy_capped = remaining_ms < self.busy_timeout_ms
        wait_ms = min(self.busy_timeout_ms, remaining_ms)
        self._conn.execute(f"PRAGMA busy_timeout = {wait_ms}")

    def _is_deadline_error(self, err: sqlite3.OperationalError) -> bool:
        message = str(err)
        if "interrupted" in message:
            return True
        # A busy wait cut short by the deadline ends in "database is locked"
        return self._busy_capped and ("locked" in message or "busy" in message)

    @contextmanager
    def _guard(self, operation: str, timeout: float | None) -> Iterator[None]:
        """Serialize access and apply a deadline unless one is already active.

        The deadline also bounds SQLite's wait on write locks held by other
        connections.
        """
        budget = self.timeout_s if timeout is None else timeout
        started = time.monotonic()
        if not self._lock.acquire(timeout=max(budget, 0)):
            raise StorageTimeoutError(operation, budget)
        outer = self._deadline is not None
        try:
            if not outer:
                self._deadline = started + budget
                self._deadline_timeout = budget
            try:
                if not outer:
                    self._cap_busy_wait()
                yield
            except sqlite3.OperationalError as e:
                if self._is_deadline_error(e):
                    raise StorageTimeoutError(operation, self._deadline_timeout) from e
                raise StorageBackendError(operation, str(e)) from e
            except sqlite3.Error as e:
                raise StorageBackendError(operation, str(e)) from e
        finally:
            if not outer:
                self._deadline = None
                self._busy_capped = False
            self._lock.release()

    # --- Transactions ---

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[None]:
        """Run the enclosed block atomically.

        Nested use joins the outermost transaction.
        """
        with self._guard("transaction", timeout):
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return
            self._conn.execute("BEGIN IMMEDIATE")
            self._tx_depth = 1
            try:
                yield
                self._conn.commit()
            except BaseException:
                self._rollback()
                raise
            finally:
                self._tx_depth = 0

    def _rollback(self) -> None:
        # The deadline may already have fired; rollback must not be interrupted.
        saved = self._deadline
        self._deadline = None
        try:
            if self._conn.in_transaction:
                self._conn.rollback()
        finally:
            self._deadline = saved

    def with_transaction(self, fn: Callable[[], T], *, timeout: float | None = None) -> T:
        with self.transaction(timeout=timeout):
            return fn()

    # --- Writes ---

    def insert_object_version(
        self,
        version_id: str,
        job_id: str,
        key: str,
        payload: str,
        *,
        obj_type: str | None = None,
        meta_payload: str | None = None,
        timeout: float | None = None,
    ) -> int:
        now = datetime.now(timezone.utc).isoformat()
        with self._guard("insert_object_version", timeout):
            cursor = self._conn.execute(
                "INSERT INTO data "
                "(data_id, job_id, meta_key, obj_type, obj_data, meta_data, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (version_id, job_id, key, obj_type or key, payload, meta_payload, now),
            )
            return cursor.rowcount

    def insert_metadata(
        self,
        key: str,
        payload: str,
        *,
        schema_key: str | None = None,
        timeout: float | None = None,
    ) -> int:
        with self._guard("insert_metadata", timeout):
            cursor = self._conn.execute(
                "INSERT INTO meta (meta_key, schema_key, meta_data) VALUES (?, ?, ?) "
                "ON CONFLICT(meta_key) DO UPDATE SET "
                "schema_key = excluded.schema_key, meta_data = excluded.meta_data",
                (key, schema_key or key, payload),
            )
            return cursor.rowcount

    def insert_job_link(
        self, job_id: str, version_id: str, payload: str, *, timeout: float | None = None
    ) -> int:
        with self._guard("insert_job_link", timeout):
            cursor = self._conn.execute(
                "INSERT INTO job (job_id, data_id, job_data) VALUES (?, ?, ?)",
                (job_id, version_id, payload),
            )
            return cursor.rowcount

    def ensure_store_meta(self, name: str, value: str) -> str:
        """Store value under name unless already set; return the stored value."""
        with self._guard("ensure_store_meta", None):
            self._conn.execute(
                "INSERT OR IGNORE INTO store_meta (name, value) VALUES (?, ?)",
                (name, value),
            )
            row = self._conn.execute(
                "SELECT value FROM store_meta WHERE name = ?", (name,)
            ).fetchone()
            return str(row[0])

    # --- Reads ---

    def get_metadata(
        self, key: str, schema_key_hint: str | None = None, *, timeout: float | None = None
    ) -> str | None:
        with self._guard("get_metadata", timeout):
            row = self._conn.execute(
                "SELECT meta_data FROM meta WHERE meta_key = ?", (key,)
            ).fetchone()
            if row is None:
                row = self._conn.execute(
                    "SELECT meta_data FROM meta WHERE schema_key = ? ORDER BY meta_key LIMIT 1",
                    (schema_key_hint or key,),
                ).fetchone()
        return None if row is None else str(row[0])

    def get_object_version(self, version_id: str, *, timeout: float | None = None) -> str | None:
        with self._guard("get_object_version", timeout):
            row = self._conn.execute(
                "SELECT obj_data FROM data WHERE data_id = ?", (version_id,)
            ).fetchone()
        return None if row is None else row[0]

    def has_object_version(self, version_id: str, *, timeout: float | None = None) -> bool:
        with self._guard("has_object_version", timeout):
            row = self._conn.execute(
                "SELECT 1 FROM data WHERE data_id = ?", (version_id,)
            ).fetchone()
        return row is not None

    def get_latest_version_id(self, key: str, *, timeout: float | None = None) -> str | None:
        with self._guard("get_latest_version_id", timeout):
            row = self._conn.execute(
                "SELECT data_id FROM data WHERE meta_key = ? ORDER BY data_id DESC LIMIT 1",
                (key,),
            ).fetchone()
        return None if row is None else str(row[0])

    def list_version_ids_by_type(
        self,
        obj_type: str,
        job_id_pattern: str = "*",
        *,
        batch_size: int = 500,
        timeout: float | None = None,
    ) -> Iterator[str]:
        """Yield version ids of obj_type in ascending order, in batches.

        ``job_id_pattern`` uses SQLite GLOB syntax (``*`` and ``?`` wildcards).
        """
        after = ""
        while True:
            with self._guard("list_version_ids_by_type", timeout):
                rows = self._conn.execute(
                    "SELECT data_id FROM data "
                    "WHERE obj_type = ? AND job_id GLOB ? AND data_id > ? "
                    "ORDER BY data_id LIMIT ?",
                    (obj_type, job_id_pattern or "*", after, batch_size),
                ).fetchall()
            for r in rows:
                yield str(r[0])
            if len(rows) < batch_size:
                break
            after = str(rows[-1][0])

    def list_version_ids_by_key(self, key: str, *, timeout: float | None = None) -> list[str]:
        with self._guard("list_version_ids_by_key", timeout):
            rows = self._conn.execute(
                "SELECT data_id FROM data WHERE meta_key = ? ORDER BY data_id", (key,)
            ).fetchall()
        return [str(r[0]) for r in rows]

    def list_job_version_ids(self, job_id: str, *, timeout: float | None = None) -> list[str]:
        with self._guard("list_job_version_ids", timeout):
            rows = self._conn.execute(
                "SELECT data_id FROM job WHERE job_id = ? ORDER BY data_id", (job_id,)
            ).fetchall()
        return [str(r[0]) for r in rows]

    # --- Operator info ---

    def _counts(self) -> dict[str, int]:
        with self._guard("storage_info", None):
            return {
                table: int(self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
                for table in ("meta", "data", "job")
            }

    def storage_info(self) -> dict[str, Any]:
        """Return backend info for operator commands."""
        counts = self._counts()
        return {
            "backend": "sqlite",
            "db_path": self.db_path,
            "keys": counts["meta"],
            "versions": counts["data"],
            "job_links": counts["job"],
        }

    def health(self) -> dict[str, str]:
        stats = {"backend": "sqlite", "db_path": self.db_path}
        try:
            with self._guard("health", 1.0):
                self._conn.execute("SELECT 1").fetchone()
        except StorageBackendError as e:
            logger.warning("sqlite gateway health check failed db_path=%s: %s", self.db_path, e)
            stats["status"] = "down"
            stats["error"] = f"db down: {e}"
            return stats
        stats["status"] = "up"
        stats["message"] = "It's healthy"
        return stats


def open_gateway(
    db_path: str | None = None,
    *,
    storage_uri: str | None = None,
    config: StoreConfig | None = None,
) -> GatewayProtocol:
    """Open a gateway from a plain path or URI-style storage binding."""
    cfg = config or StoreConfig()
    if db_path is None and storage_uri is None:
        db_path = cfg.db_path
    target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    if target.backend == "sqlite":
        return SqliteGateway.from_config(cfg, target.db_path)
    raise StorageBackendError("open_gateway", f"Unsupported backend '{target.backend}'")


__all__ = [
    "GatewayProtocol",
    "SqliteGateway",
    "StorageTarget",
    "parse_storage_target",
    "open_gateway",
]
