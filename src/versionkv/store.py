"""Versioned key-value store over a transactional persistence gateway.

Every write creates an immutable object version under a fresh ULID and
repoints the key's metadata record at it; both happen in one gateway
transaction. Reads resolve the latest version through the metadata record
unless an explicit version id is given.

Concurrent ``set`` calls on the same key race on read-metadata/write-metadata:
the last metadata write to commit wins. Versions written by the losing calls
stay durable and readable by version id but are no longer the key's latest.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from versionkv.config import StoreConfig
from versionkv.errors import (
    AlreadyRegisteredError,
    DecodeFailedError,
    EmptyKeyError,
    FetchFailedError,
    GatewayTimeoutError,
    InitialPopulationFailedError,
    InvalidInitError,
    InvalidPayloadError,
    MetadataWriteFailedError,
    MissingKeyError,
    NoVersionError,
    PayloadWriteFailedError,
    RegistrationWriteFailedError,
    StorageBackendError,
    StorageTimeoutError,
    VersionKVError,
)
from versionkv.ids import IdGenerator
from versionkv.records import JobLink, MetadataRecord, Operation
from versionkv.registry import MetadataRegistry
from versionkv.shape import ShapeInfo, describe_shape
from versionkv.storage import GatewayProtocol, open_gateway
from versionkv.values import JSONObject, decode_object, encode_object, ensure_object

logger = logging.getLogger(__name__)

T = TypeVar("T")

Validator = Callable[[str, JSONObject], bool]


class VersionIdSequence:
    """Restartable view over the version ids of one object type.

    Each iteration queries the gateway afresh, in the gateway's index order.
    """

    def __init__(self, gateway: GatewayProtocol, obj_type: str, job_id_pattern: str) -> None:
        self._gateway = gateway
        self.obj_type = obj_type
        self.job_id_pattern = job_id_pattern

    def __iter__(self) -> Iterator[str]:
        ids = self._gateway.list_version_ids_by_type(self.obj_type, self.job_id_pattern)
        while True:
            version_id = _read("list_version_ids_by_type", lambda: next(ids, None))
            if version_id is None:
                return
            yield version_id

    def __repr__(self) -> str:
        return (
            f"VersionIdSequence(obj_type={self.obj_type!r}, "
            f"job_id_pattern={self.job_id_pattern!r})"
        )


class VersionedStore:
    """Public operation surface: register, set, get, unregister, publish, job index."""

    def __init__(
        self,
        gateway: GatewayProtocol,
        *,
        config: StoreConfig | None = None,
        ids: IdGenerator | None = None,
        validator: Validator | None = None,
        owns_gateway: bool = False,
    ) -> None:
        self._gateway = gateway
        self._config = config or StoreConfig()
        self._ids = ids or IdGenerator()
        self._validator = validator
        self._owns_gateway = owns_gateway
        self.registry = MetadataRegistry(gateway, self._ids)

    @classmethod
    def open(
        cls,
        db_path: str | None = None,
        *,
        storage_uri: str | None = None,
        config: StoreConfig | None = None,
        validator: Validator | None = None,
    ) -> VersionedStore:
        """Open a store that owns (and closes) its gateway."""
        cfg = config or StoreConfig()
        gateway = open_gateway(db_path, storage_uri=storage_uri, config=cfg)
        return cls(gateway, config=cfg, validator=validator, owns_gateway=True)

    @property
    def gateway(self) -> GatewayProtocol:
        return self._gateway

    def close(self) -> None:
        if self._owns_gateway:
            self._gateway.close()

    def __enter__(self) -> VersionedStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Registration ---

    def register(
        self,
        key: str,
        obj: Any = None,
        *,
        init: bool | None = None,
        check: bool = False,
        schema_key: str | None = None,
        timeout: float | None = None,
    ) -> MetadataRecord:
        """Register key, optionally writing an initial object.

        ``init`` defaults to whether ``obj`` was given. If the initial write
        fails the registration stays persisted with ``init=False`` and
        InitialPopulationFailedError is raised.
        """
        if not key:
            raise EmptyKeyError("The key cannot be empty", operation="register")
        if init is None:
            init = obj is not None
        if obj is not None:
            self._validate_payload(obj, "register", key)
        if init != (obj is not None):
            raise InvalidInitError(
                f"init={init} does not match whether an initial object was given",
                operation="register",
                key=key,
            )

        if self._config.strict_registration:
            existing = self.registry.fetch(key, timeout=timeout)
            if existing is not None and existing.key == key:
                raise AlreadyRegisteredError(
                    f"Key '{key}' is already registered", operation="register", key=key
                )

        record = self.registry.new_record(
            key, oper="reg", init=init, check=check, schema_key=schema_key or key
        )
        try:
            written = self.registry.write(record, timeout=timeout)
        except StorageTimeoutError as e:
            raise GatewayTimeoutError(
                f"Timed out registering '{key}'", operation="register", key=key, cause=e
            ) from e
        except StorageBackendError as e:
            raise RegistrationWriteFailedError(
                f"Cannot register object named '{key}'", operation="register", key=key, cause=e
            ) from e
        if written != 1:
            raise RegistrationWriteFailedError(
                f"Cannot register object named '{key}'", operation="register", key=key
            )

        if not init:
            logger.debug("registered key=%s", key)
            return record

        try:
            return self._write_version(
                key,
                obj,
                job_id=None,
                schema_key=record.schema_key,
                check=check,
                oper="reg&set",
                timeout=timeout,
            )
        except VersionKVError as e:
            record = record.model_copy(update={"init": False})
            self.registry.set_metadata(key, record)
            logger.warning("initial population failed key=%s: %s", key, e)
            raise InitialPopulationFailedError(
                f"Unable to store initial object for key '{key}'",
                operation="register",
                key=key,
                cause=e,
            ) from e

    def is_registered(self, key: str) -> bool:
        return self.registry.is_registered(key)

    def has(self, key: str) -> bool:
        """Alias for ``is_registered``."""
        return self.is_registered(key)

    def unregister(self, key: str) -> bool:
        return self.registry.unregister(key)

    def metadata(
        self, key: str, schema_key_hint: str | None = None, *, include_deleted: bool = False
    ) -> MetadataRecord | None:
        """Return the metadata record for key, or None if there is none."""
        return self.registry.fetch(key, schema_key_hint, include_deleted=include_deleted)

    # --- Writes ---

    def set(
        self,
        key: str,
        obj: Any,
        *,
        job_id: str | None = None,
        schema_key: str | None = None,
        check: bool = False,
        timeout: float | None = None,
    ) -> MetadataRecord:
        """Write obj as a new version of key and return the updated record.

        Unregistered (or tombstoned) keys are registered implicitly.
        """
        if not key:
            raise EmptyKeyError("The key cannot be empty", operation="set")
        return self._write_version(
            key, obj, job_id=job_id, schema_key=schema_key, check=check, oper="set", timeout=timeout
        )

    def publish(self, key: str, obj: Any, *, job_id: str | None = None) -> MetadataRecord:
        """Append obj under key with the key as its own schema key."""
        return self.set(key, obj, job_id=job_id, schema_key=key)

    def _validate_payload(self, obj: Any, operation: str, key: str) -> JSONObject:
        try:
            return ensure_object(obj)
        except ValueError as e:
            raise InvalidPayloadError(
                f"An object must be passed to the store: {e}", operation=operation, key=key, cause=e
            ) from e

    def _write_version(
        self,
        key: str,
        obj: Any,
        *,
        job_id: str | None,
        schema_key: str | None,
        check: bool,
        oper: Operation,
        timeout: float | None,
    ) -> MetadataRecord:
        payload = self._validate_payload(obj, "set", key)

        version_id = self._ids.next()
        job_id = job_id or version_id
        schema_key = schema_key or key

        existing = self.registry.fetch(key, schema_key, timeout=timeout)
        if existing is not None and existing.key != key:
            existing = None

        if existing is not None and (check or existing.check) and self._validator is not None:
            if not self._validator(schema_key, payload):
                raise InvalidPayloadError(
                    f"Object for '{key}' failed validation against '{schema_key}'",
                    operation="validate",
                    key=key,
                    version=version_id,
                )

        base = existing or self.registry.new_record(key, check=check)
        record = base.model_copy(
            update={
                "init": True,
                "oper": oper,
                "store_id": version_id,
                "job_id": job_id,
                "schema_key": schema_key,
                "check": base.check or check,
                "deleted": self.registry.alive_token,
            }
        )
        link = JobLink(job_id=job_id, store_id=version_id)

        # Begin and commit failures are reported as "transaction"
        step = "transaction"
        try:
            with self._gateway.transaction(timeout=timeout):
                step = "insert_object_version"
                _expect_one(
                    step,
                    self._gateway.insert_object_version(
                        version_id,
                        job_id,
                        key,
                        encode_object(payload),
                        obj_type=schema_key,
                        meta_payload=record.to_json(),
                    ),
                )
                step = "insert_job_link"
                _expect_one(step, self._gateway.insert_job_link(job_id, version_id, link.to_json()))
                step = "insert_metadata"
                _expect_one(step, self.registry.write(record))
                step = "transaction"
        except StorageTimeoutError as e:
            logger.warning("set timed out key=%s version=%s step=%s", key, version_id, step)
            raise GatewayTimeoutError(
                f"Timed out storing data for '{key}'",
                operation=step,
                key=key,
                version=version_id,
                cause=e,
            ) from e
        except StorageBackendError as e:
            error_cls = (
                MetadataWriteFailedError if step == "insert_metadata" else PayloadWriteFailedError
            )
            logger.warning("set failed key=%s version=%s step=%s: %s", key, version_id, step, e)
            raise error_cls(
                f"Failed to store data for '{key}'",
                operation=step,
                key=key,
                version=version_id,
                cause=e,
            ) from e

        logger.debug("set key=%s version=%s job=%s oper=%s", key, version_id, job_id, oper)
        return record

    # --- Reads ---

    def get(
        self,
        key: str | None = None,
        *,
        version_id: str | None = None,
        timeout: float | None = None,
    ) -> JSONObject:
        """Return the object stored under version_id, or key's latest version."""
        if not key and not version_id:
            raise MissingKeyError("No key provided for get()", operation="get")
        if not version_id:
            assert key is not None
            version_id = self.latest_version(key, timeout=timeout)

        resolved = version_id
        blob = _read(
            "get_object_version",
            lambda: self._gateway.get_object_version(resolved, timeout=timeout),
            key=key,
            version=version_id,
        )
        if blob is None:
            raise NoVersionError(
                f"No object stored under version '{version_id}'",
                operation="get_object_version",
                key=key,
                version=version_id,
            )
        try:
            return decode_object(blob)
        except ValueError as e:
            raise DecodeFailedError(
                f"Failed to decode data for '{key}' with version '{version_id}'",
                operation="get_object_version",
                key=key,
                version=version_id,
                cause=e,
            ) from e

    def latest_version(self, key: str, *, timeout: float | None = None) -> str:
        """Return the version id key's metadata points at."""
        record = self.registry.fetch(key, timeout=timeout)
        if record is None or not record.has_version():
            raise NoVersionError(
                f"No version recorded for '{key}'", operation="get_metadata", key=key
            )
        return record.store_id

    def has_version(self, version_id: str) -> bool:
        try:
            return self._gateway.has_object_version(version_id)
        except StorageBackendError as e:
            logger.warning("version lookup failed version=%s: %s", version_id, e)
            return False

    def history(self, key: str) -> list[str]:
        """All version ids written under key, oldest first."""
        return _read(
            "list_version_ids_by_key", lambda: self._gateway.list_version_ids_by_key(key), key=key
        )

    def list_versions_by_type(
        self, obj_type: str, job_id_pattern: str | None = None
    ) -> VersionIdSequence:
        return VersionIdSequence(self._gateway, obj_type, job_id_pattern or "*")

    def describe(self, key: str | None = None, *, version_id: str | None = None) -> ShapeInfo:
        """Describe the shape of key's latest object (or of version_id)."""
        return describe_shape(self.get(key, version_id=version_id))

    # --- Jobs ---

    def set_job_index(self, job_id: str, version_id: str) -> bool:
        """Link an existing version to job_id; False if the link was not written."""
        link = JobLink(job_id=job_id, store_id=version_id)
        try:
            return self._gateway.insert_job_link(job_id, version_id, link.to_json()) == 1
        except StorageBackendError as e:
            logger.warning("job link failed job=%s version=%s: %s", job_id, version_id, e)
            return False

    def job_versions(self, job_id: str) -> list[str]:
        return _read("list_job_version_ids", lambda: self._gateway.list_job_version_ids(job_id))

    def new_job_id(self) -> str:
        return self._ids.next()

    # --- Operator info ---

    def health(self) -> dict[str, str]:
        return self._gateway.health()

    def storage_info(self) -> dict[str, Any]:
        return self._gateway.storage_info()


def _expect_one(operation: str, rows: int) -> None:
    if rows != 1:
        raise StorageBackendError(operation, f"expected 1 row affected, got {rows}")


def _read(
    operation: str,
    fn: Callable[[], T],
    *,
    key: str | None = None,
    version: str | None = None,
) -> T:
    """Run a gateway read, wrapping backend failures with their context."""
    try:
        return fn()
    except StorageTimeoutError as e:
        raise GatewayTimeoutError(
            f"Timed out during {operation}", operation=operation, key=key, version=version, cause=e
        ) from e
    except StorageBackendError as e:
        raise FetchFailedError(
            f"Failed during {operation}: {e.detail}",
            operation=operation,
            key=key,
            version=version,
            cause=e,
        ) from e
