"""Metadata registry: the per-key control records of the store."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from versionkv.errors import (
    DecodeFailedError,
    FetchFailedError,
    GatewayTimeoutError,
    StorageBackendError,
    StorageTimeoutError,
)
from versionkv.ids import IdGenerator, new_id
from versionkv.records import MetadataRecord
from versionkv.storage import GatewayProtocol

logger = logging.getLogger(__name__)

ALIVE_TOKEN_NAME = "alive_token"


class MetadataRegistry:
    """Owns the Metadata Record of every key.

    Records are upserted whole; there is no metadata history. A record whose
    ``deleted`` token differs from the store-wide alive token is tombstoned:
    it stays in storage but lookups treat it as absent unless asked not to.
    """

    def __init__(self, gateway: GatewayProtocol, ids: IdGenerator | None = None) -> None:
        self._gateway = gateway
        self._next_id = ids.next if ids is not None else new_id
        self.alive_token = gateway.ensure_store_meta(ALIVE_TOKEN_NAME, self._next_id())

    def new_record(self, key: str, **values: object) -> MetadataRecord:
        """Build a live record for key."""
        return MetadataRecord(key=key, deleted=self.alive_token, **values)

    def is_alive(self, record: MetadataRecord) -> bool:
        return record.deleted == self.alive_token

    def set_metadata(self, key: str, record: MetadataRecord, *, timeout: float | None = None) -> bool:
        """Upsert the record for key; False if the write did not apply."""
        try:
            return (
                self._gateway.insert_metadata(
                    key, record.to_json(), schema_key=record.schema_key, timeout=timeout
                )
                == 1
            )
        except StorageBackendError as e:
            logger.warning("metadata write failed key=%s: %s", key, e)
            return False

    def write(self, record: MetadataRecord, *, timeout: float | None = None) -> int:
        """Upsert a record, propagating gateway errors."""
        return self._gateway.insert_metadata(
            record.key, record.to_json(), schema_key=record.schema_key, timeout=timeout
        )

    def fetch(
        self,
        key: str,
        schema_key_hint: str | None = None,
        *,
        include_deleted: bool = False,
        timeout: float | None = None,
    ) -> MetadataRecord | None:
        """Look up the record by key, then by schema key.

        Raises FetchFailedError / GatewayTimeoutError on gateway failure and
        DecodeFailedError when the stored record is malformed.
        """
        try:
            blob = self._gateway.get_metadata(key, schema_key_hint, timeout=timeout)
        except StorageTimeoutError as e:
            raise GatewayTimeoutError(
                f"Timed out reading metadata for '{key}'", operation="get_metadata", key=key, cause=e
            ) from e
        except StorageBackendError as e:
            raise FetchFailedError(
                f"Failed to read metadata for '{key}'", operation="get_metadata", key=key, cause=e
            ) from e
        if blob is None:
            return None
        try:
            record = MetadataRecord.from_json(blob)
        except ValidationError as e:
            raise DecodeFailedError(
                f"Malformed metadata for '{key}'", operation="get_metadata", key=key, cause=e
            ) from e
        if not include_deleted and not self.is_alive(record):
            return None
        return record

    def get_metadata(
        self,
        key: str,
        schema_key_hint: str | None = None,
        *,
        include_deleted: bool = False,
    ) -> MetadataRecord | None:
        """Probe variant of ``fetch``: any failure reads as not found."""
        try:
            return self.fetch(key, schema_key_hint, include_deleted=include_deleted)
        except (FetchFailedError, GatewayTimeoutError, DecodeFailedError) as e:
            logger.warning("metadata lookup failed key=%s: %s", key, e)
            return None

    def is_registered(self, key: str) -> bool:
        return self.get_metadata(key) is not None

    def unregister(self, key: str) -> bool:
        """Tombstone key with a fresh token; False if it has no record.

        Re-tombstoning an already unregistered key is permitted and succeeds.
        """
        record = self.get_metadata(key, include_deleted=True)
        # A record resolved through its schema key belongs to another key
        if record is None or record.key != key:
            return False
        tombstoned = record.model_copy(update={"deleted": self._next_id()})
        ok = self.set_metadata(key, tombstoned)
        if ok:
            logger.info("unregistered key=%s", key)
        return ok
