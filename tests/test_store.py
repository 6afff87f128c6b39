"""Tests for VersionedStore: registration, writes, reads, jobs and failures."""

from __future__ import annotations

import threading
import time

import pytest

from tests.conftest import PERSON, write_lock_held
from versionkv import (
    AlreadyRegisteredError,
    DecodeFailedError,
    EmptyKeyError,
    ErrorKind,
    GatewayTimeoutError,
    InitialPopulationFailedError,
    InvalidInitError,
    InvalidPayloadError,
    MetadataWriteFailedError,
    MissingKeyError,
    NoVersionError,
    PayloadWriteFailedError,
    SqliteGateway,
    StorageBackendError,
    StoreConfig,
    UNSET_VERSION,
    VersionedStore,
)
from versionkv.ids import ULID_LENGTH


class FailingGateway(SqliteGateway):
    """Gateway whose transaction begin, job-link or metadata writes can be made to fail."""

    fail_begin = False
    fail_links = False
    fail_metadata = False

    def transaction(self, timeout=None):
        if self.fail_begin:
            raise StorageBackendError("transaction", "disk I/O error")
        return super().transaction(timeout=timeout)

    def insert_job_link(self, job_id, version_id, payload, *, timeout=None):
        if self.fail_links:
            raise StorageBackendError("insert_job_link", "disk full")
        return super().insert_job_link(job_id, version_id, payload, timeout=timeout)

    def insert_metadata(self, key, payload, *, schema_key=None, timeout=None):
        if self.fail_metadata:
            raise StorageBackendError("insert_metadata", "disk full")
        return super().insert_metadata(key, payload, schema_key=schema_key, timeout=timeout)


@pytest.fixture
def failing(tmp_db):
    g = FailingGateway(tmp_db)
    yield g
    g.close()


class TestRegistration:
    def test_register_without_object(self, store):
        record = store.register("k")
        assert record.init is False
        assert record.oper == "reg"
        assert record.store_id == UNSET_VERSION
        assert store.is_registered("k")
        with pytest.raises(NoVersionError) as exc:
            store.get("k")
        assert exc.value.key == "k"
        assert exc.value.kind is ErrorKind.NO_VERSION

    def test_register_with_object(self, store):
        record = store.register("person/1", PERSON)
        assert record.init is True
        assert record.oper == "reg&set"
        assert record.job_id == record.store_id
        assert store.get("person/1") == PERSON

    def test_register_empty_key(self, store):
        with pytest.raises(EmptyKeyError):
            store.register("")

    def test_register_init_without_object(self, store):
        with pytest.raises(InvalidInitError):
            store.register("k", init=True)
        assert not store.is_registered("k")

    def test_register_object_without_init(self, store):
        with pytest.raises(InvalidInitError):
            store.register("k", {"a": 1}, init=False)
        assert not store.is_registered("k")

    def test_register_invalid_object_without_init(self, store):
        with pytest.raises(InvalidPayloadError):
            store.register("k", "not a map", init=False)
        assert not store.is_registered("k")

    def test_register_invalid_object_writes_nothing(self, store):
        with pytest.raises(InvalidPayloadError):
            store.register("k", ["not", "an", "object"])
        assert not store.is_registered("k")
        assert store.storage_info()["keys"] == 0

    def test_reregister_resets_pointer(self, store):
        store.register("k", {"v": 1})
        record = store.register("k")
        assert record.store_id == UNSET_VERSION
        with pytest.raises(NoVersionError):
            store.get("k")

    def test_strict_registration(self, gateway):
        strict = VersionedStore(gateway, config=StoreConfig(strict_registration=True))
        strict.register("k")
        with pytest.raises(AlreadyRegisteredError):
            strict.register("k")
        strict.unregister("k")
        strict.register("k")

    def test_initial_population_failure_keeps_registration(self, failing):
        failing.fail_links = True
        s = VersionedStore(failing)
        with pytest.raises(InitialPopulationFailedError) as exc:
            s.register("k", {"v": 1})
        assert isinstance(exc.value.__cause__, PayloadWriteFailedError)
        record = s.metadata("k")
        assert record is not None
        assert record.init is False
        assert record.store_id == UNSET_VERSION
        assert s.history("k") == []


class TestUnregister:
    def test_unregister_hides_key(self, store):
        record = store.set("k", {"v": 1})
        assert store.unregister("k")
        assert not store.has("k")
        with pytest.raises(NoVersionError):
            store.get("k")
        # Versions stay readable by id
        assert store.get(version_id=record.store_id) == {"v": 1}

    def test_unregister_twice(self, store):
        store.register("k")
        assert store.unregister("k")
        assert store.unregister("k")

    def test_unregister_unknown(self, store):
        assert store.unregister("missing") is False

    def test_set_reregisters_tombstoned_key(self, store):
        store.set("k", {"v": 1})
        store.unregister("k")
        store.set("k", {"v": 2})
        assert store.has("k")
        assert store.get("k") == {"v": 2}

    def test_metadata_include_deleted(self, store):
        store.register("k")
        store.unregister("k")
        assert store.metadata("k") is None
        assert store.metadata("k", include_deleted=True) is not None

    def test_tombstone_survives_reopen(self, tmp_db):
        with VersionedStore.open(tmp_db) as s:
            s.set("k", {"v": 1})
            s.unregister("k")
        with VersionedStore.open(tmp_db) as s:
            assert not s.has("k")


class TestSetAndGet:
    def test_round_trip(self, store):
        store.set("person/1", PERSON)
        assert store.get("person/1") == PERSON

    def test_set_returns_record(self, store):
        record = store.set("k", {"v": 1}, job_id="job-1", schema_key="Thing")
        assert record.oper == "set"
        assert record.init is True
        assert record.job_id == "job-1"
        assert record.schema_key == "Thing"
        assert len(record.store_id) == ULID_LENGTH
        assert store.metadata("k") == record

    def test_versions_increase(self, store):
        ids = [store.set("k", {"n": n}).store_id for n in range(5)]
        assert ids == sorted(ids)
        assert store.history("k") == ids
        assert store.latest_version("k") == ids[-1]
        assert store.get("k") == {"n": 4}
        assert store.get(version_id=ids[0]) == {"n": 0}

    def test_set_empty_key(self, store):
        with pytest.raises(EmptyKeyError):
            store.set("", {"v": 1})

    @pytest.mark.parametrize("bad", [None, 42, "text", [1, 2], {"n": float("nan")}])
    def test_invalid_payload_has_no_side_effects(self, store, bad):
        with pytest.raises(InvalidPayloadError):
            store.set("k", bad)
        info = store.storage_info()
        assert info["keys"] == 0
        assert info["versions"] == 0

    def test_get_without_key_or_version(self, store):
        with pytest.raises(MissingKeyError):
            store.get()

    def test_get_unknown_key(self, store):
        with pytest.raises(NoVersionError):
            store.get("missing")

    def test_get_unknown_version(self, store):
        with pytest.raises(NoVersionError) as exc:
            store.get(version_id="01ZZZZZZZZZZZZZZZZZZZZZZZZ")
        assert exc.value.version == "01ZZZZZZZZZZZZZZZZZZZZZZZZ"

    def test_decode_failure_surfaces(self, gateway, store):
        gateway.insert_object_version("BAD", "job", "k", "[1, 2]")
        with pytest.raises(DecodeFailedError) as exc:
            store.get(version_id="BAD")
        assert str(exc.value).startswith("DecodeFailed:")

    def test_malformed_metadata_surfaces(self, gateway, store):
        gateway.insert_metadata("k", "{broken")
        with pytest.raises(DecodeFailedError):
            store.get("k")
        assert not store.has("k")

    def test_publish_uses_key_as_schema(self, store):
        record = store.publish("feed", {"item": 1})
        assert record.schema_key == "feed"
        assert list(store.list_versions_by_type("feed")) == [record.store_id]

    def test_describe(self, store):
        store.set("person/1", PERSON)
        shape = store.describe("person/1")
        assert shape.kind == "object"
        assert shape.fields["tags"].elem.kind == "string"
        assert shape.fields["address"].fields["zip"].kind == "null"

    def test_has_version(self, store):
        record = store.set("k", {"v": 1})
        assert store.has_version(record.store_id)
        assert not store.has_version("missing")


class TestValidation:
    @staticmethod
    def _reject_minors(schema_key, obj):
        return obj.get("age", 0) >= 18

    def test_validator_rejects(self, gateway):
        s = VersionedStore(gateway, validator=self._reject_minors)
        s.register("person/1", check=True)
        with pytest.raises(InvalidPayloadError) as exc:
            s.set("person/1", {"age": 3})
        assert exc.value.operation == "validate"
        assert s.history("person/1") == []

    def test_validator_accepts(self, gateway):
        s = VersionedStore(gateway, validator=self._reject_minors)
        s.register("person/1", check=True)
        s.set("person/1", {"age": 30})
        assert s.get("person/1") == {"age": 30}

    def test_unchecked_key_skips_validator(self, gateway):
        s = VersionedStore(gateway, validator=self._reject_minors)
        s.register("person/1")
        s.set("person/1", {"age": 3})
        assert s.get("person/1") == {"age": 3}


class TestSchemaKeys:
    def test_list_by_type(self, store):
        a = store.set("person/1", {"n": 1}, schema_key="Person").store_id
        b = store.set("person/2", {"n": 2}, schema_key="Person").store_id
        store.set("place/1", {"n": 3}, schema_key="Place")
        assert list(store.list_versions_by_type("Person")) == [a, b]

    def test_list_by_type_job_filter(self, store):
        a = store.set("p/1", {"n": 1}, schema_key="P", job_id="nightly-1").store_id
        store.set("p/2", {"n": 2}, schema_key="P", job_id="adhoc-1")
        assert list(store.list_versions_by_type("P", "nightly-*")) == [a]

    def test_sequence_is_restartable(self, store):
        store.set("p/1", {"n": 1}, schema_key="P")
        seq = store.list_versions_by_type("P")
        assert len(list(seq)) == 1
        store.set("p/2", {"n": 2}, schema_key="P")
        assert len(list(seq)) == 2

    def test_metadata_by_schema_key_hint(self, store):
        store.set("person/1", {"n": 1}, schema_key="Person")
        record = store.metadata("unknown", "Person")
        assert record is not None
        assert record.key == "person/1"

    def test_set_on_schema_key_creates_own_record(self, store):
        store.set("person/1", {"n": 1}, schema_key="Person")
        store.set("Person", {"n": 2})
        assert store.metadata("Person").key == "Person"
        assert store.get("person/1") == {"n": 1}


class TestJobs:
    def test_default_job_is_version(self, store):
        record = store.set("k", {"v": 1})
        assert store.job_versions(record.job_id) == [record.store_id]

    def test_shared_job(self, store):
        a = store.set("a", {"v": 1}, job_id="job-1").store_id
        b = store.set("b", {"v": 2}, job_id="job-1").store_id
        assert store.job_versions("job-1") == sorted([a, b])

    def test_set_job_index(self, store):
        record = store.set("k", {"v": 1})
        assert store.set_job_index("reprocess", record.store_id)
        assert store.job_versions("reprocess") == [record.store_id]

    def test_set_job_index_unknown_version(self, store):
        assert store.set_job_index("job", "missing") is False

    def test_new_job_id(self, store):
        assert len(store.new_job_id()) == ULID_LENGTH


class TestAtomicity:
    def test_failed_link_rolls_back_version(self, failing):
        s = VersionedStore(failing)
        s.set("k", {"v": 1})
        failing.fail_links = True
        with pytest.raises(PayloadWriteFailedError) as exc:
            s.set("k", {"v": 2})
        assert exc.value.operation == "insert_job_link"
        assert len(s.history("k")) == 1
        assert s.get("k") == {"v": 1}

    def test_failed_metadata_rolls_back_version(self, failing):
        s = VersionedStore(failing)
        failing.fail_metadata = True
        with pytest.raises(MetadataWriteFailedError):
            s.set("k", {"v": 1})
        failing.fail_metadata = False
        assert s.history("k") == []
        assert failing.storage_info()["job_links"] == 0

    def test_failed_begin_reported_as_transaction(self, failing):
        s = VersionedStore(failing)
        failing.fail_begin = True
        with pytest.raises(PayloadWriteFailedError) as exc:
            s.set("k", {"v": 1})
        assert exc.value.operation == "transaction"
        failing.fail_begin = False
        assert s.history("k") == []


class TestConcurrency:
    def test_threads_on_different_keys(self, store):
        errors: list[Exception] = []

        def worker(n):
            try:
                for i in range(20):
                    store.set(f"key-{n}", {"i": i})
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        for n in range(6):
            assert len(store.history(f"key-{n}")) == 20
            assert store.get(f"key-{n}") == {"i": 19}

    def test_threads_on_same_key_keep_every_version(self, store):
        def worker(n):
            for i in range(10):
                store.set("shared", {"n": n, "i": i})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        history = store.history("shared")
        assert len(history) == 40
        assert store.latest_version("shared") in history


class TestTimeouts:
    def test_read_times_out_while_locked(self, gateway, store):
        store.set("k", {"v": 1})
        held = threading.Event()
        release = threading.Event()

        def holder():
            with gateway.transaction(timeout=5.0):
                held.set()
                release.wait(5.0)

        t = threading.Thread(target=holder)
        t.start()
        try:
            assert held.wait(5.0)
            with pytest.raises(GatewayTimeoutError):
                store.get("k", timeout=0.05)
            with pytest.raises(GatewayTimeoutError):
                store.set("k", {"v": 2}, timeout=0.05)
        finally:
            release.set()
            t.join()
        assert store.get("k") == {"v": 1}

    def test_set_times_out_on_other_writer(self, store, tmp_db):
        store.set("k", {"v": 1})
        with write_lock_held(tmp_db):
            started = time.monotonic()
            with pytest.raises(GatewayTimeoutError) as exc:
                store.set("k", {"v": 2}, timeout=0.2)
            assert time.monotonic() - started < 2.0
            assert exc.value.operation == "transaction"
            assert store.get("k") == {"v": 1}
        assert store.get("k") == {"v": 1}
        assert len(store.history("k")) == 1


class TestLifecycle:
    def test_context_manager_closes_owned_gateway(self, tmp_db):
        with VersionedStore.open(tmp_db) as s:
            s.set("k", {"v": 1})
            gateway = s.gateway
        assert gateway.health()["status"] == "down"

    def test_shared_gateway_not_closed(self, gateway):
        with VersionedStore(gateway) as s:
            s.set("k", {"v": 1})
        assert gateway.health()["status"] == "up"

    def test_health_and_info(self, store):
        store.set("k", {"v": 1})
        assert store.health()["status"] == "up"
        info = store.storage_info()
        assert info["keys"] == 1
        assert info["versions"] == 1
        assert info["job_links"] == 1


def test_person_scenario(tmp_db):
    """Register, update, inspect and retire one key end to end."""
    with VersionedStore.open(tmp_db) as s:
        first = s.register("person/ada", PERSON, schema_key="Person")
        updated = dict(PERSON, age=37)
        second = s.set("person/ada", updated, schema_key="Person")
        assert second.store_id > first.store_id
        assert s.get("person/ada") == updated
        assert s.get(version_id=first.store_id) == PERSON
        assert s.history("person/ada") == [first.store_id, second.store_id]
        assert list(s.list_versions_by_type("Person")) == [first.store_id, second.store_id]
        assert s.unregister("person/ada")
        assert not s.has("person/ada")
        assert s.get(version_id=second.store_id) == updated
