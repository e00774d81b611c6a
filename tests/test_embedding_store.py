"""
Tests for the EmbeddingStore facade.

Every test runs against both backends through the ``store`` fixture.
"""
import asyncio

import numpy as np
import pytest

from vector_core.core.embedding_store import EmbeddingStore
from vector_core.core.maintenance_gate import MaintenanceGate
from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.storage.interfaces import (
    BackendUnavailableError,
    DimensionMismatchError,
    ValidationError,
)
from vector_fixtures import DIMENSION, angled_vector, make_storage, unit_vector


def entry(record_id, collection="docs", embedding=None, **overrides):
    data = {
        "id": record_id,
        "collection": collection,
        "content": f"content of {record_id}",
        "metadata": {"source": "test"},
        "embedding": embedding if embedding is not None else unit_vector(0),
    }
    data.update(overrides)
    return data


class TestUpsert:

    @pytest.mark.asyncio
    async def test_idempotent_upsert(self, store):
        for _ in range(2):
            await store.upsert_one("x", "c", "hello", {"n": 1}, unit_vector(2))

        assert await store.count("c") == 1
        stored = await store.get_by_id("x", "c")
        assert stored.content == "hello"
        assert stored.metadata == {"n": 1}

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, store):
        await store.upsert_one("x", "c", "first", {"v": 1}, unit_vector(0))
        await store.upsert_one("x", "c", "second", None, unit_vector(1))

        stored = await store.get_by_id("x", "c")
        assert stored.content == "second"
        assert stored.metadata is None
        assert stored.embedding == unit_vector(1)

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        metadata = {"author": "ann", "nested": {"pages": [1, 2, 3], "draft": False}}
        await store.upsert_one("x", "c", "exact content", metadata, angled_vector(33))

        stored = await store.get_by_id("x", "c")

        assert isinstance(stored, EmbeddingRecord)
        assert stored.content == "exact content"
        assert stored.metadata == metadata
        assert stored.embedding == pytest.approx(angled_vector(33))

    @pytest.mark.asyncio
    async def test_metadata_is_json_normalized(self, store):
        await store.upsert_one("x", "c", "text", {"pair": (1, 2), 3: "three"}, unit_vector(0))

        stored = await store.get_by_id("x", "c")
        assert stored.metadata == {"pair": [1, 2], "3": "three"}

    @pytest.mark.asyncio
    async def test_numpy_embedding_accepted(self, store):
        await store.upsert_one("x", "c", "text", None, np.ones(DIMENSION, dtype=np.float32))

        stored = await store.get_by_id("x", "c")
        assert stored.embedding == [1.0] * DIMENSION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("length", [0, 99, 101, 768])
    async def test_dimension_enforced(self, store, length):
        await store.upsert_one("keep", "c", "text", None, unit_vector(0))

        with pytest.raises(DimensionMismatchError) as exc_info:
            await store.upsert_one("x", "c", "text", None, [0.5] * length)

        assert exc_info.value.expected == DIMENSION
        assert exc_info.value.actual == length
        assert await store.count() == 1
        assert await store.get_by_id("x", "c") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "record_id,collection,content,field",
        [
            ("x", None, "text", "collection"),
            ("x", "", "text", "collection"),
            ("x", "c", None, "content"),
            ("x", "c", "", "content"),
            (None, "c", "text", "id"),
        ],
    )
    async def test_missing_fields_rejected(self, store, record_id, collection, content, field):
        with pytest.raises(ValidationError) as exc_info:
            await store.upsert_one(record_id, collection, content, None, unit_vector(0))

        assert exc_info.value.field == field
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_non_finite_embedding_rejected(self, store):
        vector = unit_vector(0)
        vector[5] = float("nan")

        with pytest.raises(ValidationError):
            await store.upsert_one("x", "c", "text", None, vector)

    @pytest.mark.asyncio
    async def test_non_mapping_metadata_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.upsert_one("x", "c", "text", ["not", "a", "mapping"], unit_vector(0))


class TestBatchUpsert:

    @pytest.mark.asyncio
    async def test_batch_written(self, store):
        written = await store.upsert_many([entry(str(i)) for i in range(5)])

        assert written == 5
        assert await store.count("docs") == 5

    @pytest.mark.asyncio
    async def test_batch_accepts_records(self, store):
        records = [
            EmbeddingRecord("a", "docs", "first", unit_vector(0)),
            EmbeddingRecord("b", "docs", "second", unit_vector(1), {"k": "v"}),
        ]
        assert await store.upsert_many(records) == 2
        assert (await store.get_by_id("b", "docs")).metadata == {"k": "v"}

    @pytest.mark.asyncio
    async def test_batch_atomicity(self, store):
        batch = [entry(str(i)) for i in range(5)]
        batch.insert(3, entry("bad", embedding=[1.0] * 7))

        with pytest.raises(ValidationError) as exc_info:
            await store.upsert_many(batch)

        assert exc_info.value.index == 3
        assert "index 3" in str(exc_info.value)
        assert await store.count() == 0
        assert await store.list_collections() == []

    @pytest.mark.asyncio
    async def test_batch_missing_field_identified(self, store):
        batch = [entry("ok"), entry("no-content", content=None)]

        with pytest.raises(ValidationError) as exc_info:
            await store.upsert_many(batch)

        assert exc_info.value.index == 1
        assert exc_info.value.field == "content"
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_batch_duplicates_last_wins(self, store):
        batch = [entry("x", content="first"), entry("x", content="second")]

        await store.upsert_many(batch)

        assert await store.count() == 1
        assert (await store.get_by_id("x", "docs")).content == "second"

    @pytest.mark.asyncio
    async def test_empty_batch(self, store):
        assert await store.upsert_many([]) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("records", [5, None, 2.5, "x"])
    async def test_batch_must_be_sequence(self, store, records):
        with pytest.raises(ValidationError):
            await store.upsert_many(entry("x"))

        with pytest.raises(ValidationError) as exc_info:
            await store.upsert_many(records)

        assert exc_info.value.field == "records"
        assert await store.count() == 0


class TestUpdateDelete:

    @pytest.mark.asyncio
    async def test_update_existing(self, store):
        await store.upsert_one("x", "c", "old", None, unit_vector(0))

        assert await store.update("x", "c", "new", {"v": 2}, unit_vector(1)) == 1

        stored = await store.get_by_id("x", "c")
        assert stored.content == "new"
        assert stored.metadata == {"v": 2}

    @pytest.mark.asyncio
    async def test_update_missing_is_noop(self, store):
        await store.upsert_one("x", "c", "text", None, unit_vector(0))

        assert await store.update("ghost", "c", "new", None, unit_vector(1)) == 0
        assert await store.get_by_id("ghost", "c") is None
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_update_validates(self, store):
        with pytest.raises(ValidationError):
            await store.update("x", "c", "text", None, [1.0, 2.0])

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store):
        await store.upsert_one("x", "c", "text", None, unit_vector(0))

        assert await store.delete("nope", "c") == 0
        assert await store.delete("x", "other") == 0
        assert await store.count() == 1
        assert await store.get_by_id("x", "c") is not None


class TestSearch:

    @pytest.mark.asyncio
    async def test_two_nearest_in_order(self, store):
        await store.upsert_one("far", "docs", "far", None, angled_vector(50))
        await store.upsert_one("near", "docs", "near", None, angled_vector(5))
        await store.upsert_one("mid", "docs", "mid", None, angled_vector(25))

        results = await store.search(angled_vector(0), "docs", limit=2)

        assert [r.record_id for r in results] == ["near", "mid"]
        assert all(isinstance(r, SearchResult) for r in results)
        assert results[0].distance <= results[1].distance
        assert results[0].record.content == "near"

    @pytest.mark.asyncio
    async def test_collection_isolation(self, store):
        await store.upsert_one("same", "a", "in a", None, unit_vector(0))

        assert await store.get_by_id("same", "b") is None
        assert await store.search(unit_vector(0), "b", limit=10) == []

        await store.upsert_one("same", "b", "in b", None, unit_vector(1))
        results = await store.search(unit_vector(0), "b", limit=10)
        assert [r.record.collection for r in results] == ["b"]
        assert (await store.get_by_id("same", "a")).content == "in a"

    @pytest.mark.asyncio
    async def test_threshold(self, store):
        await store.upsert_one("close", "docs", "t", None, angled_vector(10))
        await store.upsert_one("wide", "docs", "t", None, angled_vector(70))

        results = await store.search(angled_vector(0), "docs", limit=5, threshold=0.1)

        assert [r.record_id for r in results] == ["close"]
        assert results[0].similarity == pytest.approx(np.cos(np.deg2rad(10)))

    @pytest.mark.asyncio
    async def test_zero_threshold_keeps_exact_matches(self, store):
        await store.upsert_one("exact", "docs", "t", None, unit_vector(4))
        await store.upsert_one("other", "docs", "t", None, unit_vector(5))

        results = await store.search(unit_vector(4), "docs", limit=5, threshold=0)

        assert [r.record_id for r in results] == ["exact"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, 2.5, True, "3"])
    async def test_invalid_limit(self, store, limit):
        with pytest.raises(ValidationError):
            await store.search(unit_vector(0), "docs", limit=limit)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("threshold", [-0.1, float("nan"), "0.5", False])
    async def test_invalid_threshold(self, store, threshold):
        with pytest.raises(ValidationError):
            await store.search(unit_vector(0), "docs", limit=3, threshold=threshold)

    @pytest.mark.asyncio
    async def test_query_dimension_enforced(self, store):
        with pytest.raises(DimensionMismatchError):
            await store.search([1.0] * 3, "docs")


class TestCollectionsAndHealth:

    @pytest.mark.asyncio
    async def test_list_collections(self, store):
        await store.upsert_one("1", "b", "t", None, unit_vector(0))
        await store.upsert_one("1", "a", "t", None, unit_vector(0))
        await store.upsert_one("2", "a", "t", None, unit_vector(1))

        assert await store.list_collections() == ["a", "b"]

        await store.delete("1", "a")
        await store.delete("2", "a")
        assert await store.list_collections() == ["b"]

    @pytest.mark.asyncio
    async def test_health_check(self, store):
        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_before_provision(self, backend_name, tmp_path):
        async with EmbeddingStore(make_storage(backend_name, tmp_path)) as store:
            assert await store.health_check() is False
            with pytest.raises(BackendUnavailableError):
                await store.upsert_one("x", "c", "t", None, unit_vector(0))

    @pytest.mark.asyncio
    async def test_provision_resets(self, store):
        await store.upsert_one("x", "c", "t", None, unit_vector(0))

        await store.provision()

        assert await store.count() == 0
        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_build_index_and_info(self, store):
        await store.upsert_many([entry(str(i), embedding=unit_vector(i)) for i in range(8)])

        info = await store.build_index()
        index_info = await store.get_index_info()

        assert info["trained_vectors"] == 8
        assert index_info["trained"] is True
        assert index_info["num_clusters"] == 4


class TestProvisionFailure:

    @pytest.mark.asyncio
    async def test_provision_failure_is_fatal(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = EmbeddingStore(make_storage("sqlite", blocker))

        with pytest.raises(BackendUnavailableError):
            await store.provision()


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_writers_same_key(self, store):
        contents = [f"writer {i}" for i in range(20)]

        await asyncio.gather(
            *(store.upsert_one("k", "c", text, {"w": text}, unit_vector(0)) for text in contents)
        )

        stored = await store.get_by_id("k", "c")
        assert await store.count() == 1
        assert stored.content in contents
        assert stored.metadata == {"w": stored.content}

    @pytest.mark.asyncio
    async def test_provision_waits_for_in_flight_operations(self, store):
        order = []
        original_upsert = store.storage.upsert_many

        async def slow_upsert(records):
            order.append("upsert-start")
            await asyncio.sleep(0.05)
            result = await original_upsert(records)
            order.append("upsert-end")
            return result

        store.storage.upsert_many = slow_upsert
        original_provision = store.storage.provision

        async def tracked_provision():
            order.append("provision")
            await original_provision()

        store.storage.provision = tracked_provision

        upsert = asyncio.create_task(store.upsert_one("x", "c", "t", None, unit_vector(0)))
        await asyncio.sleep(0.01)
        await store.provision()
        await upsert

        assert order == ["upsert-start", "upsert-end", "provision"]
        assert await store.count() == 0


class TestMaintenanceGate:

    @pytest.mark.asyncio
    async def test_shared_holders_overlap(self):
        gate = MaintenanceGate()
        active = []

        async def reader():
            async with gate.shared():
                active.append(gate.shared_holders)
                await asyncio.sleep(0.01)

        await asyncio.gather(reader(), reader(), reader())

        assert max(active) > 1
        assert gate.shared_holders == 0

    @pytest.mark.asyncio
    async def test_exclusive_blocks_new_shared(self):
        gate = MaintenanceGate()
        events = []

        async def maintenance():
            async with gate.exclusive():
                events.append("exclusive-start")
                await asyncio.sleep(0.02)
                events.append("exclusive-end")

        async def reader():
            await asyncio.sleep(0.005)
            async with gate.shared():
                events.append("shared")

        await asyncio.gather(maintenance(), reader())

        assert events == ["exclusive-start", "exclusive-end", "shared"]
        assert gate.is_exclusive is False
