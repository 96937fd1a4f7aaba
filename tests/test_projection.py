"""
Tests for the projection availability state and the FAISS projection store.
"""

import pytest
from unittest.mock import MagicMock

from semantic_index.core import embedding_dao
from semantic_index.core.config import PROJECTION_TABLE
from semantic_index.core.db import get_db
from semantic_index.vector.faiss_store import FaissProjectionStore
from semantic_index.vector.projection import ProjectionState, VectorProjectionSync


def _store(probe_result=True):
    store = MagicMock()
    store.probe.return_value = probe_result
    return store


@pytest.mark.asyncio
async def test_state_starts_unknown_and_probes_once():
    store = _store(True)
    projection = VectorProjectionSync(store)

    assert projection.state == ProjectionState.UNKNOWN
    assert await projection.is_available() is True
    assert await projection.is_available() is True

    assert projection.state == ProjectionState.AVAILABLE
    store.probe.assert_called_once()


@pytest.mark.asyncio
async def test_missing_projection_is_unavailable():
    store = _store(False)
    projection = VectorProjectionSync(store)

    assert await projection.is_available() is False
    assert projection.state == ProjectionState.UNAVAILABLE


@pytest.mark.asyncio
async def test_probe_error_is_unavailable():
    store = MagicMock()
    store.probe.side_effect = RuntimeError("database locked")
    projection = VectorProjectionSync(store)

    assert await projection.is_available() is False
    assert projection.state == ProjectionState.UNAVAILABLE


@pytest.mark.asyncio
async def test_sync_failure_degrades_for_process_lifetime():
    store = _store(True)
    store.upsert.side_effect = ValueError("dimension mismatch")
    projection = VectorProjectionSync(store)

    await projection.sync(1, [1.0, 0.0])
    await projection.sync(2, [1.0, 0.0])
    await projection.delete(1)

    assert projection.state == ProjectionState.UNAVAILABLE
    assert store.upsert.call_count == 1
    store.delete.assert_not_called()
    store.probe.assert_called_once()


@pytest.mark.asyncio
async def test_delete_failure_degrades():
    store = _store(True)
    store.delete.side_effect = RuntimeError("gone")
    projection = VectorProjectionSync(store)

    await projection.delete(1)

    assert projection.state == ProjectionState.UNAVAILABLE


@pytest.mark.asyncio
async def test_reprobe_recovers():
    store = _store(True)
    projection = VectorProjectionSync(store)
    await projection.is_available()
    projection.mark_unavailable("write failed")

    assert await projection.is_available() is False
    assert await projection.reprobe() is True
    assert projection.state == ProjectionState.AVAILABLE
    assert store.probe.call_count == 2


def _record(seed_business, business_id, vector):
    business = seed_business(business_id)
    return embedding_dao.upsert_embedding(business.id, business.organization_id, "doc", vector,
                                          "local-fallback", "sum")


def test_faiss_store_requires_projection_table(temp_db_without_projection):
    pytest.importorskip("faiss")

    assert FaissProjectionStore().probe() is False


def test_faiss_store_upsert_search_delete(temp_db, seed_business):
    pytest.importorskip("faiss")
    store = FaissProjectionStore()
    assert store.probe() is True

    north = _record(seed_business, "biz-1", [1.0, 0.0, 0.0])
    east = _record(seed_business, "biz-2", [0.0, 1.0, 0.0])
    store.upsert(north.id, north.embedding)
    store.upsert(east.id, east.embedding)
    store.upsert(north.id, [2.0, 0.1, 0.0])  # replaces, does not duplicate

    assert store.ntotal == 2
    ranked = store.search([1.0, 0.0, 0.0], [north.id, east.id], top_k=5)
    assert [record_id for record_id, _ in ranked] == [north.id, east.id]
    assert ranked[0][1] > 0.99
    assert abs(ranked[1][1]) < 1e-6

    # ids outside the allowed set never come back
    assert store.search([1.0, 0.0, 0.0], [east.id], top_k=5) == [(east.id, pytest.approx(0.0, abs=1e-6))]

    store.delete(north.id)
    assert store.ntotal == 1
    with get_db() as conn:
        assert conn.execute(f"SELECT COUNT(*) FROM {PROJECTION_TABLE}").fetchone()[0] == 1


def test_faiss_store_reloads_rows_on_probe(temp_db, seed_business):
    pytest.importorskip("faiss")
    first = FaissProjectionStore()
    first.probe()
    record = _record(seed_business, "biz-1", [0.0, 1.0])
    first.upsert(record.id, record.embedding)

    second = FaissProjectionStore()
    assert second.probe() is True
    assert second.ntotal == 1
    assert second.search([0.0, 1.0], [record.id], top_k=1)[0][0] == record.id


def test_faiss_store_rejects_dimension_mismatch(temp_db, seed_business):
    pytest.importorskip("faiss")
    store = FaissProjectionStore()
    store.probe()
    record = _record(seed_business, "biz-1", [1.0, 0.0])
    store.upsert(record.id, record.embedding)

    other = _record(seed_business, "biz-2", [1.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        store.upsert(other.id, other.embedding)
    with pytest.raises(ValueError):
        store.search([1.0, 0.0, 0.0], [record.id], top_k=1)
