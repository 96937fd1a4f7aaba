"""
Tests for backend selection, ranking, filtering and degradation in the retrieval engine.
"""

import sqlite3

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from semantic_index.core import embedding_dao
from semantic_index.core.errors import BackendUnavailableError, StorageError
from semantic_index.core.schema import QueryFilters
from semantic_index.vector.embeddings import EmbeddingProvider
from semantic_index.vector.projection import ProjectionState, VectorProjectionSync
from semantic_index.vector.retrieval import (
    SOURCE_ACCELERATED,
    SOURCE_FALLBACK,
    AcceleratedBackend,
    FallbackBackend,
    RetrievalEngine,
)


def _projection(available: bool) -> VectorProjectionSync:
    store = MagicMock()
    store.probe.return_value = available
    return VectorProjectionSync(store)


def _index(seed_business, business_id, vector, **overrides):
    business = seed_business(business_id, **overrides)
    return embedding_dao.upsert_embedding(business.id, business.organization_id, "doc", vector,
                                          "local-fallback", "sum")


@pytest.mark.asyncio
async def test_empty_query_vector_touches_no_backend():
    projection = _projection(True)
    accelerated = MagicMock()
    accelerated.search = AsyncMock()
    fallback = MagicMock()
    fallback.search = AsyncMock()
    engine = RetrievalEngine(projection, accelerated=accelerated, fallback=fallback)

    result = await engine.search([], QueryFilters())

    assert result.matches == []
    assert result.source == SOURCE_FALLBACK
    accelerated.search.assert_not_awaited()
    fallback.search.assert_not_awaited()
    projection.store.probe.assert_not_called()


@pytest.mark.asyncio
async def test_fallback_ranks_by_cosine_similarity(temp_db, seed_business):
    _index(seed_business, "biz-far", [0.0, 1.0])
    _index(seed_business, "biz-near", [1.0, 0.1])
    _index(seed_business, "biz-mid", [1.0, 1.0])
    _index(seed_business, "biz-empty", [])
    engine = RetrievalEngine(_projection(False))

    result = await engine.search([1.0, 0.0], QueryFilters())

    assert result.source == SOURCE_FALLBACK
    assert [m.business_id for m in result.matches] == ["biz-near", "biz-mid", "biz-far", "biz-empty"]
    assert result.matches[0].score == pytest.approx(0.995, abs=1e-3)
    assert result.matches[-1].score == -1.0
    scores = [m.score for m in result.matches]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_default_and_clamped_limits(temp_db, seed_business):
    for i in range(30):
        _index(seed_business, f"biz-{i:02d}", [1.0, i / 30])
    engine = RetrievalEngine(_projection(False))

    assert len((await engine.search([1.0, 0.0], QueryFilters())).matches) == 8
    assert len((await engine.search([1.0, 0.0], QueryFilters(limit=0))).matches) == 1
    assert len((await engine.search([1.0, 0.0], QueryFilters(limit=3))).matches) == 3
    assert len((await engine.search([1.0, 0.0], QueryFilters(limit=100))).matches) == 25


@pytest.mark.asyncio
async def test_fallback_candidate_pool_is_bounded(temp_db, seed_business):
    for i in range(5):
        _index(seed_business, f"biz-{i}", [1.0, 0.0])
    engine = RetrievalEngine(_projection(False), fallback=FallbackBackend(candidate_limit=2))

    result = await engine.search([1.0, 0.0], QueryFilters(limit=10))

    assert len(result.matches) == 2


@pytest.mark.asyncio
async def test_filters_restrict_results(temp_db, seed_business, deleted_at):
    _index(seed_business, "biz-1", [1.0, 0.0], organization_id="org-1")
    _index(seed_business, "biz-2", [1.0, 0.0], organization_id="org-2")
    _index(seed_business, "biz-3", [1.0, 0.0], organization_id="org-1")
    seed_business("biz-3", organization_id="org-1", deleted_at=deleted_at)
    engine = RetrievalEngine(_projection(False))

    result = await engine.search([1.0, 0.0], QueryFilters(organization_id="org-1"))

    assert [m.business_id for m in result.matches] == ["biz-1"]


@pytest.mark.asyncio
async def test_accelerated_backend_used_when_available(temp_db, seed_business):
    pytest.importorskip("faiss")
    projection = VectorProjectionSync()
    near = _index(seed_business, "biz-near", [1.0, 0.0])
    far = _index(seed_business, "biz-far", [0.0, 1.0])
    other_org = _index(seed_business, "biz-other", [1.0, 0.0], organization_id="org-2")
    for record in (near, far, other_org):
        await projection.sync(record.id, record.embedding)
    engine = RetrievalEngine(projection)

    result = await engine.search([1.0, 0.0], QueryFilters(organization_id="org-1"))

    assert result.source == SOURCE_ACCELERATED
    assert [m.business_id for m in result.matches] == ["biz-near", "biz-far"]
    assert result.matches[0].score == pytest.approx(1.0, abs=1e-5)
    assert result.matches[1].score == pytest.approx(0.0, abs=1e-5)


@pytest.mark.asyncio
async def test_accelerated_failure_degrades_to_fallback(temp_db, seed_business):
    _index(seed_business, "biz-1", [1.0, 0.0])
    projection = _projection(True)
    accelerated = MagicMock()
    accelerated.search = AsyncMock(side_effect=BackendUnavailableError("index corrupted"))
    engine = RetrievalEngine(projection, accelerated=accelerated)

    first = await engine.search([1.0, 0.0], QueryFilters())
    second = await engine.search([1.0, 0.0], QueryFilters())

    assert first.source == SOURCE_FALLBACK
    assert [m.business_id for m in first.matches] == ["biz-1"]
    assert second.source == SOURCE_FALLBACK
    assert projection.state == ProjectionState.UNAVAILABLE
    accelerated.search.assert_awaited_once()


@pytest.mark.asyncio
async def test_accelerated_store_errors_become_backend_unavailable(temp_db):
    projection = _projection(True)
    projection.store.dimension = 2
    projection.store.search.side_effect = RuntimeError("index corrupted")
    backend = AcceleratedBackend(projection)

    with pytest.raises(BackendUnavailableError):
        await backend.search([1.0, 0.0], QueryFilters())


@pytest.mark.asyncio
async def test_search_by_text(temp_db, seed_business):
    provider = EmbeddingProvider(remote_enabled=False, dimensions=64)
    business = seed_business("biz-1")
    vector = await provider.create_embedding("colmado delivery")
    embedding_dao.upsert_embedding(business.id, business.organization_id, "doc", vector, "local-fallback", "sum")
    engine = RetrievalEngine(_projection(False), provider)

    result = await engine.search_by_text("colmado delivery", QueryFilters())
    blank = await engine.search_by_text("   ", QueryFilters())

    assert result.matches[0].business_id == "biz-1"
    assert result.matches[0].score == pytest.approx(1.0)
    assert blank.matches == []
    assert blank.source == SOURCE_FALLBACK


@pytest.mark.asyncio
async def test_query_dimension_mismatch_only_affects_that_query(temp_db, seed_business):
    projection = _projection(True)
    projection.store.dimension = 2
    _index(seed_business, "biz-1", [1.0, 0.0])
    engine = RetrievalEngine(projection)

    result = await engine.search([1.0, 0.0, 0.0], QueryFilters())

    assert result.source == SOURCE_FALLBACK
    assert [m.business_id for m in result.matches] == ["biz-1"]
    assert projection.state == ProjectionState.AVAILABLE
    projection.store.search.assert_not_called()


@pytest.mark.asyncio
async def test_mismatched_query_keeps_accelerated_path_for_later_queries(temp_db, seed_business):
    pytest.importorskip("faiss")
    projection = VectorProjectionSync()
    record = _index(seed_business, "biz-1", [1.0, 0.0])
    await projection.sync(record.id, record.embedding)
    engine = RetrievalEngine(projection)

    mismatched = await engine.search([1.0, 0.0, 0.0], QueryFilters())
    matching = await engine.search([1.0, 0.0], QueryFilters())

    assert mismatched.source == SOURCE_FALLBACK
    assert matching.source == SOURCE_ACCELERATED
    assert [m.business_id for m in matching.matches] == ["biz-1"]
    assert projection.state == ProjectionState.AVAILABLE


@pytest.mark.asyncio
async def test_storage_failure_on_accelerated_path_propagates(temp_db):
    projection = _projection(True)
    projection.store.dimension = 2
    engine = RetrievalEngine(projection)

    with patch.object(embedding_dao, "get_db", side_effect=sqlite3.OperationalError("database is locked")):
        with pytest.raises(StorageError) as exc_info:
            await engine.search([1.0, 0.0], QueryFilters())

    assert exc_info.value.operation == "find_projected_ids"
    assert projection.state == ProjectionState.AVAILABLE
    projection.store.search.assert_not_called()


@pytest.mark.asyncio
async def test_accelerated_path_applies_directory_filters(temp_db, seed_business, deleted_at):
    pytest.importorskip("faiss")
    projection = VectorProjectionSync()
    records = [
        _index(seed_business, "biz-a", [1.0, 0.0], category_ids=["cat-col"]),
        _index(seed_business, "biz-b", [0.9, 0.1], province_id="prov-stg", province_name="Santiago",
               city_id="city-stg", city_name="Santiago de los Caballeros",
               categories=["Farmacia"], category_ids=["cat-farm"]),
        _index(seed_business, "biz-c", [0.8, 0.2], city_id="city-bc", city_name="Boca Chica",
               category_ids=["cat-col"]),
        _index(seed_business, "biz-d", [1.0, 0.0], category_ids=["cat-col"]),
    ]
    for record in records:
        await projection.sync(record.id, record.embedding)
    seed_business("biz-d", category_ids=["cat-col"], deleted_at=deleted_at)
    engine = RetrievalEngine(projection)

    async def ids(**filters):
        result = await engine.search([1.0, 0.0], QueryFilters(**filters))
        assert result.source == SOURCE_ACCELERATED
        return sorted(m.business_id for m in result.matches)

    assert await ids() == ["biz-a", "biz-b", "biz-c"]
    assert await ids(category_id="cat-col") == ["biz-a", "biz-c"]
    assert await ids(category_id="cat-farm") == ["biz-b"]
    assert await ids(province_id="prov-stg") == ["biz-b"]
    assert await ids(province_id="prov-sd") == ["biz-a", "biz-c"]
    assert await ids(city_id="city-bc") == ["biz-c"]
    assert await ids(province_id="prov-sd", category_id="cat-farm") == []
