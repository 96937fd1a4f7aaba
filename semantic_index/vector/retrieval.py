"""
Retrieval engine - ranked nearest-neighbor search over indexed businesses.

Two interchangeable backends share one contract: the accelerated FAISS projection,
and an exhaustive in-process cosine ranking over a bounded candidate set. The
projection's availability probe picks the backend per query.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import List, Optional

from ..core import embedding_dao
from ..core.config import SEARCH_CANDIDATE_LIMIT
from ..core.errors import BackendUnavailableError, QueryDimensionError
from ..core.schema import Match, QueryFilters, SearchResult
from ..util.logging import logger
from .embeddings import EmbeddingProvider
from .projection import VectorProjectionSync
from .similarity import cosine_similarity

SOURCE_ACCELERATED = "accelerated"
SOURCE_FALLBACK = "fallback"


class RetrievalBackend(ABC):
    """Strategy interface for ranked vector search."""

    source: str

    @abstractmethod
    async def search(self, query_vector: List[float], filters: QueryFilters) -> List[Match]:
        """Return matches ranked best first, at most ``filters.effective_limit()``."""
        pass


class AcceleratedBackend(RetrievalBackend):
    """Distance query against the FAISS projection, restricted to eligible businesses."""

    source = SOURCE_ACCELERATED

    def __init__(self, projection: VectorProjectionSync):
        self.projection = projection

    def _search_sync(self, query_vector: List[float], filters: QueryFilters) -> List[Match]:
        limit = filters.effective_limit()
        dimension = self.projection.store.dimension
        if dimension is not None and len(query_vector) != dimension:
            raise QueryDimensionError(f"Query dimension {len(query_vector)} does not match index dimension {dimension}")

        # StorageError from the relational read propagates as is
        allowed_ids = embedding_dao.find_projected_ids(filters)
        try:
            ranked = self.projection.store.search(query_vector, allowed_ids, limit)
        except Exception as e:
            raise BackendUnavailableError(str(e)) from e

        matches_by_id = embedding_dao.get_matches_by_embedding_ids([record_id for record_id, _ in ranked])
        results = []
        for record_id, similarity in ranked:
            match = matches_by_id.get(record_id)
            if match is None:
                continue
            # cosine distance is 1 - similarity, so score = 1 - distance
            distance = 1.0 - similarity
            results.append(replace(match, score=1.0 - distance))
        return results

    async def search(self, query_vector: List[float], filters: QueryFilters) -> List[Match]:
        return await asyncio.to_thread(self._search_sync, query_vector, filters)


class FallbackBackend(RetrievalBackend):
    """Exhaustive cosine ranking over up to ``candidate_limit`` INDEXED records."""

    source = SOURCE_FALLBACK

    def __init__(self, candidate_limit: int = SEARCH_CANDIDATE_LIMIT):
        self.candidate_limit = candidate_limit

    async def search(self, query_vector: List[float], filters: QueryFilters) -> List[Match]:
        candidates = await asyncio.to_thread(embedding_dao.find_candidates, filters, self.candidate_limit)
        return rank_candidates(query_vector, candidates, filters.effective_limit())


def rank_candidates(query_vector: List[float], candidates, limit: int) -> List[Match]:
    scored = []
    for match, vector in candidates:
        score = cosine_similarity(query_vector, vector)
        if math.isfinite(score):
            scored.append(replace(match, score=score))

    scored.sort(key=lambda entry: entry.score, reverse=True)
    return scored[:limit]


class RetrievalEngine:
    """Selects a backend per query and absorbs accelerated-backend failures."""

    def __init__(self,
                 projection: VectorProjectionSync,
                 provider: Optional[EmbeddingProvider] = None,
                 accelerated: Optional[RetrievalBackend] = None,
                 fallback: Optional[RetrievalBackend] = None):
        self.projection = projection
        self.provider = provider
        self.accelerated = accelerated or AcceleratedBackend(projection)
        self.fallback = fallback or FallbackBackend()

    async def _select_backend(self) -> RetrievalBackend:
        if await self.projection.is_available():
            return self.accelerated
        return self.fallback

    async def search(self, query_vector: List[float], filters: Optional[QueryFilters] = None) -> SearchResult:
        filters = filters or QueryFilters()
        if len(query_vector) == 0:
            return SearchResult(matches=[], source=SOURCE_FALLBACK)

        backend = await self._select_backend()
        try:
            matches = await backend.search(query_vector, filters)
        except QueryDimensionError as e:
            logger.warning(f"Query vector cannot use the accelerated index; ranking in process ({e})")
            backend = self.fallback
            matches = await backend.search(query_vector, filters)
        except BackendUnavailableError as e:
            if backend is self.fallback:
                raise
            logger.warning(f"Accelerated search failed; falling back to in-process ranking ({e})")
            self.projection.mark_unavailable(str(e))
            backend = self.fallback
            matches = await backend.search(query_vector, filters)

        logger.log_search(backend.source, len(matches), filters.effective_limit())
        return SearchResult(matches=matches, source=backend.source)

    async def search_by_text(self, text: str, filters: Optional[QueryFilters] = None) -> SearchResult:
        """Embed free text with the provider, then search; blank text yields an empty result."""
        if not text or not text.strip():
            return SearchResult(matches=[], source=SOURCE_FALLBACK)
        if self.provider is None:
            raise RuntimeError("RetrievalEngine.search_by_text requires an embedding provider")

        query_vector = await self.provider.create_embedding(text)
        return await self.search(query_vector, filters)
