"""
Indexer - keeps one embedding record per eligible business.

Document -> checksum gate -> provider -> embedding store -> vector projection.
Upsert and remove for the same business are serialized through a keyed lock, so
lifecycle events for one business apply in the order they were published.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Optional

from ..util.logging import logger
from . import business_repo, embedding_dao
from .documents import build_document, compute_checksum
from .events import (
    BusinessChanged,
    BusinessCreated,
    BusinessDeleted,
    BusinessUpdated,
    BusinessVerified,
    DomainEventBus,
)
from .schema import EmbeddingRecord, EmbeddingStatus


class KeyedLocks:
    """asyncio locks created on demand per key and dropped when no task holds or awaits them."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class Indexer:
    """Orchestrates indexing of a single business."""

    def __init__(self, provider, projection):
        self.provider = provider
        self.projection = projection
        self._locks = KeyedLocks()

    async def upsert(self, business_id: str) -> Optional[EmbeddingRecord]:
        """Index a business; returns the current record, or None when it was removed."""
        async with self._locks.hold(business_id):
            return await self._upsert(business_id)

    async def remove(self, business_id: str) -> bool:
        """Drop a business from the index; True when a record existed."""
        async with self._locks.hold(business_id):
            return await self._remove(business_id)

    async def _upsert(self, business_id: str) -> Optional[EmbeddingRecord]:
        business = await asyncio.to_thread(business_repo.get_business_graph, business_id)
        if business is None or not business.is_indexable:
            await self._remove(business_id)
            return None

        document = build_document(business)
        checksum = compute_checksum(document)
        existing = await asyncio.to_thread(embedding_dao.get_embedding, business_id)

        if existing and existing.status == EmbeddingStatus.INDEXED and existing.source_checksum == checksum:
            logger.log_index_operation("upsert", business_id, {"checksum": checksum[:12]}, status="skipped")
            return existing

        vector = await self.provider.create_embedding(document)
        record = await asyncio.to_thread(
            embedding_dao.upsert_embedding,
            business_id,
            business.organization_id,
            document,
            vector,
            self.provider.provider_name(),
            checksum,
        )
        await asyncio.to_thread(business_repo.mark_indexed, business_id, datetime.now())
        await self.projection.sync(record.id, vector)

        logger.log_index_operation("upsert", business_id, {
            "record_id": record.id,
            "provider": record.provider_name,
            "dimension": record.dimensions,
            "operation": "update" if existing else "create",
        })
        return record

    async def _remove(self, business_id: str) -> bool:
        existing = await asyncio.to_thread(embedding_dao.get_embedding, business_id)
        if existing is None:
            return False

        # projection row goes first; no-op while the accelerated store is unavailable
        await self.projection.delete(existing.id)
        await asyncio.to_thread(embedding_dao.delete_embedding, business_id)
        logger.log_index_operation("remove", business_id, {"record_id": existing.id})
        return True

    async def handle_event(self, event: BusinessChanged) -> None:
        """Apply one lifecycle event."""
        match event:
            case BusinessDeleted(business_id=business_id):
                await self.remove(business_id)
            case BusinessCreated(business_id=business_id) | BusinessUpdated(business_id=business_id) | BusinessVerified(business_id=business_id):
                await self.upsert(business_id)
            case _:
                raise TypeError(f"Unsupported business event: {event!r}")


class IndexingListener:
    """Keeps embeddings synchronized with business lifecycle events."""

    def __init__(self, bus: DomainEventBus, indexer: Indexer):
        self.bus = bus
        self.indexer = indexer

    def register(self) -> None:
        self.bus.on_business_changed(self._on_business_changed)

    async def _on_business_changed(self, event: BusinessChanged) -> None:
        try:
            await self.indexer.handle_event(event)
        except Exception as e:
            logger.log_index_operation(
                type(event).__name__, event.business_id, {"error": str(e)}, status="failed"
            )
