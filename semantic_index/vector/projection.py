"""
Vector projection sync - best-effort mirror of embedding vectors into the accelerated store.

Availability is a process-wide state cell: probed once, flipped to unavailable on the first
write failure, and only reset by an explicit re-probe.
"""

import asyncio
from enum import Enum
from typing import List, Optional

from ..util.logging import logger
from .faiss_store import FaissProjectionStore


class ProjectionState(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class VectorProjectionSync:
    """Owns the accelerated store and its availability state."""

    def __init__(self, store: Optional[FaissProjectionStore] = None):
        self.store = store if store is not None else FaissProjectionStore()
        self._state = ProjectionState.UNKNOWN
        self._probe_lock = asyncio.Lock()

    @property
    def state(self) -> ProjectionState:
        return self._state

    def _transition(self, new_state: ProjectionState, reason: str = ""):
        if new_state == self._state:
            return
        logger.log_projection_transition(self._state.value, new_state.value, reason)
        self._state = new_state

    def mark_unavailable(self, reason: str = ""):
        """Degrade for the rest of the process lifetime (until an explicit re-probe)."""
        self._transition(ProjectionState.UNAVAILABLE, reason)

    async def is_available(self) -> bool:
        if self._state != ProjectionState.UNKNOWN:
            return self._state == ProjectionState.AVAILABLE

        async with self._probe_lock:
            if self._state == ProjectionState.UNKNOWN:
                try:
                    available = await asyncio.to_thread(self.store.probe)
                except Exception as e:
                    logger.warning(f"Unable to detect vector projection ({e})")
                    self._transition(ProjectionState.UNAVAILABLE, str(e))
                else:
                    self._transition(
                        ProjectionState.AVAILABLE if available else ProjectionState.UNAVAILABLE,
                        "" if available else "projection table or FAISS missing",
                    )

        return self._state == ProjectionState.AVAILABLE

    async def reprobe(self) -> bool:
        """Operator hook: forget the cached state and probe again."""
        async with self._probe_lock:
            self._transition(ProjectionState.UNKNOWN, "re-probe requested")
        return await self.is_available()

    async def sync(self, record_id: int, vector: List[float]) -> None:
        if not await self.is_available():
            return

        try:
            await asyncio.to_thread(self.store.upsert, record_id, vector)
            logger.log_operation("projection.sync", "success", {"record_id": record_id, "dimension": len(vector)})
        except Exception as e:
            logger.warning(f"Unable to sync vector projection ({e})")
            self.mark_unavailable(str(e))

    async def delete(self, record_id: int) -> None:
        if not await self.is_available():
            return

        try:
            await asyncio.to_thread(self.store.delete, record_id)
        except Exception as e:
            logger.warning(f"Unable to delete vector projection ({e})")
            self.mark_unavailable(str(e))
