"""
FAISS-backed vector projection - accelerated, non-canonical mirror of embedding records.
Rows persist in the projection table; the in-process FAISS index is rebuilt from them on probe.
"""

import threading
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..core.config import PROJECTION_TABLE
from ..core.db import get_db, table_exists
from ..util.logging import logger


def _normalized(vector) -> Optional[np.ndarray]:
    array = np.asarray(vector, dtype=np.float32)
    norm = np.linalg.norm(array)
    if norm == 0:  # zero vectors cannot be ranked by inner product
        return None
    return array / norm


class FaissProjectionStore:
    """Inner-product FAISS index keyed by embedding record id.

    Vectors are L2-normalized before they enter the index, so the inner product
    returned by a search is the cosine similarity.
    """

    def __init__(self, table: str = PROJECTION_TABLE):
        self.table = table
        self.faiss = None
        self.index = None
        self.dimension: Optional[int] = None
        self._lock = threading.Lock()

    def probe(self) -> bool:
        """Check that FAISS imports and the projection table exists, then load the index."""
        try:
            import faiss
        except ImportError:
            logger.warning("FAISS not installed; accelerated vector search disabled")
            return False
        self.faiss = faiss

        if not table_exists(self.table):
            return False

        self._load()
        return True

    def _new_index(self, dimension: int):
        self.dimension = dimension
        self.index = self.faiss.IndexIDMap2(self.faiss.IndexFlatIP(dimension))

    def _load(self):
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT business_embedding_id, embedding, dimensions FROM {self.table} ORDER BY business_embedding_id")
            rows = cursor.fetchall()

        with self._lock:
            self.index = None
            self.dimension = None
            ids, vectors, skipped = [], [], 0
            for record_id, blob, dimensions in rows:
                if self.dimension is None:
                    self._new_index(dimensions)
                if dimensions != self.dimension:
                    skipped += 1
                    continue
                vector = _normalized(np.frombuffer(blob, dtype=np.float32))
                if vector is None:
                    continue
                ids.append(record_id)
                vectors.append(vector)

            if vectors:
                self.index.add_with_ids(np.vstack(vectors).astype(np.float32), np.asarray(ids, dtype=np.int64))
            if skipped:
                logger.warning(f"Skipped {skipped} projection rows with dimension != {self.dimension}")

        logger.log_operation("projection.load", "success", {"table": self.table, "vectors": len(ids), "dimension": self.dimension})

    @property
    def ntotal(self) -> int:
        return 0 if self.index is None else int(self.index.ntotal)

    def upsert(self, record_id: int, vector: List[float]) -> None:
        """Write the projection row and replace the vector in the index."""
        if self.faiss is None:
            raise RuntimeError("FAISS projection store used before a successful probe")

        normalized = _normalized(vector)
        with self._lock:
            if self.index is None:
                self._new_index(len(vector))
            if len(vector) != self.dimension:
                raise ValueError(f"Vector dimension {len(vector)} does not match index dimension {self.dimension}")

            with get_db() as conn:
                conn.execute(f'''
                    INSERT INTO {self.table} (business_embedding_id, embedding, dimensions, updated_at)
                    VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(business_embedding_id) DO UPDATE SET
                        embedding = excluded.embedding,
                        dimensions = excluded.dimensions,
                        updated_at = CURRENT_TIMESTAMP
                ''', (record_id, np.asarray(vector, dtype=np.float32).tobytes(), len(vector)))
                conn.commit()

            ids = np.asarray([record_id], dtype=np.int64)
            self.index.remove_ids(ids)
            if normalized is not None:
                self.index.add_with_ids(normalized.reshape(1, -1), ids)

    def delete(self, record_id: int) -> None:
        with self._lock:
            with get_db() as conn:
                conn.execute(f"DELETE FROM {self.table} WHERE business_embedding_id = ?", (record_id,))
                conn.commit()
            if self.index is not None:
                self.index.remove_ids(np.asarray([record_id], dtype=np.int64))

    def search(self, query_vector: List[float], allowed_ids: Iterable[int], top_k: int) -> List[Tuple[int, float]]:
        """Rank allowed record ids by cosine similarity to the query, best first."""
        allowed = set(allowed_ids)
        if not allowed or top_k < 1:
            return []

        with self._lock:
            if self.index is None or self.index.ntotal == 0:
                return []
            if len(query_vector) != self.dimension:
                raise ValueError(f"Query dimension {len(query_vector)} does not match index dimension {self.dimension}")

            query = _normalized(query_vector)
            if query is None:
                return []

            # Flat index: a full ranking costs the same as a top-k one
            scores, indices = self.index.search(query.reshape(1, -1), int(self.index.ntotal))

        results = []
        for record_id, score in zip(indices[0], scores[0]):
            if record_id < 0 or int(record_id) not in allowed:
                continue
            results.append((int(record_id), float(score)))
            if len(results) >= top_k:
                break
        return results
