"""
Embedding store - one embedding record per business, keyed by business id.
Canonical source of truth for vectors; the accelerated projection only mirrors it.
"""

import json
import math
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from .config import PROJECTION_TABLE, SEARCH_CANDIDATE_LIMIT
from .db import get_db
from .errors import StorageError
from .schema import EmbeddingRecord, EmbeddingStatus, Match, QueryFilters

_MATCH_COLUMNS = '''
    b.id, b.organization_id, b.name, b.slug, b.description, b.address,
    b.province_id, b.city_id, b.phone, b.whatsapp, b.latitude, b.longitude
'''


def _row_to_record(row) -> EmbeddingRecord:
    (id_, business_id, organization_id, content, embedding, dimensions, provider,
     source_checksum, status, error_message, created_at, updated_at) = row
    return EmbeddingRecord(
        id=id_,
        business_id=business_id,
        organization_id=organization_id,
        content=content,
        embedding=read_embedding_vector(embedding),
        dimensions=dimensions,
        provider_name=provider,
        source_checksum=source_checksum,
        status=EmbeddingStatus(status),
        error_message=error_message,
        created_at=created_at,
        updated_at=updated_at,
    )


def _row_to_match(row, score: float = 0.0) -> Match:
    (business_id, organization_id, name, slug, description, address,
     province_id, city_id, phone, whatsapp, latitude, longitude) = row
    return Match(
        business_id=business_id,
        organization_id=organization_id,
        name=name,
        slug=slug,
        description=description,
        address=address,
        province_id=province_id,
        city_id=city_id,
        phone=phone,
        whatsapp=whatsapp,
        latitude=latitude,
        longitude=longitude,
        score=score,
    )


def read_embedding_vector(raw: Any) -> List[float]:
    """Decode a stored JSON vector, dropping entries that are not finite numbers."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []

    vector = []
    for entry in raw:
        try:
            value = float(entry)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value):
            vector.append(value)
    return vector


def business_filter_clause(filters: QueryFilters) -> Tuple[str, List[Any]]:
    """WHERE fragment restricting to verified, live businesses matching the filters."""
    sql = " AND b.verified = 1 AND b.deleted_at IS NULL"
    params: List[Any] = []

    if filters.organization_id:
        sql += " AND b.organization_id = ?"
        params.append(filters.organization_id)

    if filters.province_id:
        sql += " AND b.province_id = ?"
        params.append(filters.province_id)

    if filters.city_id:
        sql += " AND b.city_id = ?"
        params.append(filters.city_id)

    if filters.category_id:
        sql += '''
            AND EXISTS (
                SELECT 1 FROM business_categories bc
                WHERE bc.business_id = b.id AND bc.category_id = ?
            )
        '''
        params.append(filters.category_id)

    return sql, params


def get_embedding(business_id: str) -> Optional[EmbeddingRecord]:
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT id, business_id, organization_id, content, embedding, dimensions, provider,
                       source_checksum, status, error_message, created_at, updated_at
                FROM business_embeddings WHERE business_id = ?
            ''', (business_id,))
            row = cursor.fetchone()
    except sqlite3.Error as e:
        raise StorageError("get_embedding", e) from e

    return _row_to_record(row) if row else None


def upsert_embedding(business_id: str,
                     organization_id: str,
                     content: str,
                     vector: List[float],
                     provider_name: str,
                     source_checksum: str) -> EmbeddingRecord:
    """Create or replace the record for a business with status INDEXED."""
    dimensions = len(vector)
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO business_embeddings (business_id, organization_id, content, embedding,
                                                 dimensions, provider, source_checksum, status, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL)
                ON CONFLICT(business_id) DO UPDATE SET
                    organization_id = excluded.organization_id,
                    content = excluded.content,
                    embedding = excluded.embedding,
                    dimensions = excluded.dimensions,
                    provider = excluded.provider,
                    source_checksum = excluded.source_checksum,
                    status = excluded.status,
                    error_message = NULL,
                    updated_at = CURRENT_TIMESTAMP
            ''', (business_id, organization_id, content, json.dumps(vector), dimensions,
                  provider_name, source_checksum, EmbeddingStatus.INDEXED.value))
            conn.commit()
    except sqlite3.Error as e:
        raise StorageError("upsert_embedding", e) from e

    record = get_embedding(business_id)
    if record is None:
        raise StorageError("upsert_embedding", LookupError(f"record for business {business_id} missing after write"))
    return record


def delete_embedding(business_id: str) -> bool:
    """Delete the record for a business; False when there was none."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM business_embeddings WHERE business_id = ?", (business_id,))
            conn.commit()
            return cursor.rowcount > 0
    except sqlite3.Error as e:
        raise StorageError("delete_embedding", e) from e


def find_candidates(filters: QueryFilters, limit: int = SEARCH_CANDIDATE_LIMIT) -> List[Tuple[Match, List[float]]]:
    """Up to ``limit`` INDEXED records whose business matches the filters."""
    clause, params = business_filter_clause(filters)
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                SELECT {_MATCH_COLUMNS}, be.embedding
                FROM business_embeddings be
                INNER JOIN businesses b ON b.id = be.business_id
                WHERE be.status = ? {clause}
                ORDER BY be.id
                LIMIT ?
            ''', [EmbeddingStatus.INDEXED.value, *params, limit])
            rows = cursor.fetchall()
    except sqlite3.Error as e:
        raise StorageError("find_candidates", e) from e

    return [(_row_to_match(row[:-1]), read_embedding_vector(row[-1])) for row in rows]


def find_projected_ids(filters: QueryFilters) -> List[int]:
    """Embedding record ids that have a projection row and match the filters."""
    clause, params = business_filter_clause(filters)
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                SELECT be.id
                FROM {PROJECTION_TABLE} bev
                INNER JOIN business_embeddings be ON be.id = bev.business_embedding_id
                INNER JOIN businesses b ON b.id = be.business_id
                WHERE 1 = 1 {clause}
            ''', params)
            return [row[0] for row in cursor.fetchall()]
    except sqlite3.Error as e:
        raise StorageError("find_projected_ids", e) from e


def get_matches_by_embedding_ids(embedding_ids: List[int]) -> Dict[int, Match]:
    """Business display fields keyed by embedding record id."""
    if not embedding_ids:
        return {}
    placeholders = ", ".join("?" for _ in embedding_ids)
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                SELECT be.id, {_MATCH_COLUMNS}
                FROM business_embeddings be
                INNER JOIN businesses b ON b.id = be.business_id
                WHERE be.id IN ({placeholders})
            ''', list(embedding_ids))
            rows = cursor.fetchall()
    except sqlite3.Error as e:
        raise StorageError("get_matches_by_embedding_ids", e) from e

    return {row[0]: _row_to_match(row[1:]) for row in rows}


def count_indexed() -> int:
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM business_embeddings WHERE status = ?",
                (EmbeddingStatus.INDEXED.value,)
            )
            return cursor.fetchone()[0]
    except sqlite3.Error as e:
        raise StorageError("count_indexed", e) from e


def clear_checksums(organization_id: Optional[str] = None) -> int:
    """Forget stored checksums so the next upsert re-embeds; returns affected rows."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            if organization_id:
                cursor.execute(
                    "UPDATE business_embeddings SET source_checksum = NULL WHERE organization_id = ?",
                    (organization_id,)
                )
            else:
                cursor.execute("UPDATE business_embeddings SET source_checksum = NULL")
            conn.commit()
            return cursor.rowcount
    except sqlite3.Error as e:
        raise StorageError("clear_checksums", e) from e
