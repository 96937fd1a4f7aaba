"""
Business repository - reads the business graph the indexer needs and stamps indexing time.
Business CRUD itself belongs to the directory service; save_business exists for seeding.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import get_db
from .errors import StorageError
from .schema import BusinessGraph


def get_business_graph(business_id: str) -> Optional[BusinessGraph]:
    """Load a business with province, city, category and feature names."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT b.id, b.organization_id, b.name, b.slug, b.description, b.address,
                       b.province_id, p.name, b.city_id, c.name,
                       b.phone, b.whatsapp, b.latitude, b.longitude, b.verified, b.deleted_at
                FROM businesses b
                INNER JOIN provinces p ON p.id = b.province_id
                LEFT JOIN cities c ON c.id = b.city_id
                WHERE b.id = ?
            ''', (business_id,))
            row = cursor.fetchone()
            if not row:
                return None

            # Names are ordered so the document stays stable across reads
            cursor.execute('''
                SELECT cat.name FROM business_categories bc
                INNER JOIN categories cat ON cat.id = bc.category_id
                WHERE bc.business_id = ?
                ORDER BY cat.name, cat.id
            ''', (business_id,))
            categories = [r[0] for r in cursor.fetchall()]

            cursor.execute('''
                SELECT f.name FROM business_features bf
                INNER JOIN features f ON f.id = bf.feature_id
                WHERE bf.business_id = ?
                ORDER BY f.name, f.id
            ''', (business_id,))
            features = [r[0] for r in cursor.fetchall()]
    except sqlite3.Error as e:
        raise StorageError("get_business_graph", e) from e

    (id_, organization_id, name, slug, description, address, province_id, province_name,
     city_id, city_name, phone, whatsapp, latitude, longitude, verified, deleted_at) = row

    return BusinessGraph(
        id=id_,
        organization_id=organization_id,
        name=name,
        slug=slug,
        description=description,
        address=address,
        province_id=province_id,
        province_name=province_name,
        city_id=city_id,
        city_name=city_name,
        categories=categories,
        features=features,
        phone=phone,
        whatsapp=whatsapp,
        latitude=latitude,
        longitude=longitude,
        verified=bool(verified),
        deleted_at=deleted_at,
    )


def business_exists(business_id: str) -> bool:
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM businesses WHERE id = ?", (business_id,))
            return cursor.fetchone() is not None
    except sqlite3.Error as e:
        raise StorageError("business_exists", e) from e


def mark_indexed(business_id: str, indexed_at: Optional[datetime] = None) -> None:
    """Stamp the business with its last indexing time."""
    indexed_at = indexed_at or datetime.now()
    try:
        with get_db() as conn:
            conn.execute(
                "UPDATE businesses SET ai_last_embedded_at = ? WHERE id = ?",
                (indexed_at.isoformat(), business_id)
            )
            conn.commit()
    except sqlite3.Error as e:
        raise StorageError("mark_indexed", e) from e


def list_business_ids(organization_id: Optional[str] = None) -> List[str]:
    """All business ids, optionally scoped to one organization."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            if organization_id:
                cursor.execute(
                    "SELECT id FROM businesses WHERE organization_id = ? ORDER BY created_at, id",
                    (organization_id,)
                )
            else:
                cursor.execute("SELECT id FROM businesses ORDER BY created_at, id")
            return [row[0] for row in cursor.fetchall()]
    except sqlite3.Error as e:
        raise StorageError("list_business_ids", e) from e


def save_business(business: BusinessGraph,
                  category_ids: Optional[List[str]] = None,
                  feature_ids: Optional[List[str]] = None) -> None:
    """Insert or replace a business with its province, city, categories and features.

    Category and feature rows are keyed by the given ids, or by their names when no ids are passed.
    """
    category_ids = category_ids or list(business.categories)
    feature_ids = feature_ids or list(business.features)
    deleted_at = business.deleted_at.isoformat() if isinstance(business.deleted_at, datetime) else business.deleted_at

    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO provinces (id, name, slug) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, slug = excluded.slug",
                (business.province_id, business.province_name, business.province_name.lower().replace(" ", "-"))
            )
            if business.city_id:
                cursor.execute(
                    "INSERT INTO cities (id, province_id, name) VALUES (?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET province_id = excluded.province_id, name = excluded.name",
                    (business.city_id, business.province_id, business.city_name or business.city_id)
                )

            cursor.execute('''
                INSERT INTO businesses (id, organization_id, name, slug, description, address,
                                        province_id, city_id, phone, whatsapp, latitude, longitude,
                                        verified, deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    organization_id = excluded.organization_id,
                    name = excluded.name,
                    slug = excluded.slug,
                    description = excluded.description,
                    address = excluded.address,
                    province_id = excluded.province_id,
                    city_id = excluded.city_id,
                    phone = excluded.phone,
                    whatsapp = excluded.whatsapp,
                    latitude = excluded.latitude,
                    longitude = excluded.longitude,
                    verified = excluded.verified,
                    deleted_at = excluded.deleted_at,
                    updated_at = CURRENT_TIMESTAMP
            ''', (business.id, business.organization_id, business.name, business.slug,
                  business.description, business.address, business.province_id, business.city_id,
                  business.phone, business.whatsapp, business.latitude, business.longitude,
                  business.verified, deleted_at))

            cursor.execute("DELETE FROM business_categories WHERE business_id = ?", (business.id,))
            for category_id, category_name in zip(category_ids, business.categories):
                cursor.execute(
                    "INSERT INTO categories (id, name, slug) VALUES (?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET name = excluded.name, slug = excluded.slug",
                    (category_id, category_name, category_name.lower().replace(" ", "-"))
                )
                cursor.execute(
                    "INSERT INTO business_categories (business_id, category_id) VALUES (?, ?)",
                    (business.id, category_id)
                )

            cursor.execute("DELETE FROM business_features WHERE business_id = ?", (business.id,))
            for feature_id, feature_name in zip(feature_ids, business.features):
                cursor.execute(
                    "INSERT INTO features (id, name) VALUES (?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                    (feature_id, feature_name)
                )
                cursor.execute(
                    "INSERT INTO business_features (business_id, feature_id) VALUES (?, ?)",
                    (business.id, feature_id)
                )

            conn.commit()
    except sqlite3.Error as e:
        raise StorageError("save_business", e) from e
