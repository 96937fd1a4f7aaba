"""
SQLite foundation - canonical truth for businesses and their embedding records.
The projection table only exists when the accelerated vector backend is enabled.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator
from .config import get_db_path, ensure_db_directory, are_vector_projections_enabled, PROJECTION_TABLE


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(get_db_path())
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    ensure_db_directory()
    with get_db() as conn:
        cursor = conn.cursor()

        # Directory lookups
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS provinces (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                slug TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS cities (
                id TEXT PRIMARY KEY,
                province_id TEXT NOT NULL REFERENCES provinces(id),
                name TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                slug TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS features (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS businesses (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                name TEXT NOT NULL,
                slug TEXT NOT NULL UNIQUE,
                description TEXT NOT NULL DEFAULT '',
                address TEXT NOT NULL DEFAULT '',
                province_id TEXT NOT NULL REFERENCES provinces(id),
                city_id TEXT REFERENCES cities(id),
                phone TEXT,
                whatsapp TEXT,
                latitude REAL,
                longitude REAL,
                verified BOOLEAN NOT NULL DEFAULT FALSE,
                deleted_at TIMESTAMP,
                ai_last_embedded_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS business_categories (
                business_id TEXT NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
                category_id TEXT NOT NULL REFERENCES categories(id),
                PRIMARY KEY (business_id, category_id)
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS business_features (
                business_id TEXT NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
                feature_id TEXT NOT NULL REFERENCES features(id),
                PRIMARY KEY (business_id, feature_id)
            )
        ''')

        # One embedding record per business
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS business_embeddings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                business_id TEXT NOT NULL UNIQUE,
                organization_id TEXT NOT NULL,
                content TEXT NOT NULL,
                embedding TEXT NOT NULL,  -- JSON array of floats
                dimensions INTEGER NOT NULL,
                provider TEXT NOT NULL,
                source_checksum TEXT,
                status TEXT NOT NULL DEFAULT 'INDEXED',
                error_message TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_businesses_scope ON businesses(verified, deleted_at, organization_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_business_embeddings_status ON business_embeddings(status, organization_id)')

        if are_vector_projections_enabled():
            init_projection_table(cursor)

        conn.commit()


def init_projection_table(cursor: sqlite3.Cursor):
    """Create the accelerated projection table (float32 blobs keyed by embedding record id)."""
    cursor.execute(f'''
        CREATE TABLE IF NOT EXISTS {PROJECTION_TABLE} (
            business_embedding_id INTEGER PRIMARY KEY
                REFERENCES business_embeddings(id) ON DELETE CASCADE,
            embedding BLOB NOT NULL,
            dimensions INTEGER NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')


def table_exists(name: str) -> bool:
    """Existence probe for a named table."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (name,))
        return cursor.fetchone() is not None


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            required_tables = ['businesses', 'business_embeddings']
            return all(table in table_names for table in required_tables)
    except Exception:
        return False
