"""
Shared test fixtures: a temporary SQLite database per test and business seeding helpers.
"""

from datetime import datetime

import pytest

from semantic_index.core.business_repo import save_business
from semantic_index.core.db import init_db
from semantic_index.core.schema import BusinessGraph


def make_business(business_id: str = "biz-1", **overrides) -> BusinessGraph:
    """Verified, live business in Santo Domingo unless overridden."""
    fields = dict(
        id=business_id,
        organization_id="org-1",
        name=f"Colmado {business_id}",
        slug=f"colmado-{business_id}",
        description="Colmado de barrio con delivery",
        address="Calle El Conde 12",
        province_id="prov-sd",
        province_name="Santo Domingo",
        city_id="city-sd",
        city_name="Santo Domingo Este",
        categories=["Colmado"],
        features=["Delivery"],
        phone="809-555-0101",
        whatsapp="18095550101",
        latitude=18.47,
        longitude=-69.89,
        verified=True,
        deleted_at=None,
    )
    fields.update(overrides)
    return BusinessGraph(**fields)


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Fresh database with the projection table; remote model disabled."""
    db_path = tmp_path / "semantic_index.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.setenv("VECTOR_PROVIDER", "faiss")
    monkeypatch.setenv("AI_REMOTE_ENABLED", "false")
    init_db()
    return db_path


@pytest.fixture
def temp_db_without_projection(tmp_path, monkeypatch):
    """Fresh database where the projection table was never created."""
    db_path = tmp_path / "semantic_index.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.setenv("VECTOR_PROVIDER", "none")
    monkeypatch.setenv("AI_REMOTE_ENABLED", "false")
    init_db()
    return db_path


@pytest.fixture
def seed_business(temp_db):
    """Save a business graph and return it."""
    def _seed(business_id: str = "biz-1", category_ids=None, feature_ids=None, **overrides) -> BusinessGraph:
        business = make_business(business_id, **overrides)
        save_business(business, category_ids=category_ids, feature_ids=feature_ids)
        return business
    return _seed


@pytest.fixture
def deleted_at():
    return datetime(2025, 1, 1, 12, 0, 0)
