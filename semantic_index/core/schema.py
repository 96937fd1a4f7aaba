"""
Typed records shared by the indexer, the embedding store and retrieval.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .config import DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT


class EmbeddingStatus(str, Enum):
    ABSENT = "ABSENT"  # no row
    INDEXED = "INDEXED"


@dataclass
class BusinessGraph:
    """A business with the names of its province, city, categories and features."""
    id: str
    organization_id: str
    name: str
    slug: str
    description: str
    address: str
    province_id: str
    province_name: str
    city_id: Optional[str] = None
    city_name: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    verified: bool = False
    deleted_at: Optional[datetime] = None

    @property
    def is_indexable(self) -> bool:
        return self.verified and self.deleted_at is None


@dataclass
class EmbeddingRecord:
    id: int
    business_id: str
    organization_id: str
    content: str
    embedding: List[float]
    dimensions: int
    provider_name: str
    source_checksum: Optional[str]
    status: EmbeddingStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class QueryFilters:
    organization_id: Optional[str] = None
    category_id: Optional[str] = None
    province_id: Optional[str] = None
    city_id: Optional[str] = None
    limit: Optional[int] = None

    def effective_limit(self) -> int:
        """Requested limit clamped to [1, 25]; absent means the default of 8."""
        limit = DEFAULT_SEARCH_LIMIT if self.limit is None else int(self.limit)
        return min(max(limit, 1), MAX_SEARCH_LIMIT)


@dataclass
class Match:
    business_id: str
    organization_id: str
    name: str
    slug: str
    description: str
    address: str
    province_id: str
    city_id: Optional[str]
    phone: Optional[str]
    whatsapp: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    score: float


@dataclass
class SearchResult:
    matches: List[Match]
    source: str  # accelerated|fallback
