"""
Request and response models for the semantic index API.
Wire format is camelCase; Python attributes stay snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional

from ..core.events import OPERATIONS
from ..core.schema import QueryFilters


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchFiltersModel(CamelModel):
    organization_id: Optional[str] = None
    category_id: Optional[str] = None
    province_id: Optional[str] = None
    city_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1, le=25)

    def to_filters(self) -> QueryFilters:
        return QueryFilters(
            organization_id=self.organization_id,
            category_id=self.category_id,
            province_id=self.province_id,
            city_id=self.city_id,
            limit=self.limit,
        )


class SemanticSearchRequest(SearchFiltersModel):
    query: str = Field(max_length=1200)


class MatchResponse(CamelModel):
    business_id: str
    organization_id: str
    name: str
    slug: str
    description: str
    address: str
    province_id: str
    city_id: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    score: float


class SemanticSearchResponse(CamelModel):
    data: List[MatchResponse]
    source: str


class AskConciergeRequest(SearchFiltersModel):
    query: str = Field(max_length=1200)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class ConciergeMatchResponse(CamelModel):
    id: str
    name: str
    slug: str
    address: str
    score: float
    whatsapp: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    link: str


class ConciergeMetaResponse(CamelModel):
    source: str
    query: str
    provider_name: str


class ConciergeResponse(CamelModel):
    answer: str
    data: List[ConciergeMatchResponse]
    meta: ConciergeMetaResponse


class ReindexResponse(CamelModel):
    business_id: str
    status: str  # indexed|removed


class BusinessChangedRequest(CamelModel):
    business_id: str
    slug: Optional[str] = None
    operation: str

    @field_validator('business_id')
    @classmethod
    def business_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('businessId cannot be empty')
        return v.strip()

    @field_validator('operation')
    @classmethod
    def operation_must_be_valid(cls, v):
        if v not in OPERATIONS:
            raise ValueError(f'operation must be one of: {list(OPERATIONS)}')
        return v


class EventAcceptedResponse(CamelModel):
    accepted: bool
    business_id: str
    operation: str


class ProjectionStatusResponse(CamelModel):
    state: str
    available: bool


class HealthResponse(CamelModel):
    status: str
    version: str
    db_health: bool
    provider_name: str
    remote_enabled: bool
    embedding_dimensions: int
    projection_state: str
    indexed_count: int
    dependency_calls: Dict[str, Dict[str, int]]
