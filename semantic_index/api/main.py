"""
Semantic index HTTP API.
Authentication and authorization are handled upstream; these routes only validate shape.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .schemas import (
    AskConciergeRequest,
    BusinessChangedRequest,
    ConciergeResponse,
    EventAcceptedResponse,
    HealthResponse,
    ProjectionStatusResponse,
    ReindexResponse,
    SemanticSearchRequest,
    SemanticSearchResponse,
)
from ..agents.concierge import ConciergeService
from ..core import business_repo, embedding_dao
from ..core.config import VERSION, debug_enabled, get_public_web_url, validate_config
from ..core.db import health_check, init_db
from ..core.errors import InvalidQueryError, StorageError
from ..core.events import DomainEventBus, business_changed
from ..core.indexer import Indexer, IndexingListener
from ..core.telemetry import telemetry
from ..util.logging import logger
from ..vector.embeddings import EmbeddingProvider
from ..vector.projection import VectorProjectionSync
from ..vector.retrieval import RetrievalEngine


@dataclass
class Services:
    provider: EmbeddingProvider
    projection: VectorProjectionSync
    indexer: Indexer
    retrieval: RetrievalEngine
    concierge: ConciergeService
    bus: DomainEventBus


def build_services() -> Services:
    """Wire the semantic index components together."""
    provider = EmbeddingProvider()
    projection = VectorProjectionSync()
    indexer = Indexer(provider, projection)
    retrieval = RetrievalEngine(projection, provider)
    concierge = ConciergeService(provider, retrieval)
    bus = DomainEventBus()
    IndexingListener(bus, indexer).register()
    return Services(provider, projection, indexer, retrieval, concierge, bus)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    for issue in validate_config():
        logger.warning(f"Configuration issue: {issue}")

    if not hasattr(app.state, "services"):
        app.state.services = build_services()
    yield
    await app.state.services.bus.drain()


app = FastAPI(
    title="Business Semantic Index API",
    version=VERSION,
    description="Semantic indexing, retrieval and concierge answers for the business directory",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

# Directory web app calls these routes from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_public_web_url()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services(request: Request) -> Services:
    return request.app.state.services


@app.get("/health", response_model=HealthResponse)
async def health_check_endpoint(services: Services = Depends(get_services)):
    """Check system health."""
    db_health = await asyncio.to_thread(health_check)
    indexed_count = await asyncio.to_thread(embedding_dao.count_indexed) if db_health else 0

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        provider_name=services.provider.provider_name(),
        remote_enabled=services.provider.is_remote_enabled(),
        embedding_dimensions=services.provider.dimensions(),
        projection_state=services.projection.state.value,
        indexed_count=indexed_count,
        dependency_calls=telemetry.snapshot(),
    )


@app.post("/ai/search", response_model=SemanticSearchResponse)
async def semantic_search_endpoint(req: SemanticSearchRequest, services: Services = Depends(get_services)):
    result = await services.retrieval.search_by_text(req.query, req.to_filters())
    return SemanticSearchResponse(
        data=[asdict(match) for match in result.matches],
        source=result.source,
    )


@app.post("/ai/concierge/query", response_model=ConciergeResponse)
async def ask_concierge_endpoint(req: AskConciergeRequest, services: Services = Depends(get_services)):
    try:
        result = await services.concierge.ask(req.query, req.to_filters())
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ConciergeResponse(
        answer=result.answer,
        data=[asdict(match) for match in result.matches],
        meta=result.meta,
    )


@app.post("/ai/businesses/{business_id}/reindex", response_model=ReindexResponse)
async def reindex_business_endpoint(business_id: str, services: Services = Depends(get_services)):
    if not await asyncio.to_thread(business_repo.business_exists, business_id):
        raise HTTPException(status_code=404, detail="Business not found")

    record = await services.indexer.upsert(business_id)
    return ReindexResponse(
        business_id=business_id,
        status="indexed" if record is not None else "removed",
    )


@app.post("/ai/events/business-changed", response_model=EventAcceptedResponse, status_code=202)
async def business_changed_endpoint(req: BusinessChangedRequest, services: Services = Depends(get_services)):
    services.bus.publish_business_changed(business_changed(req.business_id, req.operation, req.slug))
    return EventAcceptedResponse(accepted=True, business_id=req.business_id, operation=req.operation)


@app.post("/ai/projection/reprobe", response_model=ProjectionStatusResponse)
async def reprobe_projection_endpoint(services: Services = Depends(get_services)):
    available = await services.projection.reprobe()
    return ProjectionStatusResponse(state=services.projection.state.value, available=available)


@app.exception_handler(StorageError)
async def storage_exception_handler(request, exc):
    """Storage failures surface as 503 so callers can retry later."""
    logger.error(f"Storage failure: {exc}")
    content = {"detail": "Storage unavailable"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=503, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    content = {"detail": "Internal server error"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)
