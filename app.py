"""
BoltGraph FastAPI Application

A REST API server for the BoltGraph hierarchy engine.
Provides endpoints for applying document revisions, reading hierarchies,
nodes and revision history, and searching combined vectors.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from boltgraph.config import Config
from boltgraph.models.document import Document, Section
from boltgraph.models.node import Granularity
from boltgraph.services.hierarchy_engine import HierarchyEngine
from boltgraph.utils.exceptions import (
    BoltGraphError,
    CapabilityError,
    ConcurrencyError,
    InputError,
    NotFoundError,
    ValidationFailedError,
)
from boltgraph.utils.logger import get_logger, setup_logging_from_config

# Global engine instance
engine: HierarchyEngine | None = None
logger = get_logger(__name__)


# Pydantic models for API
class DocumentRequest(BaseModel):
    """Request model for applying a document revision."""

    content: str = Field(..., description="Full document text")
    title: str | None = Field(default=None, description="Document title")
    sections: list[Section] | None = Field(default=None, description="Pre-split sections")
    metadata: dict[str, Any] | None = Field(default=None, description="Optional metadata")
    source_revision: str | None = None


class UpdateResponse(BaseModel):
    """Response model for an applied revision."""

    update_id: str
    document_id: str
    revision_id: str
    parent_revision_id: str | None = None
    regenerated: list[str]
    preserved: list[str]
    tombstoned: list[str]
    impact_counts: dict[str, int]
    full_regeneration: bool
    warnings: list[str]
    duration_ms: float


class SearchRequest(BaseModel):
    """Request model for searching nodes. Give either query or vector."""

    query: str | None = Field(default=None, description="Free-text query")
    vector: list[float] | None = Field(default=None, description="Query vector")
    k: int = Field(default=10, ge=1, le=100, description="Max results")
    document_id: str | None = None
    granularity: Granularity | None = None
    min_score: float | None = Field(default=None, ge=-1.0, le=1.0)


class SearchResult(BaseModel):
    """Node search result."""

    node_id: str
    document_id: str
    granularity: str
    score: float


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    engine_initialized: bool
    analyzer: str
    storage: str
    index: str


def _http_error(e: BoltGraphError) -> HTTPException:
    """Map an engine error to an HTTP error."""
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, InputError):
        status = 400
    elif isinstance(e, ConcurrencyError):
        status = 409
    elif isinstance(e, ValidationFailedError):
        status = 422
    elif isinstance(e, CapabilityError):
        status = 503
    else:
        status = 500
    return HTTPException(status_code=status, detail={"error": e.message, "context": e.context})


def _require_engine() -> HierarchyEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global engine

    # Load configuration from environment or use defaults
    config = Config.from_env()

    setup_logging_from_config(config.logging)

    logger.info(
        "Starting BoltGraph server",
        extra={
            "analyzer": config.analyzer.provider,
            "model": config.analyzer.model,
            "dimension": config.views.dimension,
            "strategy": config.combiner.strategy,
            "storage": config.storage.backend,
            "index": config.index.backend,
        },
    )

    # Create and initialize engine
    engine = HierarchyEngine.from_config(config)
    await engine.initialize()
    logger.info("BoltGraph engine initialized")

    yield

    # Cleanup
    logger.info("Shutting down BoltGraph server")
    await engine.close()
    engine = None
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="BoltGraph API",
    description="Multi-view hierarchical document embeddings with incremental updates",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    if not engine:
        return HealthResponse(
            status="initializing",
            engine_initialized=False,
            analyzer="",
            storage="",
            index="",
        )
    return HealthResponse(
        status="healthy",
        engine_initialized=True,
        analyzer=engine.analyzer.name,
        storage=engine.config.storage.backend,
        index=engine.config.index.backend,
    )


# Document endpoints
@app.post("/documents/{document_id}", response_model=UpdateResponse)
async def apply_document(document_id: str, request: DocumentRequest):
    """
    Apply a document revision.

    The first revision builds the hierarchy from scratch. Later revisions are
    diffed against the head; only nodes whose impact is not NONE are
    regenerated, and the new revision is committed after validation.
    """
    current = _require_engine()

    metadata = dict(request.metadata or {})
    if request.title is not None:
        metadata["title"] = request.title
    document = Document(
        document_id=document_id,
        content=request.content,
        sections=request.sections or [],
        metadata=metadata,
        source_revision=request.source_revision,
    )

    try:
        result = await current.update_document(document_id, document)
    except BoltGraphError as e:
        logger.error(
            "Error applying document",
            extra={"document_id": document_id, "error": str(e), "error_type": type(e).__name__},
        )
        raise _http_error(e) from e

    return UpdateResponse(
        update_id=result.update_id,
        document_id=result.document_id,
        revision_id=result.revision_id,
        parent_revision_id=result.parent_revision_id,
        regenerated=result.regenerated,
        preserved=result.preserved,
        tombstoned=result.tombstoned,
        impact_counts=result.impact_counts,
        full_regeneration=result.full_regeneration,
        warnings=[w.message for w in result.report.warnings] + result.warnings,
        duration_ms=result.duration_ms,
    )


@app.delete("/documents/{document_id}/update")
async def cancel_update(document_id: str):
    """Cancel the in-flight update of a document, if any."""
    current = _require_engine()
    cancelled = await current.cancel_update(document_id)
    return {"document_id": document_id, "cancelled": cancelled}


@app.get("/documents")
async def list_documents():
    """List documents with a committed revision."""
    current = _require_engine()
    return {"documents": await current.list_documents()}


@app.get("/documents/{document_id}/hierarchy")
async def get_hierarchy(
    document_id: str,
    revision: str | None = Query(default=None),
    include_vectors: bool = Query(default=False),
):
    """
    Retrieve a hierarchy revision, the head by default.

    Vectors are omitted unless include_vectors is set.
    """
    current = _require_engine()
    try:
        hierarchy = await current.get_hierarchy(document_id, revision)
    except BoltGraphError as e:
        raise _http_error(e) from e

    exclude = None if include_vectors else {"combined_vector", "per_view_vectors"}
    return {
        "document_id": hierarchy.document_id,
        "revision_id": hierarchy.revision_id,
        "parent_revision_id": hierarchy.parent_revision_id,
        "created_at": hierarchy.created_at.isoformat(),
        "nodes": [
            node.model_dump(mode="json", exclude=exclude)
            for node in sorted(hierarchy.nodes.values(), key=lambda n: n.id)
        ],
        "edges": [edge.model_dump(mode="json") for edge in hierarchy.edges],
    }


@app.get("/documents/{document_id}/revisions")
async def get_revisions(document_id: str):
    """Revision history of a document, oldest first."""
    current = _require_engine()
    try:
        revisions = await current.history(document_id)
    except BoltGraphError as e:
        raise _http_error(e) from e
    return {
        "document_id": document_id,
        "head": await current.head_revision(document_id),
        "revisions": revisions,
    }


@app.get("/documents/{document_id}/nodes/{node_id}")
async def get_node(
    document_id: str,
    node_id: str,
    revision: str | None = Query(default=None),
    include_vectors: bool = Query(default=True),
):
    """Retrieve one node record."""
    current = _require_engine()
    try:
        node = await current.get_node(document_id, node_id, revision)
    except BoltGraphError as e:
        raise _http_error(e) from e

    exclude = None if include_vectors else {"combined_vector", "per_view_vectors"}
    return node.model_dump(mode="json", exclude=exclude)


# Search endpoint
@app.post("/search", response_model=list[SearchResult])
async def search(request: SearchRequest):
    """
    Search nodes by combined vector.

    A free-text query is embedded through the three views and the configured
    combination policy before searching.
    """
    current = _require_engine()
    if (request.query is None) == (request.vector is None):
        raise HTTPException(status_code=400, detail="Provide exactly one of query or vector")

    try:
        if request.query is not None:
            hits = await current.search_text(
                request.query,
                k=request.k,
                document_id=request.document_id,
                granularity=request.granularity,
                min_score=request.min_score,
            )
        else:
            hits = await current.search(
                request.vector,
                k=request.k,
                document_id=request.document_id,
                granularity=request.granularity,
                min_score=request.min_score,
            )
    except BoltGraphError as e:
        logger.error("Error searching", extra={"error": str(e), "error_type": type(e).__name__})
        raise _http_error(e) from e

    return [
        SearchResult(
            node_id=hit.node_id,
            document_id=hit.document_id,
            granularity=hit.granularity.value,
            score=hit.score,
        )
        for hit in hits
    ]


# Statistics endpoint
@app.get("/stats")
async def get_stats():
    """Get engine statistics and access counters."""
    current = _require_engine()
    return current.get_statistics()


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "BoltGraph API",
        "version": "1.0.0",
        "description": "Multi-view hierarchical document embeddings with incremental updates",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
