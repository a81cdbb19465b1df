"""
Traffic Source Service - FastAPI Application

Main entry point for the traffic-source analytics HTTP API.

Business logic is delegated to the analytics module - this file only handles:
- API routing
- Request/response handling
- Pipeline wiring (byte source, caches, loader)
- Health checks
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from analytics.errors import (
    SnapshotFetchError,
    SnapshotSelectionError,
    TrafficSourceError,
)
from analytics.export import export_traffic_view_csv
from analytics.loader import SnapshotLoader
from analytics.traffic_parser import mapping_preview, parse_lines, resolve_mapping, split_lines
from analytics.view import TrafficViewOrchestrator, sort_metrics
from clients.storage import build_byte_source
from config import config
from memory.redis_store import RedisSnapshotStore
from memory.snapshot_cache import SnapshotCache
from registry.schemas import (
    HealthResponse,
    MappingPreviewRequest,
    MappingPreviewResponse,
    ParseRequest,
    ParseResponse,
    TrafficView,
    ViewRequest,
)

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.server.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_orchestrator() -> TrafficViewOrchestrator:
    """Wire byte source, caches and loader from configuration."""
    shared_store = RedisSnapshotStore() if config.redis.enabled else None
    loader = SnapshotLoader(
        byte_source=build_byte_source(),
        cache=SnapshotCache(max_entries=config.cache.max_entries),
        shared_store=shared_store,
    )
    return TrafficViewOrchestrator(loader)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler for startup/shutdown events.

    Builds the pipeline and validates configuration on startup.
    Cleans up resources on shutdown.
    """
    # Startup
    logger.info("Starting Traffic Source Service...")

    # Validate configuration
    warnings = config.validate()
    for warning in warnings:
        logger.warning(f"Config warning: {warning}")

    app.state.orchestrator = build_orchestrator()

    logger.info(f"Storage backend: {config.storage.backend}")
    logger.info(f"Snapshot cache size: {config.cache.max_entries}")
    logger.info(f"Redis tier: {'enabled' if config.redis.enabled else 'disabled'}")

    yield

    # Shutdown
    logger.info("Shutting down Traffic Source Service...")
    shared_store = app.state.orchestrator.loader.shared_store
    if shared_store is not None:
        await shared_store.close()


# Initialize FastAPI application
app = FastAPI(
    title="Traffic Source Service",
    description="Traffic-source CSV ingestion, snapshot caching and delta analytics",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if config.server.debug else None,
    redoc_url="/redoc" if config.server.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> TrafficViewOrchestrator:
    """Dependency returning the pipeline built at startup."""
    return request.app.state.orchestrator


def _unprocessable(error: TrafficSourceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=error.to_dict()
    )


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns:
        HealthResponse with server status
    """
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        storage_backend=config.storage.backend
    )


@app.get("/", tags=["System"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Traffic Source Service",
        "version": API_VERSION,
        "docs": "/docs" if config.server.debug else "Disabled in production"
    }


@app.post(
    "/api/v1/traffic-sources/parse",
    response_model=ParseResponse,
    tags=["Traffic Sources"]
)
async def parse_csv(request: ParseRequest) -> ParseResponse:
    """
    Parse an uploaded Traffic Source CSV.

    Auto-detects columns unless a manual mapping is supplied.

    Raises:
        HTTPException 422: MAPPING_REQUIRED (with headers and a preview row
            for the column mapper), NO_DATA or PARSE_FAILED
    """
    lines = split_lines(request.csv_text)

    try:
        mapping, auto_detected = resolve_mapping(lines, request.mapping)
        result = parse_lines(lines, mapping)
    except TrafficSourceError as e:
        logger.info(f"CSV parse rejected: {e.code} - {e.message}")
        raise _unprocessable(e)

    return ParseResponse(
        metrics=list(result.metrics),
        total_row=result.total_row,
        mapping=mapping,
        auto_detected=auto_detected,
    )


@app.post(
    "/api/v1/traffic-sources/mapping-preview",
    response_model=MappingPreviewResponse,
    tags=["Traffic Sources"]
)
async def preview_mapping(request: MappingPreviewRequest) -> MappingPreviewResponse:
    """Return header row, preview row and mapping suggestions for the column mapper."""
    return mapping_preview(request.csv_text)


async def _build_view(
    request: ViewRequest,
    orchestrator: TrafficViewOrchestrator,
) -> TrafficView:
    logger.info(
        f"View request: snapshot={request.selected_snapshot_id}, "
        f"mode={request.view_mode.value}, snapshots={len(request.snapshots)}"
    )

    try:
        view = await orchestrator.build_view(
            request.snapshots,
            request.selected_snapshot_id,
            request.view_mode,
        )
        if request.sort_key:
            view = view.model_copy(update={
                "metrics": sort_metrics(view.metrics, request.sort_key, request.sort_descending)
            })
        return view

    except SnapshotSelectionError as e:
        logger.warning(f"Unknown snapshot: {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.to_dict()
        )
    except SnapshotFetchError as e:
        logger.error(f"Snapshot fetch failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.to_dict()
        )
    except TrafficSourceError as e:
        logger.warning(f"Stored snapshot could not be parsed: {e}")
        raise _unprocessable(e)
    except ValueError as e:
        logger.warning(f"Validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@app.post(
    "/api/v1/traffic-sources/view",
    response_model=TrafficView,
    tags=["Traffic Sources"]
)
async def view_snapshot(
    request: ViewRequest,
    orchestrator: TrafficViewOrchestrator = Depends(get_orchestrator),
) -> TrafficView:
    """
    Build the displayed traffic table for a snapshot.

    In delta mode every matched source carries changes against the
    snapshot uploaded right before the selected one.
    """
    return await _build_view(request, orchestrator)


@app.post(
    "/api/v1/traffic-sources/export",
    response_class=PlainTextResponse,
    tags=["Traffic Sources"]
)
async def export_snapshot(
    request: ViewRequest,
    orchestrator: TrafficViewOrchestrator = Depends(get_orchestrator),
) -> PlainTextResponse:
    """Export the displayed traffic table as CSV."""
    view = await _build_view(request, orchestrator)
    return PlainTextResponse(
        export_traffic_view_csv(view),
        media_type="text/csv",
        headers={
            "Content-Disposition": (
                f'attachment; filename="traffic_sources_{view.snapshot_id}.csv"'
            )
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "server:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.debug,
        log_level=config.server.log_level.lower()
    )
