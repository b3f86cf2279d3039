"""
FastAPI service exposing query interpretation and map rendering.

Endpoints:
  POST /query                 - Interpret text and render it into a GeoJSON map
  POST /parse                 - Interpret text only
  GET  /geocode               - Resolve a single place name
  GET  /history               - Recent queries, newest first
  POST /sessions/{id}/reset   - Forget a conversation's previous turns
  GET  /health                - Service status
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from querymap.config import get_settings
from querymap.context import SessionStore
from querymap.history import SearchHistory
from querymap.models import (
    GeocodeResponse,
    HealthResponse,
    HistoryResponse,
    IntentResult,
    QueryRequest,
    QueryResponse,
)
from querymap.pipeline import IntentPipeline, get_pipeline
from querymap.visualize import GeoJSONMap, VisualizationDispatcher, VisualizationError

logger = logging.getLogger(__name__)


@dataclass
class Services:
    pipeline: IntentPipeline
    dispatcher: VisualizationDispatcher
    sessions: SessionStore
    history: SearchHistory

    @classmethod
    def default(cls) -> "Services":
        settings = get_settings()
        return cls(
            pipeline=get_pipeline(),
            dispatcher=VisualizationDispatcher(),
            sessions=SessionStore(settings.api.max_sessions),
            history=SearchHistory(settings.history),
        )


# ── Lifespan ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: build services unless some were injected already."""
    logger.info("Starting up API server...")
    if getattr(app.state, "services", None) is None:
        app.state.services = Services.default()
    services: Services = app.state.services
    logger.info("Remote classifier %s, geocoder provider '%s'",
                "enabled" if services.pipeline.classifier.enabled else "disabled",
                services.dispatcher.geocoder.settings.provider)
    yield
    logger.info("API server shut down.")


# ── App ───────────────────────────────────────────────────────────────

app = FastAPI(
    title="QueryMap API",
    description="Turn free-text place queries into map routes, regions and timelines",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Helpers ───────────────────────────────────────────────────────────

def _services(request: Request) -> Services:
    return request.app.state.services


async def _interpret(services: Services, body: QueryRequest) -> IntentResult:
    text = body.text.strip()
    if not text:
        raise HTTPException(400, "Query text is empty")

    if body.session_id:
        session = services.sessions.get(body.session_id)
        result = await services.pipeline.process_with_context(text, session)
    else:
        result = await services.pipeline.process(text)
    services.history.add(text)
    return result


# ══════════════════════════════════════════════════════════════════════
# ENDPOINTS
# ══════════════════════════════════════════════════════════════════════

@app.post("/query", response_model=QueryResponse)
async def query(body: QueryRequest, request: Request):
    """
    Interpret the text and, unless ``render`` is false, draw it into a fresh
    in-memory map. The response carries the map's GeoJSON sources so a
    browser client can hand them straight to Mapbox GL.
    """
    services = _services(request)
    result = await _interpret(services, body)
    if not body.render:
        return QueryResponse(result=result)

    map_handle = GeoJSONMap()
    try:
        outcome = await services.dispatcher.apply(result, map_handle)
    except VisualizationError as e:
        logger.warning("Rendering failed for %r: %s", body.text, e)
        raise HTTPException(503, "The map could not be rendered right now") from e
    return QueryResponse(result=result, render=outcome, sources=map_handle.sources)


@app.post("/parse", response_model=IntentResult)
async def parse(body: QueryRequest, request: Request):
    """Interpretation only; nothing is geocoded or rendered."""
    return await _interpret(_services(request), body)


@app.get("/geocode", response_model=GeocodeResponse)
async def geocode(
    request: Request,
    q: str = Query(..., min_length=1, max_length=200, description="Place name"),
):
    point = await _services(request).dispatcher.geocoder.geocode(q)
    return GeocodeResponse(query=q, coordinates=point, found=point is not None)


@app.get("/history", response_model=HistoryResponse)
async def history(request: Request, limit: Optional[int] = Query(None, ge=1, le=100)):
    services = _services(request)
    return HistoryResponse(queries=services.history.recent(limit), total=len(services.history))


@app.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str, request: Request):
    if not _services(request).sessions.reset(session_id):
        raise HTTPException(404, "Session not found")
    return {"session_id": session_id, "reset": True}


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    services = _services(request)
    geocoder = services.dispatcher.geocoder
    return HealthResponse(
        status="ok",
        llm_enabled=services.pipeline.classifier.enabled,
        geocoder_provider=geocoder.settings.provider,
        cache_size=len(geocoder.cache),
        sessions=len(services.sessions),
    )
