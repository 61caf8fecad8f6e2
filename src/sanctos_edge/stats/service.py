"""HTTP face of the stats actor.

Run it as its own single-process service so that every proxy instance
reaches the same actor::

    from sanctos_edge.stats.service import create_stats_app

    app = create_stats_app(StatsActor(JsonFileStatsStorage("stats.json")))
    # uvicorn.run(app, host="0.0.0.0", port=8788, workers=1)
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sanctos_edge.stats.actor import StatsActor
from sanctos_edge.stats.models import stats_event_adapter

logger = structlog.get_logger(__name__)


def create_stats_router(actor: StatsActor) -> APIRouter:
    """Return an :class:`APIRouter` exposing *actor*.

    Endpoints:
        - ``GET  /ping`` — reachability check
        - ``POST /bump`` — apply one stats event
        - ``GET  /get``  — full snapshot with rolling traffic views
    """
    router = APIRouter(tags=["stats"])

    @router.get("/ping")
    async def ping() -> JSONResponse:
        return JSONResponse(content=await actor.ping())

    @router.post("/bump")
    async def bump(request: Request) -> JSONResponse:
        try:
            event = stats_event_adapter.validate_json(await request.body())
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail="invalid stats event") from exc
        await actor.bump(event)
        return JSONResponse(content={"ok": True})

    @router.get("/get")
    async def get() -> JSONResponse:
        snapshot = await actor.get()
        return JSONResponse(content=snapshot.to_wire())

    return router


def create_stats_app(actor: StatsActor) -> FastAPI:
    """Create a FastAPI application serving *actor*; run it with a single worker."""
    app = FastAPI(title="SanctOS Stats Actor", version="1.0.0")
    app.state.actor = actor
    app.include_router(create_stats_router(actor))
    logger.info("stats_app_created")
    return app
