"""Health and stats-actor diagnostic endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sanctos_edge.core.constants import HEADER_HEALTH, HEADER_WORKER_BUILD, WORKER_BUILD
from sanctos_edge.core.exceptions import StatsUnavailableError

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/__sanctos_health")
async def health_check(request: Request) -> JSONResponse:
    """Stats snapshot plus process-local diagnostics."""
    proxy = request.app.state.proxy
    payload = await proxy.health()
    return JSONResponse(
        content=payload,
        headers={
            HEADER_HEALTH: "1",
            HEADER_WORKER_BUILD: WORKER_BUILD,
            "cache-control": "no-store",
        },
    )


@router.get("/__sanctos_do_ping")
async def stats_ping(request: Request) -> JSONResponse:
    """Confirm the stats actor is reachable."""
    proxy = request.app.state.proxy
    try:
        result = await proxy.stats.ping()
    except StatsUnavailableError as exc:
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": str(exc)},
            headers={HEADER_WORKER_BUILD: WORKER_BUILD},
        )
    return JSONResponse(
        content={"ok": True, "do": result},
        headers={HEADER_WORKER_BUILD: WORKER_BUILD},
    )
