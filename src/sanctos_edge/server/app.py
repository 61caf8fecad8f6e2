"""Edge node application factory.

Creates a FastAPI app wired to an :class:`EdgeProxy` that serves the
JSON-RPC proxy, health JSON, the dashboard and the indexer passthrough.

Usage::

    from sanctos_edge.server.app import create_app

    app = create_app()  # reads EdgeConfig.from_env()
    # uvicorn.run(app, host="0.0.0.0", port=8787)
"""
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import HEADER_INTERNAL, HEADER_WORKER_BUILD, WORKER_BUILD
from sanctos_edge.core.proxy import EdgeProxy
from sanctos_edge.server.headers import apply_cors
from sanctos_edge.server.lanes import classify_lane

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.proxy.close()


def create_app(config: EdgeConfig | None = None, *, proxy: EdgeProxy | None = None) -> FastAPI:
    """Create the edge node application.

    Args:
        config: Edge configuration; read from the environment when omitted.
        proxy: A prebuilt proxy (tests pass one wired to mock transports).
            Takes precedence over *config*.

    Returns:
        A configured :class:`FastAPI` application.
    """
    if proxy is None:
        proxy = EdgeProxy.from_config(config or EdgeConfig.from_env())

    app = FastAPI(
        title="SanctOS RPC Edge Node",
        version=WORKER_BUILD,
        lifespan=_lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.proxy = proxy

    @app.middleware("http")
    async def edge_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        method = request.method.upper()
        if method == "OPTIONS":
            response: Response = Response(status_code=204)
        else:
            if request.headers.get(HEADER_INTERNAL, "").lower() != "dash":
                proxy.record_traffic(classify_lane(method, request.url.path), method)
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.exception("request_failed", method=method, path=request.url.path)
                response = PlainTextResponse(
                    f"Worker error: {exc}",
                    status_code=500,
                    headers={HEADER_WORKER_BUILD: WORKER_BUILD},
                )
        apply_cors(response.headers, request.headers, proxy.config, proxy.instance_id)
        return response

    # Import routers lazily to avoid circular imports.
    from sanctos_edge.server.routers.dash import router as dash_router
    from sanctos_edge.server.routers.health import router as health_router
    from sanctos_edge.server.routers.indexer import router as indexer_router
    from sanctos_edge.server.routers.rpc import router as rpc_router

    app.include_router(health_router)
    app.include_router(dash_router)
    app.include_router(indexer_router)
    # Catch-all, so it goes last.
    app.include_router(rpc_router)

    logger.info("edge_app_created", instance=proxy.instance_id, build=WORKER_BUILD)
    return app
