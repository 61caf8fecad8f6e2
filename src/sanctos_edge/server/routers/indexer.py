"""Allow-listed passthrough of ``/indexer/*`` to the indexer service."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from sanctos_edge.core.constants import HEADER_INDEXER, HEADER_WORKER_BUILD, WORKER_BUILD
from sanctos_edge.core.exceptions import IndexerError

router = APIRouter(tags=["indexer"])

_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def _unavailable(error: str, marker: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"ok": False, "error": error},
        headers={HEADER_INDEXER: marker, HEADER_WORKER_BUILD: WORKER_BUILD},
    )


@router.api_route("/indexer", methods=_METHODS)
@router.api_route("/indexer/{rest:path}", methods=_METHODS)
async def indexer_proxy(request: Request) -> Response:
    """Forward to the indexer when enabled, method and path are allowed."""
    indexer = request.app.state.proxy.indexer

    if not indexer.enabled:
        return _unavailable("indexer_disabled", "disabled")
    if not indexer.method_allowed(request.method):
        return PlainTextResponse(
            "Method not allowed", status_code=405, headers={HEADER_WORKER_BUILD: WORKER_BUILD}
        )
    if not indexer.base:
        return _unavailable("indexer_url_missing", "misconfigured")

    rest = request.url.path[len("/indexer"):] or "/"
    if not indexer.path_allowed(rest):
        return PlainTextResponse(
            "Not Found", status_code=404, headers={HEADER_WORKER_BUILD: WORKER_BUILD}
        )

    try:
        reply = await indexer.forward(
            request.method,
            rest,
            request.url.query,
            request.headers,
            await request.body(),
        )
    except IndexerError as exc:
        reply = indexer.failure_reply(exc)
    return Response(content=reply.body, status_code=reply.status, headers=reply.headers)
