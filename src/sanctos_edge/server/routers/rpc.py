"""JSON-RPC catch-all; must be included after every other router."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from sanctos_edge.core.constants import HEADER_WORKER_BUILD, WORKER_BUILD
from sanctos_edge.core.exceptions import RpcRequestError

router = APIRouter(tags=["rpc"])

USAGE_BANNER = "SanctOS RPC Edge Node. POST JSON-RPC only.\n"


@router.api_route("/{path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"])
async def rpc_entry(request: Request) -> Response:
    """POST bodies go through the caching proxy; anything else gets the banner."""
    if request.method != "POST":
        return PlainTextResponse(USAGE_BANNER, headers={HEADER_WORKER_BUILD: WORKER_BUILD})

    proxy = request.app.state.proxy
    try:
        reply = await proxy.handle_rpc(await request.body())
    except RpcRequestError as exc:
        return JSONResponse(
            status_code=exc.status_code or 400,
            content={"error": str(exc)},
            headers={HEADER_WORKER_BUILD: WORKER_BUILD},
        )
    return Response(content=reply.body, status_code=reply.status, headers=reply.headers)
