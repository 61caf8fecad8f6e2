"""Static operator dashboard that polls the health endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from sanctos_edge.core.constants import HEADER_WORKER_BUILD, WORKER_BUILD
from sanctos_edge.server.headers import apply_security_headers

router = APIRouter(tags=["dash"])

# Requests from this page carry ``x-sanctos-internal: dash`` so polling is
# not counted as traffic.
DASH_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>SanctOS RPC Node - Dashboard</title>
  <style>
    body { font-family: system-ui, sans-serif; background: #0b0d12; color: #e6e8ee; margin: 0; padding: 24px; }
    h1 { font-size: 20px; margin: 0 0 16px; }
    .grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 12px; }
    .card { background: #151922; border-radius: 10px; padding: 14px; }
    .label { font-size: 12px; color: #8a93a6; text-transform: uppercase; }
    .value { font-size: 22px; margin-top: 6px; }
    .sub { font-size: 12px; color: #8a93a6; margin-top: 4px; }
    pre { background: #151922; border-radius: 10px; padding: 14px; overflow: auto; font-size: 12px; }
    .bad { color: #ff6b6b; }
  </style>
</head>
<body>
  <h1>SanctOS RPC Node <span id="status" class="sub"></span></h1>
  <div class="grid">
    <div class="card"><div class="label">Total requests</div><div class="value" id="m-total">-</div>
      <div class="sub" id="m-post">POST: -</div></div>
    <div class="card"><div class="label">Cache hit rate</div><div class="value" id="m-hit">-</div>
      <div class="sub" id="m-cache">hit - / miss - / bypass -</div></div>
    <div class="card"><div class="label">RPC last 60s</div><div class="value" id="m-rpc60">-</div>
      <div class="sub" id="m-http60">all HTTP: -</div></div>
    <div class="card"><div class="label">Self traffic</div><div class="value" id="m-self">-</div>
      <div class="sub" id="m-self-break">/dash: - / /health: -</div></div>
    <div class="card"><div class="label">Coalescing</div><div class="value" id="m-inflight">-</div>
      <div class="sub" id="m-joined">joined - / created - / max -</div></div>
    <div class="card"><div class="label">Last upstream</div><div class="value" id="m-up">-</div>
      <div class="sub" id="m-up-err"></div></div>
  </div>
  <h2 class="label" style="margin-top:24px">Top methods today</h2>
  <pre id="methods">-</pre>
  <h2 class="label">Environment</h2>
  <pre id="env">-</pre>
  <script>
    const $ = (id) => document.getElementById(id);
    const sum = (o) => Object.values(o || {}).reduce((a, b) => a + (b || 0), 0);

    async function refresh() {
      try {
        const res = await fetch("/__sanctos_health", { cache: "no-store", headers: { "x-sanctos-internal": "dash" } });
        const h = await res.json();
        const s = h.stats || {};
        const t = (s.traffic && s.traffic.totals) || {};
        const last60 = (s.traffic && s.traffic.last60) || {};
        const hits = s.cacheHits || 0, misses = s.cacheMisses || 0, bypass = s.cacheBypass || 0;
        const cacheable = hits + misses;

        $("status").textContent = h.status + " / up " + h.uptimeSec + "s";
        $("status").className = h.status === "ok" ? "sub" : "sub bad";
        $("m-total").textContent = s.totalRequests || 0;
        $("m-post").textContent = "POST: " + (s.totalPostRequests || 0);
        $("m-hit").textContent = cacheable ? ((100 * hits / cacheable).toFixed(1) + "%") : "-";
        $("m-cache").textContent = "hit " + hits + " / miss " + misses + " / bypass " + bypass;
        $("m-rpc60").textContent = last60.rpcPost || 0;
        $("m-http60").textContent = "all HTTP: " + sum(last60);
        $("m-self").textContent = (t.dashGet || 0) + (t.healthGet || 0);
        $("m-self-break").textContent = "/dash: " + (t.dashGet || 0) + " / /health: " + (t.healthGet || 0);
        $("m-inflight").textContent = s.inflightEntries || 0;
        $("m-joined").textContent = "joined " + (s.inflightJoined || 0) + " / created " + (s.inflightCreated || 0) + " / max " + (s.inflightMax || 0);
        $("m-up").textContent = (s.lastUpstreamName || "-") + " " + (s.lastUpstreamStatus || "");
        $("m-up-err").textContent = s.lastUpstreamError ? ("last error: " + s.lastUpstreamError) : "";

        const today = (h.methods && h.methods.todayCounts) || {};
        const top = Object.entries(today).sort((a, b) => b[1] - a[1]).slice(0, 15);
        $("methods").textContent = top.length ? top.map(([m, n]) => n.toString().padStart(8) + "  " + m).join("\\n") : "no calls yet";
        $("env").textContent = JSON.stringify(h.env, null, 2);
      } catch (err) {
        $("status").textContent = "health unavailable: " + err;
        $("status").className = "sub bad";
      }
    }

    refresh();
    setInterval(refresh, 5000);
  </script>
</body>
</html>
"""


@router.api_route("/dash", methods=["GET", "HEAD"])
async def dashboard(request: Request) -> HTMLResponse:
    """Serve the dashboard page; HEAD gets the headers only."""
    response = HTMLResponse(
        "" if request.method == "HEAD" else DASH_HTML,
        headers={HEADER_WORKER_BUILD: WORKER_BUILD},
    )
    apply_security_headers(response.headers, is_html=True)
    return response
