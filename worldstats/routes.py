"""HTTP API mounted under ``/api``."""
import datetime as dt
import time

from flask import Blueprint, current_app, g, jsonify, request

from .errors import ValidationError
from .realtime import WS_PATH, open_stream

api = Blueprint("api", __name__, url_prefix="/api")

_STARTED = time.monotonic()

API_DOC = {
    "name": "WorldStats API",
    "version": "1.0.0",
    "description": "Real-time global statistics API",
    "endpoints": {
        "GET /health": "Health check",
        "GET /countries": "List all countries",
        "GET /countries/search?q=": "Search countries (fuzzy)",
        "GET /country/:code": "Get country full statistics",
        "GET /country/:code/charts": "Get chart-ready data",
        "GET /country/:code/summary": "Get AI-generated summary",
        "GET /compare?c1=&c2=": "Compare two countries",
        "GET /sse/updates": "SSE connection for real-time updates",
        "POST /sse/subscribe/:clientId": "Subscribe an SSE client to countries",
        "POST /sse/unsubscribe/:clientId": "Unsubscribe an SSE client from countries",
        "POST /sync": "Trigger data sync (admin)",
        "GET /sync/status": "Get sync status",
    },
    "websocket": {
        "endpoint": WS_PATH,
        "description": "Real-time comparison WebSocket",
    },
}


def _ctx():
    return current_app.extensions["worldstats"]


def _require_code(code: str) -> str:
    code = (code or "").strip()
    if not code:
        raise ValidationError("Country code is required")
    return code.upper()


@api.get("")
@api.get("/")
def index():
    return jsonify(API_DOC)


@api.get("/health")
def health():
    ctx = _ctx()
    status = ctx.cache.status()
    return jsonify({
        "success": True,
        "status": "healthy",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED, 3),
        "cache": {"backend": status["backend"], "degraded": status["degraded"]},
        "clients": ctx.broadcaster.client_count(),
    })


@api.get("/countries")
def list_countries():
    data = _ctx().countries.get_all()
    return jsonify({"success": True, "count": len(data), "data": data})


@api.get("/countries/search")
def search_countries():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("Search query (q) is required and must be at least 1 character")
    data = _ctx().countries.search(q)
    return jsonify({"success": True, "query": q, "count": len(data), "data": data})


@api.get("/country/<code>")
def get_country(code):
    return jsonify({"success": True, "data": _ctx().countries.get_one(_require_code(code))})


@api.get("/country/<code>/charts")
def get_charts(code):
    code = _require_code(code)
    return jsonify({"success": True, "countryCode": code, "data": _ctx().charts.get_charts(code)})


@api.get("/country/<code>/summary")
def get_summary(code):
    code = _require_code(code)
    return jsonify({"success": True, "countryCode": code, "data": _ctx().summaries.generate(code)})


@api.get("/compare")
def compare():
    c1 = (request.args.get("c1") or "").strip()
    c2 = (request.args.get("c2") or "").strip()
    if not c1 or not c2:
        raise ValidationError("Both country codes (c1 and c2) are required")
    return jsonify({"success": True, "data": _ctx().comparison.compare(c1, c2)})


# ---- SSE ----
@api.get("/sse/updates")
def sse_updates():
    return open_stream(_ctx().broadcaster)


def _sse_countries():
    body = request.get_json(silent=True) or {}
    countries = body.get("countries") if isinstance(body, dict) else None
    if not isinstance(countries, list):
        return None
    return [c for c in countries if isinstance(c, str)]


@api.post("/sse/subscribe/<client_id>")
def sse_subscribe(client_id):
    countries = _sse_countries()
    if countries is None:
        return jsonify({"success": False, "message": "Countries array required"}), 400
    broadcaster = _ctx().broadcaster
    current = broadcaster.subscribe(client_id, countries)
    if current is None:
        return jsonify({"success": False, "message": "Client not found"})
    broadcaster.send(client_id, {"type": "subscribed", "countries": current})
    return jsonify({"success": True, "message": "Subscribed"})


@api.post("/sse/unsubscribe/<client_id>")
def sse_unsubscribe(client_id):
    countries = _sse_countries()
    if countries is None:
        return jsonify({"success": False, "message": "Countries array required"}), 400
    broadcaster = _ctx().broadcaster
    current = broadcaster.unsubscribe(client_id, countries)
    if current is None:
        return jsonify({"success": False, "message": "Client not found"})
    broadcaster.send(client_id, {"type": "unsubscribed", "countries": current})
    return jsonify({"success": True, "message": "Unsubscribed"})


# ---- Sync ----
@api.post("/sync")
def trigger_sync():
    ctx = _ctx()
    g.claims = ctx.auth.authenticate(request.headers.get("Authorization", ""))
    if not ctx.sync.start_background():
        return jsonify({"success": False, "message": "Sync already in progress"}), 409
    return jsonify({"success": True, "message": "Sync started in background"})


@api.get("/sync/status")
def sync_status():
    sync = _ctx().sync
    return jsonify({"success": True, "isRunning": sync.is_running(), "state": sync.state.value})
