"""
Datasette plugin exposing the stock-map JSON API.

Routes:
- GET  /api/stores?includeShipped=true|false
- GET  /api/models
- GET  /api/agents
- POST /api/login
- POST /api/update-coordinates
- POST /api/cache-refresh
- GET  /api/cache-status
- GET  /api/status
- POST /api/log-activity
"""

import json
import logging
import weakref
from datetime import UTC, datetime
from typing import Any

from datasette import Response, hookimpl
from datasette.utils.asgi import Request

from stock_sync.config import PLUGIN_NAME, SyncConfig
from stock_sync.context import AppContext
from stock_sync.errors import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------

# One context per Datasette instance
_contexts: "weakref.WeakKeyDictionary[Any, AppContext]" = weakref.WeakKeyDictionary()


def get_plugin_config(datasette) -> SyncConfig:
    """Get plugin configuration from datasette.yaml."""
    return SyncConfig.from_dict(datasette.plugin_config(PLUGIN_NAME) or {})


def get_context(datasette) -> AppContext:
    """Return this instance's context, building it on first use."""
    context = _contexts.get(datasette)
    if context is None:
        context = AppContext.from_config(get_plugin_config(datasette))
        _contexts[datasette] = context
    return context


def set_context(datasette, context: AppContext) -> None:
    """Install a pre-built context (used by tests and embedding code)."""
    _contexts[datasette] = context


# -----------------------------------------------------------------------------
# Request Helpers
# -----------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


async def read_json(request: Request) -> dict[str, Any]:
    """Parse a JSON request body; an empty body is an empty object."""
    body = await request.post_body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("false", "0", "no")


def method_not_allowed() -> Response:
    return Response.json({"error": "Method not allowed"}, status=405)


ACTIVITY_TITLES = {
    "login": "사용자 로그인",
    "search": "모델 검색",
    "call_button": "전화 연결 버튼 클릭",
    "kakao_button": "카톡문구 생성",
}


def format_activity(data: dict[str, Any]) -> str:
    """One log line describing a client activity event."""
    activity = str(data.get("activity") or "")
    parts = [
        f"[{ACTIVITY_TITLES.get(activity, '사용자 활동')}]",
        f"user={data.get('userId') or 'unknown'}",
        f"type={data.get('userType') or 'unknown'}",
    ]
    for key in ("targetName", "model", "colorName", "callButton"):
        if data.get(key):
            parts.append(f"{key}={data[key]}")
    parts.append(f"ip={data.get('ipAddress') or 'unknown'}")
    parts.append(f"location={data.get('location') or 'unknown'}")
    parts.append(f"device={data.get('deviceInfo') or 'unknown'}")
    return " ".join(parts)


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


async def api_stores(request: Request, datasette) -> Response:
    """Active stores with per-store inventory."""
    include_shipped = parse_bool(request.args.get("includeShipped"), True)
    context = get_context(datasette)
    try:
        stores = await context.directory.get_stores(include_shipped=include_shipped)
    except ExternalServiceError as e:
        logger.exception("Error fetching store data")
        return Response.json(
            {"error": "Failed to fetch store data", "message": str(e)},
            status=500,
        )
    return Response.json(stores)


async def api_models(request: Request, datasette) -> Response:
    """Models and their available colors."""
    context = get_context(datasette)
    try:
        models = await context.directory.get_models()
    except ExternalServiceError as e:
        logger.exception("Error fetching model and color data")
        return Response.json(
            {"error": "Failed to fetch model and color data", "message": str(e)},
            status=500,
        )
    return Response.json(models)


async def api_agents(request: Request, datasette) -> Response:
    context = get_context(datasette)
    try:
        agents = await context.directory.get_agents()
    except ExternalServiceError as e:
        logger.exception("Error fetching agent data")
        return Response.json(
            {"error": "Failed to fetch agent data", "message": str(e)},
            status=500,
        )
    return Response.json(agents)


async def api_login(request: Request, datasette) -> Response:
    """
    Resolve a login identifier.

    Accepts ``identifier`` (or the older ``storeId``) plus optional
    ``deviceInfo``, ``ipAddress`` and ``location``, which are only logged.
    """
    if request.method != "POST":
        return method_not_allowed()

    context = get_context(datasette)
    try:
        data = await read_json(request)
        identifier = str(data.get("identifier") or data.get("storeId") or "")
        identity = await context.identity.resolve(identifier)
    except ValidationError as e:
        return Response.json({"success": False, "error": str(e)}, status=400)
    except NotFoundError:
        return Response.json({"success": False, "error": "Store not found"}, status=404)
    except ExternalServiceError as e:
        logger.exception("Error in login")
        return Response.json(
            {"success": False, "error": "Login failed", "message": str(e)},
            status=500,
        )

    logger.info(
        f"Login ({identity.kind.value}): {identifier} "
        f"ip={data.get('ipAddress') or 'unknown'} "
        f"location={data.get('location') or 'unknown'} "
        f"device={data.get('deviceInfo') or 'unknown'}"
    )
    return Response.json(identity.to_dict())


async def api_update_coordinates(request: Request, datasette) -> Response:
    """Run one coordinate reconciliation pass now."""
    if request.method != "POST":
        return method_not_allowed()

    context = get_context(datasette)
    try:
        report = await context.reconciler.run_pass()
    except ExternalServiceError as e:
        logger.exception("Error updating coordinates")
        return Response.json(
            {"success": False, "error": "Failed to update coordinates", "message": str(e)},
            status=500,
        )

    return Response.json(
        {
            "success": True,
            "message": f"Updated coordinates for {len(report.updates)} addresses",
            "report": report.to_dict(),
        }
    )


async def api_cache_refresh(request: Request, datasette) -> Response:
    """Drop one sheet's cached table, or sweep expired entries."""
    if request.method != "POST":
        return method_not_allowed()

    context = get_context(datasette)
    try:
        data = await read_json(request)
    except ValidationError as e:
        return Response.json({"status": "error", "error": str(e)}, status=400)

    message = context.directory.refresh(data.get("sheet") or None)
    return Response.json({"status": "success", "message": message, "timestamp": now_iso()})


async def api_cache_status(request: Request, datasette) -> Response:
    context = get_context(datasette)
    return Response.json(
        {
            "status": "success",
            "cache": context.directory.cache_status(),
            "timestamp": now_iso(),
        }
    )


async def api_status(request: Request, datasette) -> Response:
    """Liveness check with cache counts and which credentials are configured."""
    context = get_context(datasette)
    return Response.json(
        {
            "status": "Server is running",
            "timestamp": now_iso(),
            "cache": context.directory.cache_status(),
            "env": context.config.credential_status(),
        }
    )


async def api_log_activity(request: Request, datasette) -> Response:
    """Record a client activity event in the server log."""
    if request.method != "POST":
        return method_not_allowed()

    try:
        data = await read_json(request)
    except ValidationError as e:
        return Response.json({"success": False, "error": str(e)}, status=400)

    logger.info(format_activity(data))
    return Response.json({"success": True})


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/api/stores$", api_stores),
        (r"^/api/models$", api_models),
        (r"^/api/agents$", api_agents),
        (r"^/api/login$", api_login),
        (r"^/api/update-coordinates$", api_update_coordinates),
        (r"^/api/cache-refresh$", api_cache_refresh),
        (r"^/api/cache-status$", api_cache_status),
        (r"^/api/status$", api_status),
        (r"^/api/log-activity$", api_log_activity),
    ]


@hookimpl
def skip_csrf(datasette, scope):
    """JSON API routes are called by the map client, not from Datasette forms."""
    if scope.get("path", "").startswith("/api/"):
        return True
    return None


@hookimpl
def startup(datasette):
    """
    Run on Datasette startup.

    Builds the context and, when ``background_tasks`` is enabled, starts cache
    cleanup and scheduled coordinate reconciliation.
    """

    async def inner():
        context = get_context(datasette)
        if context.config.background_tasks:
            context.start()

    return inner


@hookimpl
def asgi_wrapper(datasette):
    """Stop background tasks when the server sends ``lifespan.shutdown``."""

    def wrap_with_shutdown(app):
        async def wrapped(scope, receive, send):
            if scope["type"] != "lifespan":
                await app(scope, receive, send)
                return

            async def receive_and_stop():
                message = await receive()
                if message["type"] == "lifespan.shutdown":
                    context = _contexts.get(datasette)
                    if context is not None:
                        await context.stop()
                return message

            await app(scope, receive_and_stop, send)

        return wrapped

    return wrap_with_shutdown
