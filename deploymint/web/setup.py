import json
import asyncio
import logging
from pathlib import Path
from functools import partial
from typing import Any, Callable, Dict, Optional
from starlette.routing import Mount, Route
from starlette.requests import Request
from starlette.middleware import Middleware
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware
from deploymint.local import app_globals
from deploymint.local.supervisor import ServerSupervisor, get_supervisor
from deploymint.local.supervisor.errors import InvalidConfiguration
from deploymint.local.supervisor.models import ActionResult, ServerConfig
from deploymint.web.middleware import SecurityHeadersMiddleware

log = logging.getLogger("api_server")


# --- Helpers ---
def _supervisor(request: Request) -> ServerSupervisor:
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        supervisor = get_supervisor()
        request.app.state.supervisor = supervisor
    return supervisor

async def _run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Runs a blocking supervisor call on the default executor so requests stay concurrent."""
    return await asyncio.get_running_loop().run_in_executor(None, partial(func, *args))

async def _read_json(request: Request) -> Optional[Dict[str, Any]]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None

def _bad_request(error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=400)

def _action_response(result: ActionResult) -> JSONResponse:
    """Translates an ActionResult into the dashboard's wire format."""
    body: Dict[str, Any] = {"success": result.ok}
    data = result.to_dict()
    for key in ("message", "pid", "replacedPorts", "stoppedPorts", "errorKind"):
        if key in data:
            body[key] = data[key]
    if not result.ok:
        body["error"] = result.error_message
    return JSONResponse(body, status_code=200 if result.ok else result.http_status)


# --- Configuration Endpoints ---
async def get_server_config(request: Request) -> JSONResponse:
    url = request.query_params.get("url")
    if not url:
        return _bad_request("URL is required")

    store = _supervisor(request).store
    config = await _run_blocking(store.load_raw, url)
    if config is None:
        return JSONResponse({"found": False, "message": "Server not configured. Please add configuration first."})
    return JSONResponse({"found": True, "config": config})

async def save_server_config(request: Request) -> JSONResponse:
    payload = await _read_json(request)
    if payload is None:
        return _bad_request("Request body must be a JSON object")

    url = payload.get("url")
    if not url or not payload.get("directory") or not payload.get("command"):
        return _bad_request("Missing required fields: url, directory, command, port")

    store = _supervisor(request).store
    try:
        config = await _run_blocking(store.save, ServerConfig.from_dict(url, payload))
    except InvalidConfiguration as e:
        return _bad_request(str(e))
    except OSError as e:
        log.error(f"Could not save configuration for {url}: {e}")
        return JSONResponse({"success": False, "error": f"Could not save configuration: {e}"}, status_code=500)
    return JSONResponse({"success": True, "message": "Server configuration saved", "config": config.to_dict()})

async def delete_server_config(request: Request) -> JSONResponse:
    url = request.query_params.get("url")
    if not url:
        return _bad_request("URL is required")
    removed = await _run_blocking(_supervisor(request).store.remove, url)
    if not removed:
        return JSONResponse({"success": False, "error": "Server not configured"}, status_code=404)
    return JSONResponse({"success": True, "message": "Server configuration removed"})

async def list_servers(request: Request) -> JSONResponse:
    configs = await _run_blocking(_supervisor(request).store.list_all)
    return JSONResponse({"servers": [{"url": c.identity, **c.to_dict()} for c in configs]})


# --- Lifecycle Endpoints ---
async def get_status(request: Request) -> JSONResponse:
    url = request.query_params.get("url")
    if not url:
        return JSONResponse({"error": "URL is required"}, status_code=400)

    report = await _run_blocking(_supervisor(request).get_status, url)
    body = report.to_dict()
    # Flat keys read by the dashboard.
    if report.primary_port is not None:
        body["port"] = report.primary_port
    if report.per_port:
        body["ports"] = body["perPortDetail"]
    if report.error_message:
        body["error"] = report.error_message
    return JSONResponse(body)

def _lifecycle_endpoint(operation: str) -> Callable:
    async def endpoint(request: Request) -> JSONResponse:
        payload = await _read_json(request)
        url = payload.get("url") if payload else None
        if not url:
            return _bad_request("URL is required")

        log.debug(f"Received {operation} request for {url}")
        result = await _run_blocking(getattr(_supervisor(request), operation), url)
        return _action_response(result)

    endpoint.__name__ = f"{operation}_server"
    return endpoint

async def list_launch_records(request: Request) -> JSONResponse:
    records = _supervisor(request).registry.snapshot()
    return JSONResponse({"records": [record.to_dict() for record in records]})


# --- Application Instance Creation ---
def create_app(supervisor: Optional[ServerSupervisor] = None, public_dir: Optional[Path] = None) -> Starlette:
    """
    Builds the API application.

    :param supervisor: The supervisor to serve. Defaults to the process-wide one, created lazily.
    :param public_dir: Directory with the static dashboard, mounted at '/' if it exists.
    """
    routes = [
        Route("/api/server-config", endpoint=get_server_config, methods=["GET"]),
        Route("/api/server-config", endpoint=save_server_config, methods=["POST"]),
        Route("/api/server-config", endpoint=delete_server_config, methods=["DELETE"]),
        Route("/api/servers", endpoint=list_servers, methods=["GET"]),
        Route("/api/status", endpoint=get_status, methods=["GET"]),
        Route("/api/start", endpoint=_lifecycle_endpoint("start"), methods=["POST"]),
        Route("/api/stop", endpoint=_lifecycle_endpoint("stop"), methods=["POST"]),
        Route("/api/restart", endpoint=_lifecycle_endpoint("restart"), methods=["POST"]),
        Route("/api/records", endpoint=list_launch_records, methods=["GET"]),
    ]
    public_dir = Path(public_dir) if public_dir is not None else Path(app_globals.PUBLIC_DIR)
    if public_dir.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=str(public_dir), html=True), name="dashboard"))
        log.info(f"Serving dashboard from {public_dir}")

    middleware = [
        Middleware(CORSMiddleware, allow_origins=app_globals.CORS_ALLOW_ORIGINS, allow_methods=["*"], allow_headers=["*"]),
        Middleware(SecurityHeadersMiddleware),
    ]

    application = Starlette(debug=False, routes=routes, middleware=middleware)
    application.state.supervisor = supervisor
    return application


# The application object loaded by Hypercorn
app = create_app()
