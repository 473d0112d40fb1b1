from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .config import get_config
from .embeddings import describe_embedding_provider
from .errors import EmbeddingError, RepositorySyncError, ValidationError
from .services import Services, build_services

logger = logging.getLogger("scriptindex_admin")

REDACTED_KEYS = {"api_key"}


def _get_admin_cfg() -> Dict[str, Any]:
    config = get_config()
    return {
        "enabled": config.admin_enabled,
        "host": config.admin_host,
        "port": config.admin_port,
        "api_key": config.admin_api_key,
        "require_api_key": config.admin_require_api_key,
        "allowed_ips": config.admin_allowed_ips,
    }


def _is_allowed_ip(ip: Optional[str], cfg: Dict[str, Any]) -> bool:
    if not ip:
        return False
    allowed = set(cfg.get("allowed_ips") or ["127.0.0.1", "::1"])
    return ip in allowed


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            k: ("***" if k in REDACTED_KEYS and v else _redact(v)) for k, v in data.items()
        }
    return data


def _services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


async def require_admin(request: Request) -> Optional[JSONResponse]:
    """
    Common gate for all admin endpoints.

    - Enforce local-only IP (admin.allowed_ips)
    - Enforce X-Admin-Key header if admin.api_key is set
    - Refuse to serve when admin.require_api_key is set without a key
    """
    client = request.client
    client_ip = client.host if client else None
    cfg = _get_admin_cfg()

    if not cfg.get("enabled"):
        logger.warning("Admin API called but admin.enabled=false")
        return JSONResponse({"error": "admin_disabled"}, status_code=503)

    if not _is_allowed_ip(client_ip, cfg):
        logger.warning("Admin access denied from IP %r", client_ip)
        return JSONResponse(
            {"error": "forbidden", "reason": "ip_not_allowed"},
            status_code=403,
        )

    api_key = cfg.get("api_key")
    if cfg.get("require_api_key") and not api_key:
        logger.error("admin.require_api_key is set but admin.api_key is empty")
        return JSONResponse(
            {"error": "configuration_error", "detail": "admin API key required but not configured"},
            status_code=503,
        )

    if api_key:
        header_key = request.headers.get("x-admin-key")
        if header_key != api_key:
            logger.warning("Admin access denied due to invalid API key")
            return JSONResponse({"error": "unauthorized"}, status_code=401)

    return None


async def admin_status(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    services = _services(request)
    cfg = _get_admin_cfg()
    config = services.config

    def _collect() -> Dict[str, Any]:
        clone_path = str(config.clone_path)
        state = services.store.get_index_state(clone_path)
        return {
            "admin": {
                "host": cfg.get("host"),
                "port": cfg.get("port"),
                "enabled": cfg.get("enabled"),
            },
            "repository": {
                "url": config.repo_url,
                "branch": config.repo_branch,
                "clone_path": clone_path,
            },
            "index": {
                "path": str(services.store.path),
                "dimension": services.store.dimension,
                "functions": services.store.count_functions(),
                "chunks": services.store.count_chunks(),
                "last_indexed_commit": state.last_indexed_commit if state else None,
                "updated_at": state.updated_at if state else None,
            },
            "embeddings": describe_embedding_provider(config),
        }

    try:
        payload = await run_in_threadpool(_collect)
    except Exception as exc:
        logger.exception("admin_status failed: %s", exc)
        return JSONResponse({"error": "internal_error", "detail": str(exc)}, status_code=500)
    return JSONResponse(payload)


async def admin_index(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    try:
        body = await request.json() if await request.body() else {}
    except ValueError:
        return JSONResponse(
            {"error": "bad_request", "detail": "body must be valid JSON"}, status_code=400
        )
    if not isinstance(body, dict):
        return JSONResponse(
            {"error": "bad_request", "detail": "body must be a JSON object"}, status_code=400
        )
    clone_path = body.get("clone_path")
    if clone_path is not None and not isinstance(clone_path, str):
        return JSONResponse(
            {"error": "bad_request", "detail": "clone_path must be a string"}, status_code=400
        )
    full_rescan = bool(body.get("full_rescan", False))

    services = _services(request)
    try:
        summary = await run_in_threadpool(services.run_index, clone_path, full_rescan)
    except RepositorySyncError as exc:
        logger.error("admin_index sync failed: %s", exc)
        return JSONResponse({"error": "sync_failed", "detail": str(exc)}, status_code=502)
    except Exception as exc:
        logger.exception("admin_index failed: %s", exc)
        return JSONResponse({"error": "internal_error", "detail": str(exc)}, status_code=500)
    return JSONResponse(summary.to_dict())


async def admin_search(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    text = request.query_params.get("q", "")
    top_k_param = request.query_params.get("top_k")
    try:
        top_k = int(top_k_param) if top_k_param is not None else None
    except ValueError:
        return JSONResponse(
            {"error": "bad_request", "detail": "top_k must be an integer"}, status_code=400
        )

    services = _services(request)
    try:
        matches = await run_in_threadpool(services.retriever.search, text, top_k)
    except ValidationError as exc:
        return JSONResponse({"error": "bad_request", "detail": str(exc)}, status_code=400)
    except EmbeddingError as exc:
        logger.error("admin_search embedding failed: %s", exc)
        return JSONResponse(
            {
                "error": "embedding_error",
                "detail": str(exc),
                "provider": describe_embedding_provider(services.config),
            },
            status_code=502,
        )
    except Exception as exc:
        logger.exception("admin_search failed: %s", exc)
        return JSONResponse({"error": "internal_error", "detail": str(exc)}, status_code=500)

    return JSONResponse({"count": len(matches), "matches": [m.to_dict() for m in matches]})


async def admin_config_view(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    return JSONResponse(_redact(get_config().config_data))


routes = [
    Route("/admin/status", admin_status, methods=["GET"]),
    Route("/admin/index", admin_index, methods=["POST"]),
    Route("/admin/search", admin_search, methods=["GET"]),
    Route("/admin/config", admin_config_view, methods=["GET"]),
]


def create_app(services: Optional[Services] = None) -> Starlette:
    """Build the admin app; services are created on first request when not given."""
    application = Starlette(debug=False, routes=routes)
    application.state.services = services
    return application


app = create_app()
