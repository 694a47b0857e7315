# visual_edits/server.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from . import __version__
from .config import GatewayConfig, load_gateway_config
from .gateway import EditGateway

log = logging.getLogger(__name__)

TAGS_METADATA = [
    {"name": "health", "description": "Liveness probe (no auth, no CORS gating)"},
    {"name": "edit", "description": "Authenticated source edits from the visual editor"},
]


def create_app(config: GatewayConfig, *, gateway: Optional[EditGateway] = None) -> FastAPI:
    """Build the FastAPI app around an explicit, already-loaded GatewayConfig."""
    gw = gateway or EditGateway(config)

    app = FastAPI(
        title="visual-edits gateway",
        version=__version__,
        openapi_tags=TAGS_METADATA,
    )
    app.state.gateway = gw

    def _cors_headers(origin: Optional[str], *, preflight: bool = False) -> Dict[str, str]:
        if not origin or not gw.is_allowed_origin(origin):
            return {}
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Headers": config.cors_allow_headers,
            "Vary": "Origin",
        }
        if preflight:
            headers["Access-Control-Allow-Methods"] = config.cors_allow_methods
        return headers

    # ---------- Health ----------

    @app.get("/ping", tags=["health"])
    async def ping():
        return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}

    # ---------- Edits ----------

    @app.post("/edit-file", tags=["edit"])
    async def edit_file(request: Request):
        headers = _cors_headers(request.headers.get("origin"))

        if not gw.is_authorized(request.headers.get(config.api_key_header)):
            log.warning("unauthorized edit request", extra={"meta": {"client": getattr(request.client, "host", None)}})
            return JSONResponse(status_code=401, content={"error": "Unauthorized"}, headers=headers)

        try:
            body = await request.json()
        except ValueError:
            body = None
        changes = body.get("changes") if isinstance(body, dict) else None
        if not isinstance(changes, list) or not changes:
            return JSONResponse(status_code=400, content={"error": "No changes provided"}, headers=headers)

        try:
            result = await asyncio.to_thread(gw.process, changes)
        except Exception as e:
            # Per-file failures are already folded into the result; anything
            # reaching here is unexpected.
            log.exception("edit-file failed: %s", e)
            return JSONResponse(status_code=500, content={"error": str(e)}, headers=headers)

        return JSONResponse(content=result.to_payload(), headers=headers)

    @app.options("/edit-file", tags=["edit"])
    async def edit_file_preflight(request: Request):
        origin = request.headers.get("origin")
        if not gw.is_allowed_origin(origin):
            return Response(status_code=403)
        return Response(status_code=200, headers=_cors_headers(origin, preflight=True))

    return app


def create_app_from_env() -> FastAPI:
    """Factory for `uvicorn --factory visual_edits.server:create_app_from_env`."""
    config, _ = load_gateway_config()
    return create_app(config)


def run(config: GatewayConfig) -> int:
    import uvicorn

    log.info(
        "starting visual-edits gateway",
        extra={
            "meta": {
                "project_root": str(config.project_root),
                "host": config.host,
                "port": config.port,
                "secret_loaded": config.secret is not None,
                "audit": config.audit_enabled,
            }
        },
    )
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level)
    return 0
