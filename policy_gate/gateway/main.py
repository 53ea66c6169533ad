"""
Policy Gate - authorization gateway

Asks an external policy decision service about every inbound request and
forwards only allowed requests to the upstream application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import GatewayConfig, config, resolve_gate_config
from .core.logging_config import setup_logging
from .exceptions import register_exception_handlers
from .lifecycle import manage_lifespan
from .middleware import AuthorizationGate
from .models.gate_config import GateConfig
from .proxy import forward_to_upstream

logger = logging.getLogger("gateway.main")

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    gate_config: Optional[GateConfig] = None, settings: Optional[GatewayConfig] = None
) -> FastAPI:
    """Assemble the gateway app with the authorization gate in front of every route."""
    settings = settings or config
    if gate_config is None:
        gate_config = resolve_gate_config(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with manage_lifespan(app, settings):
            yield

    app = FastAPI(title="Policy Gate", lifespan=lifespan, root_path=settings.root_path)
    app.add_middleware(AuthorizationGate, config=gate_config)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.api_route("/{full_path:path}", methods=PROXY_METHODS)
    async def gateway_handler(request: Request, full_path: str):
        if not settings.UPSTREAM_URL:
            return JSONResponse(status_code=404, content={"message": "Not Found"})
        return await forward_to_upstream(
            request,
            request.app.state.http_client,
            settings.UPSTREAM_URL,
            settings.UPSTREAM_TIMEOUT,
        )

    logger.info(
        "Authorization gate attached",
        extra={"decision_url": gate_config.url, "allow_field": gate_config.allow_field},
    )
    return app


setup_logging()
app = create_app()
