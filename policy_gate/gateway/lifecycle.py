"""
Where: policy_gate/gateway/lifecycle.py
What: Startup/shutdown of the shared outbound HTTP client.
Why: One connection pool serves both decision and upstream calls.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from policy_gate.common.core.http_client import HttpClientFactory

from .config import GatewayConfig

logger = logging.getLogger("gateway.main")


@asynccontextmanager
async def manage_lifespan(app: FastAPI, gateway_config: GatewayConfig) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    factory = HttpClientFactory(gateway_config)
    factory.configure_global_settings()
    client = factory.create_async_client(timeout=gateway_config.UPSTREAM_TIMEOUT)

    try:
        app.state.http_client = client
        logger.info("Gateway initialized with shared http client.")
        yield
    finally:
        logger.info("Gateway shutting down, closing http client.")
        await client.aclose()
