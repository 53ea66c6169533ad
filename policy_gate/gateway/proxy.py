"""
Upstream forwarding.

Relays requests that passed the gate to the protected application and
turns its answer into a Starlette response.
"""

import logging
from typing import Dict, List, Tuple

import httpx
from fastapi import Request
from fastapi.responses import Response

from .core.exceptions import UpstreamUnavailableError

logger = logging.getLogger("gateway.proxy")

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


def build_upstream_url(base_url: str, path: str, query: str) -> str:
    url = f"{base_url.rstrip('/')}{path}"
    if query:
        url = f"{url}?{query}"
    return url


def filter_request_headers(headers: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    return [
        (name, value)
        for name, value in headers
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in ("host", "content-length")
    ]


def filter_response_headers(headers: httpx.Headers) -> Dict[str, str]:
    # httpx already decoded the body, so length and encoding no longer apply.
    skip = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}
    return {name: value for name, value in headers.items() if name.lower() not in skip}


async def forward_to_upstream(
    request: Request, client: httpx.AsyncClient, base_url: str, timeout: float
) -> Response:
    """
    Send the request to the upstream and relay its response.

    Raises:
        UpstreamUnavailableError: the upstream could not be reached
    """
    url = build_upstream_url(base_url, request.url.path, request.url.query)
    body = await request.body()

    try:
        upstream = await client.request(
            request.method,
            url,
            headers=filter_request_headers(request.headers.items()),
            content=body,
            timeout=timeout,
        )
    except httpx.HTTPError as e:
        raise UpstreamUnavailableError(e) from e

    logger.debug(
        "Upstream responded",
        extra={"url": url, "status": upstream.status_code},
    )
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=filter_response_headers(upstream.headers),
    )
