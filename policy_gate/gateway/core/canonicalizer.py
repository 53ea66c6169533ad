"""
Request canonicalization.

Turns an ASGI HTTP request into the AuthorizationQuery sent to the decision
service. Purely structural: nothing is validated or size-limited here.
"""

import string
from typing import Dict, List
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope

from ..models.query import AuthorizationQuery

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")


def canonical_header_key(name: str) -> str:
    """
    Canonical MIME form of a header name: ``x-forwarded-for`` -> ``X-Forwarded-For``.

    Names with characters outside the HTTP token set are returned untouched.
    """
    if not name or any(ch not in _TOKEN_CHARS for ch in name):
        return name
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def split_path(path: str) -> List[str]:
    """
    Split a URL path on "/" and drop the first segment.

    ``/a/b`` -> ``["a", "b"]``, ``/`` -> ``[""]``, ``""`` -> ``[]``.
    """
    return path.split("/")[1:]


def resolve_host(scope: Scope) -> str:
    host = Headers(scope=scope).get("host")
    if host is not None:
        return host

    server = scope.get("server")
    if not server:
        return ""
    server_host, server_port = server
    if server_port is None:
        return server_host
    return f"{server_host}:{server_port}"


def collect_headers(scope: Scope) -> Dict[str, List[str]]:
    """Multi-valued header map, values in arrival order. Host is excluded."""
    headers: Dict[str, List[str]] = {}
    for raw_name, raw_value in scope.get("headers", []):
        name = raw_name.decode("latin-1")
        if name.lower() == "host":
            continue
        headers.setdefault(canonical_header_key(name), []).append(raw_value.decode("latin-1"))
    return headers


def collect_query(scope: Scope) -> Dict[str, List[str]]:
    query_string = scope.get("query_string", b"").decode("latin-1")
    query: Dict[str, List[str]] = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True):
        query.setdefault(key, []).append(value)
    return query


async def read_body(receive: Receive) -> bytes:
    """
    Drain the request body into memory.

    Raises:
        ClientDisconnect: the client went away before the body was complete
    """
    chunks: List[bytes] = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            raise ClientDisconnect()
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def build_query(scope: Scope, body: bytes) -> AuthorizationQuery:
    """Build the canonical query for an already drained request."""
    return AuthorizationQuery(
        host=resolve_host(scope),
        path=split_path(scope.get("path", "")),
        method=scope["method"],
        headers=collect_headers(scope),
        query=collect_query(scope),
        body=body,
    )
