"""
Authorization query models.

The canonical form of an inbound HTTP request, as sent to the decision
service under the top-level ``input`` key.
"""

import json
import math
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_serializer


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant: {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"out of range float: {text}")
    return value


def decode_body_text(body: bytes) -> str:
    """
    Text form of a body that is not JSON.

    UTF-8 when the bytes are valid UTF-8, latin-1 otherwise; latin-1 maps
    every byte to one code point, so ``text.encode("latin-1")`` restores
    the original bytes.
    """
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return body.decode("latin-1")


class AuthorizationQuery(BaseModel):
    """
    Rich context representing an incoming request.

    ``body`` keeps the raw bytes; it is only interpreted when serialized.
    """

    host: str = ""
    path: List[str] = Field(default_factory=list)
    method: str
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    query: Dict[str, List[str]] = Field(default_factory=dict)
    body: bytes = b""

    @field_serializer("body")
    def serialize_body(self, body: bytes) -> Any:
        """
        Wire form of the raw body.

        Empty bodies become the empty string, JSON text is embedded as the
        value it encodes, anything else is passed through as a string.
        JSON the wire cannot carry (non-finite numbers, nesting past the
        recursion limit) is passed through as a string too.
        """
        if not body:
            return ""
        try:
            return json.loads(body, parse_constant=_reject_constant, parse_float=_finite_float)
        except (ValueError, RecursionError):
            return decode_body_text(body)


class DecisionPayload(BaseModel):
    """Request document posted to the decision service."""

    input: AuthorizationQuery
