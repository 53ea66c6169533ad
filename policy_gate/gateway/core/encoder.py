"""
Denial body encoding.

Converts the configured body value into bytes for the configured
content type.
"""

import codecs
import json
from typing import Any, Tuple

from .exceptions import BodyEncodingError, UnsupportedContentTypeError

DEFAULT_CHARSET = "utf-8"


def parse_content_type(content_type: str) -> Tuple[str, str]:
    """
    Split a content type into its lowercased media type and charset.

    ``"text/plain; charset=ISO-8859-1"`` -> ``("text/plain", "ISO-8859-1")``
    """
    media_type, *params = content_type.split(";")
    charset = DEFAULT_CHARSET
    for param in params:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip('"')
    return media_type.strip().lower(), charset


def is_json_type(media_type: str) -> bool:
    return media_type == "application/json" or media_type.endswith("+json") or "json" in media_type


def is_text_type(media_type: str) -> bool:
    return media_type.startswith("text/")


def to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    # Structured values have no plain form; best effort is their JSON text.
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def encode_body(value: Any, content_type: str) -> bytes:
    """
    Encode ``value`` for ``content_type``.

    Raises:
        UnsupportedContentTypeError: content type is neither text nor JSON
        BodyEncodingError: the value or charset cannot be encoded
    """
    media_type, charset = parse_content_type(content_type)

    try:
        codecs.lookup(charset)
    except LookupError as e:
        raise BodyEncodingError(f"unknown charset: {charset}") from e

    if is_json_type(media_type):
        try:
            text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise BodyEncodingError(f"cannot encode body as JSON: {e}") from e
    elif is_text_type(media_type):
        text = to_text(value)
    else:
        raise UnsupportedContentTypeError(content_type)

    try:
        return text.encode(charset)
    except UnicodeEncodeError as e:
        raise BodyEncodingError(f"cannot encode body as {charset}: {e}") from e
