"""
Gate configuration models.

Mirror the route-level configuration object. Keys are accepted in their
camelCase wire form (``allowField``) or as snake_case attribute names.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _check_header_text(text: str, what: str) -> str:
    """Header text must be latin-1 encodable and stay on one line."""
    try:
        text.encode("latin-1")
    except UnicodeEncodeError as e:
        raise ValueError(f"{what} {text!r} is not latin-1 encodable") from e
    if "\r" in text or "\n" in text:
        raise ValueError(f"{what} {text!r} contains a line break")
    return text


class ErrorResponse(BaseModel):
    """Response written when a request is denied."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    headers: Dict[str, str] = Field(default_factory=dict)
    status_code: int = Field(default=401, alias="statusCode", ge=100, le=599)
    content_type: str = Field(default="text/plain", alias="contentType")
    # None and absent are the same: no body bytes are written.
    body: Optional[Any] = None

    @field_validator("headers")
    @classmethod
    def check_headers(cls, headers: Dict[str, str]) -> Dict[str, str]:
        for name, value in headers.items():
            if not name:
                raise ValueError("header name must not be empty")
            _check_header_text(name, "header name")
            _check_header_text(value, f"value of header {name!r}")
        return headers

    @field_validator("content_type")
    @classmethod
    def check_content_type(cls, content_type: str) -> str:
        return _check_header_text(content_type, "content type")


class GateConfig(BaseModel):
    """Immutable per-route gate configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    url: Optional[str] = None
    allow_field: str = Field(default="allow", alias="allowField", min_length=1)
    error_response: ErrorResponse = Field(default_factory=ErrorResponse, alias="errorResponse")
    timeout: float = Field(default=5.0, gt=0, description="Decision call timeout (seconds)")
