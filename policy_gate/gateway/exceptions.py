"""
Where: policy_gate/gateway/exceptions.py
What: Exception handler registration for the host app.
Why: Keep error handling setup isolated from route and lifecycle concerns.
"""

from fastapi import FastAPI

from .core.exceptions import (
    UpstreamUnavailableError,
    global_exception_handler,
    upstream_unavailable_handler,
)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(UpstreamUnavailableError, upstream_unavailable_handler)
