"""
Data model definitions package.

Aggregates Pydantic models for use in other modules.
"""

from .decision import AllowOutcome, interpret_decision
from .gate_config import ErrorResponse, GateConfig
from .query import AuthorizationQuery, DecisionPayload

__all__ = [
    "AllowOutcome",
    "interpret_decision",
    "ErrorResponse",
    "GateConfig",
    "AuthorizationQuery",
    "DecisionPayload",
]
