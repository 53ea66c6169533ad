"""
Decision result models.

The decision service answers with ``{"result": {...}}``. The verdict is read
from whichever key the gate is configured with, so the result itself stays
an untyped mapping; only the allow-field is decoded.
"""

from enum import Enum
from typing import Any, Mapping


class AllowOutcome(str, Enum):
    """Outcome of decoding the allow-field from a decision result."""

    ALLOWED = "allowed"
    DENIED = "denied"
    MISSING = "missing"
    INVALID = "invalid"
    # No decision could be obtained; never produced by interpret_decision.
    UNAVAILABLE = "unavailable"

    @property
    def is_allowed(self) -> bool:
        return self is AllowOutcome.ALLOWED


def interpret_decision(result: Mapping[str, Any], allow_field: str) -> AllowOutcome:
    """
    Decode ``result[allow_field]``.

    Only a real boolean counts; ``1``, ``"true"`` and friends are INVALID.
    """
    if allow_field not in result:
        return AllowOutcome.MISSING

    value = result[allow_field]
    if isinstance(value, bool):
        return AllowOutcome.ALLOWED if value else AllowOutcome.DENIED
    return AllowOutcome.INVALID
