"""
Gateway configuration definition.

Loads process settings from environment variables (pydantic-settings) and
the route-level gate configuration from a YAML file.
"""

import os
import sys
from typing import Optional

import yaml
from pydantic import Field, ValidationError

from policy_gate.common.core.config import BaseAppConfig

from .core.exceptions import GateConfigError
from .models.gate_config import GateConfig


class GatewayConfig(BaseAppConfig):
    """
    Configuration management for the gate service.
    """

    # Path settings
    GATE_CONFIG_PATH: str = Field(
        default="/app/config/gate.yml", description="Gate configuration file path"
    )

    # Decision service overrides (take precedence over the gate config file)
    DECISION_URL: Optional[str] = Field(default=None, description="Decision service endpoint")
    DECISION_TIMEOUT: Optional[float] = Field(
        default=None, gt=0, description="Decision call timeout (seconds)"
    )

    # Upstream forwarding for allowed requests
    UPSTREAM_URL: Optional[str] = Field(default=None, description="Base URL of the protected app")
    UPSTREAM_TIMEOUT: float = Field(default=30.0, description="Upstream call timeout (seconds)")

    # FastAPI settings
    root_path: str = Field(default="", description="API root path (for proxy)")


def load_gate_config(path: str) -> GateConfig:
    """
    Read the gate configuration from a YAML file.

    A missing file or an empty document gives the defaults.

    Raises:
        GateConfigError: the document is not a mapping or fails validation
    """
    if not os.path.exists(path):
        return GateConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise GateConfigError(path, str(e)) from e

    if data is None:
        return GateConfig()
    if not isinstance(data, dict):
        raise GateConfigError(path, f"expected a mapping, got {type(data).__name__}")

    try:
        return GateConfig.model_validate(data)
    except ValidationError as e:
        raise GateConfigError(path, str(e)) from e


def resolve_gate_config(settings: GatewayConfig) -> GateConfig:
    """Load the gate config file and apply environment overrides."""
    gate_config = load_gate_config(settings.GATE_CONFIG_PATH)

    overrides = {}
    if settings.DECISION_URL:
        overrides["url"] = settings.DECISION_URL
    if settings.DECISION_TIMEOUT is not None:
        overrides["timeout"] = settings.DECISION_TIMEOUT
    if overrides:
        gate_config = gate_config.model_copy(update=overrides)
    return gate_config


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = GatewayConfig()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise
