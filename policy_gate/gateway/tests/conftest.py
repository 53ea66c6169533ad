import os

import pytest

# Settings and the app are created at import time; point them at files that do not exist
# so tests run with defaults and basic logging.
os.environ.setdefault("GATE_CONFIG_PATH", "/nonexistent/policy-gate/gate.yml")
os.environ.setdefault("LOG_CONFIG_PATH", "/nonexistent/policy-gate/gate_log.yaml")

from policy_gate.gateway.models.gate_config import GateConfig  # noqa: E402

DECISION_URL = "http://opa.test:8181/v1/data/http/authz"


@pytest.fixture
def decision_url():
    return DECISION_URL


@pytest.fixture
def gate_config():
    """Gate config pointing at the mocked decision service."""
    return GateConfig(url=DECISION_URL)


@pytest.fixture
def make_scope():
    """Factory for minimal ASGI HTTP scopes."""

    def _make_scope(
        method: str = "GET",
        path: str = "/",
        query_string: bytes = b"",
        headers=None,
        server=("testserver", 80),
    ):
        return {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "path": path,
            "raw_path": path.encode(),
            "query_string": query_string,
            "headers": headers if headers is not None else [(b"host", b"testserver")],
            "server": server,
            "client": ("127.0.0.1", 12345),
        }

    return _make_scope
