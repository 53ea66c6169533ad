import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic_core import PydanticSerializationError

from .core.exceptions import DecisionUnavailableError
from .models.query import AuthorizationQuery, DecisionPayload

logger = logging.getLogger("gateway.decision")


class DecisionClient:
    """Wrapper for the policy decision API"""

    def __init__(self, http_client: httpx.AsyncClient, url: Optional[str], timeout: float):
        self.client = http_client
        self.url = url
        self.timeout = timeout

    async def decide(self, query: AuthorizationQuery) -> Dict[str, Any]:
        """
        Post ``{"input": query}`` and return the ``result`` mapping.

        A missing or null ``result`` yields an empty mapping.

        Raises:
            DecisionUnavailableError: no usable answer from the decision service
        """
        if not self.url:
            raise DecisionUnavailableError("no decision service url configured")

        content = self.encode_payload(query)

        try:
            response = await self.client.post(
                self.url,
                content=content,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise DecisionUnavailableError(f"timed out after {self.timeout}s", cause=e) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DecisionUnavailableError(f"request failed: {e}", cause=e) from e

        if not response.is_success:
            raise DecisionUnavailableError(
                f"unexpected status {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DecisionUnavailableError(
                "response is not valid JSON", status_code=response.status_code, cause=e
            ) from e

        if not isinstance(data, dict):
            raise DecisionUnavailableError(
                "response is not a JSON object", status_code=response.status_code
            )

        result = data.get("result")
        if result is None:
            logger.debug("Decision response has no result", extra={"url": self.url})
            return {}
        if not isinstance(result, dict):
            raise DecisionUnavailableError(
                f"result is {type(result).__name__}, expected object",
                status_code=response.status_code,
            )
        return result

    @staticmethod
    def encode_payload(query: AuthorizationQuery) -> bytes:
        """
        Serialize ``{"input": query}`` as JSON bytes.

        Raises:
            DecisionUnavailableError: the query has no JSON representation
        """
        try:
            payload = DecisionPayload(input=query).model_dump()
            return json.dumps(payload, separators=(",", ":"), allow_nan=False).encode("ascii")
        except (PydanticSerializationError, ValueError, TypeError, RecursionError) as e:
            raise DecisionUnavailableError(f"cannot encode query: {e}", cause=e) from e
