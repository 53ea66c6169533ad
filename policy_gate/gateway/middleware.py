"""
Where: policy_gate/gateway/middleware.py
What: Authorization gate ASGI middleware.
Why: Ask the decision service about every request before it reaches the app.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from policy_gate.common.core.request_context import clear_request_id, generate_request_id

from .clients import DecisionClient
from .core.canonicalizer import build_query, read_body
from .core.encoder import encode_body
from .core.exceptions import BodyEncodingError, DecisionUnavailableError
from .models.decision import AllowOutcome, interpret_decision
from .models.gate_config import ErrorResponse, GateConfig
from .models.query import AuthorizationQuery

logger = logging.getLogger("gateway.middleware")

# Policy violation close code for websocket handshakes.
WS_POLICY_VIOLATION = 1008


class ClientGone(Exception):
    """The client disconnected while the decision was pending."""


def build_denial_response(error_response: ErrorResponse) -> Response:
    """
    Build the configured denial response.

    The configured content type always wins over a Content-Type entry in
    the headers map. Encoder failures are written as the body text.
    """
    headers = {
        name: value
        for name, value in error_response.headers.items()
        if name.lower() != "content-type"
    }
    headers["Content-Type"] = error_response.content_type

    body = b""
    if error_response.body is not None:
        try:
            body = encode_body(error_response.body, error_response.content_type)
        except BodyEncodingError as e:
            logger.error("Failed to encode denial body: %s", e)
            body = str(e).encode("utf-8")

    return Response(content=body, status_code=error_response.status_code, headers=headers)


class AuthorizationGate:
    """
    Pure ASGI middleware that forwards a request only when the decision
    service explicitly allows it.

    The shared ``httpx.AsyncClient`` is either injected or taken from
    ``app.state.http_client`` of the hosting application.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: GateConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.app = app
        self.config = config
        self.http_client = http_client

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            # Only HTTP requests can be authorized; refuse the handshake.
            await send({"type": "websocket.close", "code": WS_POLICY_VIOLATION})
            return
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        generate_request_id()
        try:
            try:
                body = await read_body(receive)
            except ClientDisconnect:
                logger.info("Client disconnected while sending the body")
                return

            query = build_query(scope, body)
            pending: List[Message] = []
            try:
                outcome = await self._authorize(scope, query, receive, pending)
            except ClientGone:
                logger.info(
                    "Client disconnected while awaiting decision",
                    extra={"method": query.method, "path": scope.get("path", "")},
                )
                return

            self._log_verdict(query, scope, outcome, start_time)

            if outcome.is_allowed:
                await self.app(scope, self._replay_receive(body, pending, receive), send)
                return

            response = build_denial_response(self.config.error_response)
            await response(scope, receive, send)
        finally:
            clear_request_id()

    def _decision_client(self, scope: Scope) -> DecisionClient:
        client = self.http_client
        if client is None:
            app = scope.get("app")
            client = getattr(getattr(app, "state", None), "http_client", None)
        if client is None:
            raise DecisionUnavailableError("no shared http client available")
        return DecisionClient(client, self.config.url, self.config.timeout)

    async def _authorize(
        self,
        scope: Scope,
        query: AuthorizationQuery,
        receive: Receive,
        pending: List[Message],
    ) -> AllowOutcome:
        """
        Ask for a decision while watching for the client going away.

        Any failure is returned as UNAVAILABLE; a disconnect raises ClientGone.
        """
        try:
            decision_client = self._decision_client(scope)
        except DecisionUnavailableError as e:
            logger.warning("%s", e)
            return AllowOutcome.UNAVAILABLE

        decision_task = asyncio.ensure_future(decision_client.decide(query))
        watch_task: Optional["asyncio.Future[Message]"] = None
        try:
            while True:
                watch_task = asyncio.ensure_future(receive())
                done, _ = await asyncio.wait(
                    {decision_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if watch_task in done:
                    message = watch_task.result()
                    if message["type"] == "http.disconnect":
                        raise ClientGone()
                    pending.append(message)
                if decision_task in done:
                    break
        finally:
            tasks = [task for task in (decision_task, watch_task) if task is not None]
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Cancelled tasks still have to finish before the request moves on.
            await asyncio.gather(*tasks, return_exceptions=True)

        try:
            result: Dict[str, Any] = decision_task.result()
        except DecisionUnavailableError as e:
            logger.warning(
                "Decision service unavailable, denying: %s",
                e.detail,
                extra={"decision_status": e.status_code, "url": self.config.url},
            )
            return AllowOutcome.UNAVAILABLE

        outcome = interpret_decision(result, self.config.allow_field)
        if outcome is AllowOutcome.INVALID:
            logger.warning(
                "Allow field '%s' is not a boolean, denying",
                self.config.allow_field,
                extra={"value_type": type(result[self.config.allow_field]).__name__},
            )
        return outcome

    @staticmethod
    def _replay_receive(body: bytes, pending: List[Message], receive: Receive) -> Receive:
        """Hand the drained body to the app once, then defer to the real channel."""
        messages = [{"type": "http.request", "body": body, "more_body": False}, *pending]

        async def replay() -> Message:
            if messages:
                return messages.pop(0)
            return await receive()

        return replay

    def _log_verdict(
        self, query: AuthorizationQuery, scope: Scope, outcome: AllowOutcome, start_time: float
    ) -> None:
        latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
        extra = {
            "method": query.method,
            "path": scope.get("path", ""),
            "host": query.host,
            "outcome": outcome.value,
            "latency_ms": latency_ms,
        }
        verdict = "Allowed" if outcome.is_allowed else "Denied"
        logger.info(
            "%s %s %s (%s)", verdict, query.method, extra["path"], outcome.value, extra=extra
        )
