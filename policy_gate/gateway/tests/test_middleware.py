import asyncio
import json
import logging

import httpx
import pytest
import respx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from policy_gate.gateway.middleware import AuthorizationGate, build_denial_response
from policy_gate.gateway.models.gate_config import ErrorResponse, GateConfig


def make_downstream(gate_config: GateConfig, http_client=None) -> FastAPI:
    """Echo app behind the gate."""
    app = FastAPI()

    @app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT"])
    async def echo(request: Request, full_path: str):
        body = await request.body()
        return JSONResponse(
            {
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query,
                "body": body.decode(),
                "x_a": request.headers.getlist("x-a"),
            },
            status_code=201,
            headers={"X-Downstream": "yes"},
        )

    app.add_middleware(AuthorizationGate, config=gate_config, http_client=http_client)
    return app


async def call_gate(app, method="GET", url="/", **kwargs) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        return await client.request(method, url, **kwargs)


@pytest.mark.asyncio
@respx.mock
async def test_allowed_request_is_forwarded_unmodified(gate_config, decision_url):
    respx.post(decision_url).mock(
        return_value=httpx.Response(200, json={"result": {"allow": True}})
    )

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(gate_config, decision_http)
        response = await call_gate(
            app,
            "POST",
            "/orders/7?expand=items",
            content=b"raw body, not json",
            headers=[("X-A", "1"), ("X-A", "2")],
        )

    assert response.status_code == 201
    assert response.headers["x-downstream"] == "yes"
    assert response.json() == {
        "method": "POST",
        "path": "/orders/7",
        "query": "expand=items",
        "body": "raw body, not json",
        "x_a": ["1", "2"],
    }


@pytest.mark.asyncio
@respx.mock
async def test_query_sent_to_decision_service(gate_config, decision_url):
    route = respx.post(decision_url).mock(
        return_value=httpx.Response(200, json={"result": {"allow": False}})
    )

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(gate_config, decision_http)
        await call_gate(
            app,
            "PUT",
            "/foo/bar?a=1&a=2",
            json={"name": "x"},
            headers=[("X-A", "1"), ("X-A", "2")],
        )

    payload = json.loads(route.calls.last.request.content)["input"]
    assert payload["host"] == "testserver"
    assert payload["path"] == ["foo", "bar"]
    assert payload["method"] == "PUT"
    assert payload["headers"]["X-A"] == ["1", "2"]
    assert payload["query"] == {"a": ["1", "2"]}
    assert payload["body"] == {"name": "x"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result",
    [
        {"allow": False},
        {},
        {"other": True},
        {"allow": "true"},
        {"allow": 1},
    ],
)
@respx.mock
async def test_not_allowed_results_are_denied(gate_config, decision_url, result):
    respx.post(decision_url).mock(return_value=httpx.Response(200, json={"result": result}))

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(gate_config, decision_http)
        response = await call_gate(app, "GET", "/secret")

    assert response.status_code == 401
    assert response.headers["content-type"] == "text/plain"
    assert response.content == b""
    assert "x-downstream" not in response.headers


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mock_kwargs",
    [
        {"side_effect": httpx.ConnectError("refused")},
        {"side_effect": httpx.ReadTimeout("slow")},
        {"return_value": httpx.Response(500)},
        {"return_value": httpx.Response(200, content=b"not json")},
    ],
)
@respx.mock
async def test_unavailable_decision_service_gives_denial(decision_url, mock_kwargs):
    respx.post(decision_url).mock(**mock_kwargs)
    gate_config = GateConfig(
        url=decision_url,
        error_response=ErrorResponse(
            status_code=403,
            content_type="application/json",
            headers={"X-Reason": "policy"},
            body={"msg": "no"},
        ),
    )

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(gate_config, decision_http)
        response = await call_gate(app, "GET", "/")

    assert response.status_code == 403
    assert response.headers["content-type"] == "application/json"
    assert response.headers["x-reason"] == "policy"
    assert response.content == b'{"msg":"no"}'


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b'{"a": 1e999}', b"[" * 100000 + b"]" * 100000])
@respx.mock
async def test_unparseable_json_bodies_get_the_denial(decision_url, body):
    route = respx.post(decision_url).mock(
        return_value=httpx.Response(200, json={"result": {"allow": False}})
    )

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(GateConfig(url=decision_url), decision_http)
        response = await call_gate(app, "POST", "/", content=body)

    assert response.status_code == 401
    assert "x-downstream" not in response.headers
    assert json.loads(route.calls.last.request.content)["input"]["body"] == body.decode("ascii")


@pytest.mark.asyncio
@respx.mock
async def test_unavailable_reason_is_logged(gate_config, decision_url, caplog):
    respx.post(decision_url).mock(side_effect=httpx.ConnectError("refused"))

    with caplog.at_level(logging.INFO, logger="gateway.middleware"):
        async with httpx.AsyncClient() as decision_http:
            app = make_downstream(gate_config, decision_http)
            response = await call_gate(app, "GET", "/secret")

    assert response.status_code == 401
    verdicts = [r for r in caplog.records if getattr(r, "outcome", None) is not None]
    assert len(verdicts) == 1
    assert verdicts[0].outcome == "unavailable"
    assert verdicts[0].getMessage() == "Denied GET /secret (unavailable)"


@pytest.mark.asyncio
@respx.mock
async def test_explicit_deny_is_logged_as_denied(gate_config, decision_url, caplog):
    respx.post(decision_url).mock(
        return_value=httpx.Response(200, json={"result": {"allow": False}})
    )

    with caplog.at_level(logging.INFO, logger="gateway.middleware"):
        async with httpx.AsyncClient() as decision_http:
            app = make_downstream(gate_config, decision_http)
            await call_gate(app, "GET", "/secret")

    verdicts = [r for r in caplog.records if getattr(r, "outcome", None) is not None]
    assert [r.outcome for r in verdicts] == ["denied"]


@pytest.mark.asyncio
@respx.mock
async def test_custom_allow_field(decision_url):
    respx.post(decision_url).mock(
        return_value=httpx.Response(200, json={"result": {"allow": False, "permit": True}})
    )
    gate_config = GateConfig(url=decision_url, allow_field="permit")

    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(gate_config, decision_http)
        response = await call_gate(app, "GET", "/")

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_http_client_taken_from_app_state(decision_url):
    gate_config = GateConfig(url=decision_url)
    app = make_downstream(gate_config)

    with respx.mock:
        respx.post(decision_url).mock(
            return_value=httpx.Response(200, json={"result": {"allow": True}})
        )
        async with httpx.AsyncClient() as shared:
            app.state.http_client = shared
            response = await call_gate(app, "GET", "/")

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_missing_http_client_denies(gate_config):
    app = make_downstream(gate_config)

    response = await call_gate(app, "GET", "/")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_url_denies():
    async with httpx.AsyncClient() as decision_http:
        app = make_downstream(GateConfig(), decision_http)
        response = await call_gate(app, "GET", "/")

    assert response.status_code == 401


class TestDenialResponse:
    def test_configured_content_type_wins_over_header_map(self):
        response = build_denial_response(
            ErrorResponse(
                headers={"Content-Type": "x", "X-Other": "1"},
                content_type="text/plain",
                body="denied",
            )
        )

        assert response.headers["content-type"] == "text/plain"
        assert response.headers.getlist("content-type") == ["text/plain"]
        assert response.headers["x-other"] == "1"
        assert response.body == b"denied"

    def test_no_body_configured_is_empty(self):
        response = build_denial_response(ErrorResponse(status_code=418))

        assert response.status_code == 418
        assert response.body == b""

    def test_text_body_verbatim(self):
        response = build_denial_response(ErrorResponse(content_type="text/plain", body="denied"))

        assert response.body == b"denied"

    def test_json_body(self):
        response = build_denial_response(
            ErrorResponse(content_type="application/json", body={"msg": "no"})
        )

        assert response.headers["content-type"] == "application/json"
        assert response.body == b'{"msg":"no"}'

    def test_encoder_failure_is_written_as_body(self):
        response = build_denial_response(
            ErrorResponse(content_type="application/octet-stream", body="x", status_code=403)
        )

        assert response.status_code == 403
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.body == b"unsupported content type: application/octet-stream"


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_decision(gate_config, make_scope):
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow_decision(request: httpx.Request) -> httpx.Response:
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200, json={"result": {"allow": True}})

    messages = [{"type": "http.request", "body": b"", "more_body": False}]

    async def receive():
        if messages:
            return messages.pop(0)
        await started.wait()
        return {"type": "http.disconnect"}

    sent = []

    async def send(message):
        sent.append(message)

    downstream_called = False

    async def downstream(scope, receive, send):
        nonlocal downstream_called
        downstream_called = True

    async with httpx.AsyncClient(transport=httpx.MockTransport(slow_decision)) as client:
        gate = AuthorizationGate(downstream, gate_config, http_client=client)
        await asyncio.wait_for(gate(make_scope(), receive, send), timeout=5)

    assert cancelled.is_set()
    assert sent == []
    assert downstream_called is False


@pytest.mark.asyncio
async def test_disconnect_while_reading_body_writes_nothing(gate_config, make_scope):
    async def receive():
        return {"type": "http.disconnect"}

    sent = []

    async def send(message):
        sent.append(message)

    async with httpx.AsyncClient() as client:
        gate = AuthorizationGate(None, gate_config, http_client=client)
        await gate(make_scope(), receive, send)

    assert sent == []


@pytest.mark.asyncio
async def test_body_is_replayed_then_real_channel_used(gate_config, make_scope):
    messages = [
        {"type": "http.request", "body": b"part1-", "more_body": True},
        {"type": "http.request", "body": b"part2", "more_body": False},
    ]
    response_done = asyncio.Event()

    async def receive():
        if messages:
            return messages.pop(0)
        await response_done.wait()
        return {"type": "http.disconnect"}

    received = []

    async def downstream(scope, receive, send):
        received.append(await receive())
        await send({"type": "http.response.start", "status": 204, "headers": []})
        await send({"type": "http.response.body", "body": b""})
        response_done.set()
        received.append(await receive())

    async def send(message):
        pass

    def allow(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"allow": True}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(allow)) as client:
        gate = AuthorizationGate(downstream, gate_config, http_client=client)
        await asyncio.wait_for(gate(make_scope(method="POST"), receive, send), timeout=5)

    assert received == [
        {"type": "http.request", "body": b"part1-part2", "more_body": False},
        {"type": "http.disconnect"},
    ]


@pytest.mark.asyncio
async def test_websocket_handshake_is_refused(gate_config):
    sent = []

    async def send(message):
        sent.append(message)

    async def receive():
        return {"type": "websocket.connect"}

    gate = AuthorizationGate(None, gate_config)
    await gate({"type": "websocket", "path": "/ws", "headers": []}, receive, send)

    assert sent == [{"type": "websocket.close", "code": 1008}]


@pytest.mark.asyncio
async def test_lifespan_passes_through(gate_config):
    seen = []

    async def downstream(scope, receive, send):
        seen.append(scope["type"])

    gate = AuthorizationGate(downstream, gate_config)
    await gate({"type": "lifespan"}, None, None)

    assert seen == ["lifespan"]
