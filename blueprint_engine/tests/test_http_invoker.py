from __future__ import annotations

import json

import httpx
import pytest

from blueprint_engine.errors import ActionInvocationError
from blueprint_engine.integrations.http_invoker import HttpActionInvoker
from blueprint_engine.registry.credentials import Credential


def _invoker(handler) -> HttpActionInvoker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpActionInvoker(client=client)


def test_build_request_uses_first_available_bearer_token() -> None:
    invoker = HttpActionInvoker()
    credential = Credential("slack", {"api_key": "key", "bot_token": "xoxb"})

    request = invoker.build_request("slack", "send_message", {"channel": "C1", "text": "hi"}, credential)

    assert request.method == "POST"
    assert request.url == "https://slack.com/api/chat.postMessage"
    assert request.headers["Authorization"] == "Bearer xoxb"
    assert request.body == {"channel": "C1", "text": "hi"}


def test_build_request_platform_specifics() -> None:
    invoker = HttpActionInvoker()

    asana = invoker.build_request(
        "asana", "create_task", {"name": "Call back"}, Credential("asana", {"personal_access_token": "pat"})
    )
    trello = invoker.build_request(
        "trello", "create_card", {"name": "Card"}, Credential("trello", {"api_key": "k", "api_token": "t"})
    )
    teams = invoker.build_request(
        "microsoft_teams",
        "send_message",
        {"text": "hi"},
        Credential("microsoft_teams", {"webhook_url": "https://example.webhook.office.com/abc"}),
    )
    help_scout = invoker.build_request(
        "help_scout", "add_label_to_ticket", {"ticket_id": 99, "tag": "vip"}, Credential("help_scout", {"access_token": "hs"})
    )

    assert asana.body == {"data": {"name": "Call back"}}
    assert asana.headers["Authorization"] == "Bearer pat"
    assert trello.headers["key"] == "k" and trello.headers["token"] == "t"
    assert "Authorization" not in trello.headers
    assert teams.url == "https://example.webhook.office.com/abc"
    assert "Authorization" not in teams.headers
    assert help_scout.url == "https://api.helpscout.net/v2/conversations/99/tags"
    assert help_scout.body == {"tag": "vip"}


@pytest.mark.parametrize(
    ("integration", "method", "parameters", "message"),
    [
        ("jira", "create_issue", {}, "Platform integration not configured: jira"),
        ("slack", "delete_channel", {}, "Method not configured for slack: delete_channel"),
        ("help_scout", "add_label_to_ticket", {"tag": "x"}, "help_scout.add_label_to_ticket requires one of: id, ticket_id"),
        ("microsoft_teams", "send_message", {}, "Credential for microsoft_teams has no 'webhook_url'"),
    ],
)
def test_build_request_errors(integration: str, method: str, parameters: dict, message: str) -> None:
    with pytest.raises(ActionInvocationError) as excinfo:
        HttpActionInvoker().build_request(integration, method, parameters, Credential(integration, {}))

    assert str(excinfo.value) == message


@pytest.mark.asyncio
async def test_invoke_posts_json_and_returns_response_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True, "ts": "1.2"})

    invoker = _invoker(handler)

    outcome = await invoker.invoke(
        "slack", "send_message", {"channel": "C1", "text": "hi"}, Credential("slack", {"bot_token": "xoxb"})
    )

    assert outcome.success is True
    assert outcome.output == {"ok": True, "ts": "1.2"}
    assert captured[0].headers["authorization"] == "Bearer xoxb"
    assert json.loads(captured[0].content) == {"channel": "C1", "text": "hi"}


@pytest.mark.asyncio
async def test_invoke_get_sends_query_parameters() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"_embedded": {"conversations": []}})

    outcome = await _invoker(handler).invoke(
        "help_scout", "monitor_new_ticket", {"status": "active"}, Credential("help_scout", {"access_token": "hs"})
    )

    assert outcome.success is True
    assert captured[0].method == "GET"
    assert captured[0].url.params["status"] == "active"


@pytest.mark.asyncio
async def test_invoke_reports_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": "missing_scope"})

    outcome = await _invoker(handler).invoke("gmail", "send_email", {"raw": "x"}, Credential("gmail", {"access_token": "t"}))

    assert outcome.success is False
    assert outcome.error == "Platform API call failed: 403 Forbidden"


@pytest.mark.asyncio
async def test_invoke_reports_transport_errors_and_unknown_methods() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    invoker = _invoker(handler)

    down = await invoker.invoke("slack", "send_message", {}, Credential("slack", {"bot_token": "x"}))
    unknown = await invoker.invoke("slack", "delete_channel", {}, Credential("slack", {"bot_token": "x"}))

    assert down.error == "Platform API call failed: connection refused"
    assert unknown.error == "Method not configured for slack: delete_channel"


@pytest.mark.asyncio
async def test_invoke_handles_empty_and_text_bodies() -> None:
    responses = iter([httpx.Response(204), httpx.Response(200, text="ok")])

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    invoker = _invoker(handler)
    credential = Credential("microsoft_teams", {"webhook_url": "https://example.webhook.office.com/abc"})

    empty = await invoker.invoke("microsoft_teams", "send_message", {"text": "a"}, credential)
    text = await invoker.invoke("microsoft_teams", "send_message", {"text": "b"}, credential)

    assert empty.output == {}
    assert text.output == "ok"
