"""
ActionInvoker that calls platform REST APIs directly with httpx.

Each platform is described by a PlatformConfig: a base URL, an auth style and
a table of methods. Requests are built from the step's rendered parameters
and the resolved credential; responses are normalized into ActionOutcomes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import httpx

from shared.config import config
from shared.logger import get_logger
from blueprint_engine.errors import ActionInvocationError
from blueprint_engine.registry.credentials import Credential
from blueprint_engine.registry.integration_registry import ActionOutcome

logger = get_logger("blueprint_engine.integrations.http")

BEARER_TOKEN_KEYS = ("access_token", "bot_token", "personal_access_token", "api_key")


@dataclass(frozen=True)
class PlatformMethod:
    http_method: str = "POST"
    endpoint: str = ""
    # Parameter names tried, in order, to fill ``{id}`` in the endpoint
    path_params: tuple[str, ...] = ()
    wrap_body: Optional[str] = None


@dataclass(frozen=True)
class PlatformConfig:
    base_url: Optional[str]
    methods: Mapping[str, PlatformMethod]
    auth: str = "bearer"  # bearer | key_token | none
    # Credential key holding the full request URL (incoming webhooks)
    url_credential_key: Optional[str] = None


DEFAULT_PLATFORMS: Dict[str, PlatformConfig] = {
    "slack": PlatformConfig(
        base_url="https://slack.com/api",
        methods={"send_message": PlatformMethod(endpoint="chat.postMessage")},
    ),
    "gmail": PlatformConfig(
        base_url="https://gmail.googleapis.com/gmail/v1",
        methods={"send_email": PlatformMethod(endpoint="users/me/messages/send")},
    ),
    "asana": PlatformConfig(
        base_url="https://app.asana.com/api/1.0",
        methods={"create_task": PlatformMethod(endpoint="tasks", wrap_body="data")},
    ),
    "trello": PlatformConfig(
        base_url="https://api.trello.com/1",
        methods={"create_card": PlatformMethod(endpoint="cards")},
        auth="key_token",
    ),
    "microsoft_teams": PlatformConfig(
        base_url=None,
        methods={"send_message": PlatformMethod()},
        auth="none",
        url_credential_key="webhook_url",
    ),
    "help_scout": PlatformConfig(
        base_url="https://api.helpscout.net/v2",
        methods={
            "add_label_to_ticket": PlatformMethod(
                endpoint="conversations/{id}/tags",
                path_params=("id", "ticket_id"),
            ),
            "monitor_new_ticket": PlatformMethod(http_method="GET", endpoint="conversations"),
        },
    ),
}


@dataclass
class PlatformRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


def _bearer_token(credential: Optional[Credential]) -> Optional[str]:
    if credential is None:
        return None
    for key in BEARER_TOKEN_KEYS:
        token = credential.get(key)
        if token:
            return str(token)
    return None


class HttpActionInvoker:
    def __init__(
        self,
        platforms: Mapping[str, PlatformConfig] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.platforms: Dict[str, PlatformConfig] = dict(DEFAULT_PLATFORMS if platforms is None else platforms)
        self._client = client
        self.timeout = timeout if timeout is not None else config.http_timeout_seconds

    def build_request(
        self,
        integration: str,
        method: str,
        parameters: Mapping[str, Any],
        credential: Optional[Credential],
    ) -> PlatformRequest:
        platform = self.platforms.get(integration.lower())
        if platform is None:
            raise ActionInvocationError(f"Platform integration not configured: {integration}")
        method_config = platform.methods.get(method)
        if method_config is None:
            raise ActionInvocationError(f"Method not configured for {integration}: {method}")

        body = dict(parameters)
        if platform.url_credential_key:
            url = credential.get(platform.url_credential_key) if credential else None
            if not url:
                raise ActionInvocationError(
                    f"Credential for {integration} has no '{platform.url_credential_key}'"
                )
        else:
            endpoint = method_config.endpoint
            if method_config.path_params:
                path_value = next(
                    (body[name] for name in method_config.path_params if body.get(name) not in (None, "")),
                    None,
                )
                if path_value is None:
                    raise ActionInvocationError(
                        f"{integration}.{method} requires one of: {', '.join(method_config.path_params)}"
                    )
                for name in method_config.path_params:
                    body.pop(name, None)
                endpoint = endpoint.format(id=path_value)
            url = f"{platform.base_url}/{endpoint}"

        headers = {"Content-Type": "application/json"}
        if platform.auth == "key_token":
            if credential is not None:
                headers["key"] = str(credential.get("api_key", ""))
                headers["token"] = str(credential.get("api_token", ""))
        elif platform.auth == "bearer":
            token = _bearer_token(credential)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if method_config.wrap_body:
            body = {method_config.wrap_body: body}

        return PlatformRequest(method=method_config.http_method, url=str(url), headers=headers, body=body)

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def invoke(
        self,
        integration: str,
        method: str,
        parameters: Dict[str, Any],
        credential: Optional[Credential],
    ) -> ActionOutcome:
        try:
            request = self.build_request(integration, method, parameters, credential)
        except ActionInvocationError as exc:
            return ActionOutcome.failed(str(exc))

        logger.info(f"Calling {integration}.{method}: {request.method} {request.url}")
        try:
            async with self._client_scope() as client:
                if request.method == "GET":
                    response = await client.request(
                        request.method, request.url, headers=request.headers, params=request.body or None
                    )
                else:
                    response = await client.request(
                        request.method, request.url, headers=request.headers, json=request.body
                    )
        except httpx.HTTPError as exc:
            logger.error(f"{integration}.{method} request failed: {exc}")
            return ActionOutcome.failed(f"Platform API call failed: {exc}")

        if response.is_error:
            logger.error(f"{integration}.{method} returned {response.status_code}: {response.text[:200]}")
            return ActionOutcome.failed(
                f"Platform API call failed: {response.status_code} {response.reason_phrase}"
            )

        if not response.content:
            return ActionOutcome.ok({})
        try:
            return ActionOutcome.ok(response.json())
        except ValueError:
            return ActionOutcome.ok(response.text)
