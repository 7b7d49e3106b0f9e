"""Authenticated, retrying HTTP clients for third-party travel providers.

Two provider families share one contract:

* :class:`OAuthApiClient` attaches a cached OAuth2 bearer token;
* :class:`ApiKeyClient` injects a static ``api_key`` query parameter and
  treats an ``error`` field inside a 2xx body as a failure.

``client()`` returns ``None`` when the provider is disabled or cannot
authenticate, so call sites can short-circuit to "service unavailable".
Requests retry transport errors and 5xx/429 responses; the final response
is inspected instead of raising at the transport layer, and non-2xx ends
in :class:`UpstreamApiError`.
"""
from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from trip_common.retry import RetryPolicy, SleepFn, call_with_retry

from integration_service.core.exceptions import (
    AuthenticationFailure,
    ConfigurationDisabled,
    UpstreamApiError,
)
from integration_service.domain.providers import ProviderCredential
from integration_service.services.token_provider import TokenProvider

logger = structlog.get_logger(__name__)

_VERSION_SUFFIX = re.compile(r"/v\d+$")
_MASKED_PARAMS = frozenset({"api_key", "client_secret"})

ErrorMessageFn = Callable[[Any, str], str]


@dataclass(frozen=True)
class RawResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except json.JSONDecodeError:
            return None


def _is_retryable(response: RawResponse) -> bool:
    return response.status >= 500 or response.status == 429


def versioned_base_url(base_url: str, version: str | None) -> str:
    """Swap the trailing ``/vN`` segment of ``base_url`` for ``version``."""
    base = base_url.rstrip("/")
    if not version:
        return base
    if _VERSION_SUFFIX.search(base):
        return _VERSION_SUFFIX.sub(f"/{version}", base)
    return f"{base}/{version}"


def oauth_error_message(data: Any, body: str) -> str:
    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get("detail") or errors[0].get("title")
            if detail:
                return str(detail)
        if data.get("error_description"):
            return str(data["error_description"])
    return body or "Unknown error"


def api_key_error_message(data: Any, body: str) -> str:
    if isinstance(data, dict):
        for key in ("error", "message"):
            if data.get(key):
                return str(data[key])
    return body or "Unknown error"


def _masked(params: Mapping[str, Any] | None) -> dict[str, Any]:
    return {k: ("***" if k in _MASKED_PARAMS else v) for k, v in (params or {}).items()}


class AuthenticatedClient:
    """HTTP client bound to one provider base URL and credential."""

    def __init__(
        self,
        session: ClientSession,
        credential: ProviderCredential,
        *,
        base_url: str,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        error_message: ErrorMessageFn = oauth_error_message,
        soft_errors: bool = False,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._session = session
        self._credential = credential
        self._base_url = base_url
        self._headers = dict(headers or {})
        self._params = dict(params or {})
        self._error_message = error_message
        self._soft_errors = soft_errors
        self._sleep = sleep
        self._policy = RetryPolicy.from_millis(credential.retry_times, credential.retry_sleep_ms)
        self._timeout = ClientTimeout(total=credential.timeout_seconds)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        if not path:
            return self._base_url
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get(
        self, path: str = "", *, params: Mapping[str, Any] | None = None, context: str = ""
    ) -> dict[str, Any]:
        return await self.request("GET", path, params=params, context=context)

    async def post(
        self,
        path: str = "",
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        context: str = "",
    ) -> dict[str, Any]:
        return await self.request("POST", path, params=params, json=json, context=context)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        context: str = "",
    ) -> dict[str, Any]:
        url = self._url(path)
        query = {**(params or {}), **self._params}
        logger.debug(
            "provider api call",
            provider=self._credential.name,
            method=method,
            endpoint=path or url,
            params=_masked(query),
            context=context,
        )

        async def send() -> RawResponse:
            async with self._session.request(
                method,
                url,
                params=query or None,
                json=json,
                headers=self._headers,
                timeout=self._timeout,
            ) as resp:
                return RawResponse(status=resp.status, body=await resp.text())

        try:
            response = await call_with_retry(
                send,
                self._policy,
                retry_on=(ClientError, asyncio.TimeoutError),
                retry_if=_is_retryable,
                sleep=self._sleep,
            )
        except (ClientError, asyncio.TimeoutError) as exc:
            error = UpstreamApiError(
                self._credential.name,
                status=None,
                message=str(exc) or type(exc).__name__,
                context=context,
            )
            logger.error("provider api unreachable", **error.as_log_fields())
            raise error from exc
        return self._handle_response(response, context)

    def _handle_response(self, response: RawResponse, context: str) -> dict[str, Any]:
        data = response.json()
        if response.ok:
            envelope = data if isinstance(data, dict) else {}
            if self._soft_errors and envelope.get("error"):
                self._fail(response.status, str(envelope["error"]), context, envelope)
            return envelope
        self._fail(response.status, self._error_message(data, response.body), context, data)
        raise AssertionError("unreachable")

    def _fail(self, status: int, message: str, context: str, data: Any) -> None:
        errors = data.get("errors") if isinstance(data, dict) else None
        error = UpstreamApiError(
            self._credential.name,
            status=status,
            message=message,
            context=context,
            errors=errors if isinstance(errors, list) else None,
        )
        logger.error("provider api error", **error.as_log_fields())
        raise error


class OAuthApiClient:
    """Client factory for OAuth2 client-credentials providers."""

    def __init__(
        self,
        credential: ProviderCredential,
        session: ClientSession,
        token_provider: TokenProvider,
        *,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._credential = credential
        self._session = session
        self._tokens = token_provider
        self._sleep = sleep

    @property
    def credential(self) -> ProviderCredential:
        return self._credential

    @property
    def is_enabled(self) -> bool:
        return self._credential.is_enabled

    async def client(self, version: str | None = None) -> AuthenticatedClient | None:
        try:
            token = await self._tokens.get_token(self._credential)
        except ConfigurationDisabled:
            logger.warning("provider disabled, skipping call", provider=self._credential.name)
            return None
        except AuthenticationFailure as exc:
            logger.error(
                "provider authentication failed",
                provider=self._credential.name,
                status=exc.status,
            )
            return None
        return AuthenticatedClient(
            self._session,
            self._credential,
            base_url=versioned_base_url(self._credential.base_url, version),
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            error_message=oauth_error_message,
            sleep=self._sleep,
        )


class ApiKeyClient:
    """Client factory for providers authenticated by an ``api_key`` query parameter."""

    def __init__(
        self,
        credential: ProviderCredential,
        session: ClientSession,
        *,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._credential = credential
        self._session = session
        self._sleep = sleep

    @property
    def credential(self) -> ProviderCredential:
        return self._credential

    @property
    def is_enabled(self) -> bool:
        return self._credential.is_enabled

    async def client(self) -> AuthenticatedClient | None:
        if not self._credential.is_enabled:
            logger.warning("provider disabled, skipping call", provider=self._credential.name)
            return None
        return AuthenticatedClient(
            self._session,
            self._credential,
            base_url=self._credential.base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            params={"api_key": self._credential.api_key},
            error_message=api_key_error_message,
            soft_errors=True,
            sleep=self._sleep,
        )
