"""OAuth2 client-credentials tokens cached per provider.

There is no distributed lock around a cache miss: concurrent callers may
each request a token and the last cache write wins. Client-credentials
tokens are interchangeable, so this only costs an extra token request.
"""
from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from typing import Any

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from integration_service.core.clock import Clock, SystemClock
from integration_service.core.exceptions import AuthenticationFailure, ConfigurationDisabled
from integration_service.domain.providers import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    TOKEN_RENEWAL_HEADROOM,
    CachedToken,
    ProviderCredential,
)
from integration_service.services.cache import Cache

logger = structlog.get_logger(__name__)


def _decode(body: str) -> dict[str, Any]:
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _lifetime_seconds(payload: dict[str, Any]) -> int:
    try:
        return int(payload.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS))
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_LIFETIME_SECONDS


class TokenProvider:
    def __init__(self, session: ClientSession, cache: Cache, clock: Clock | None = None):
        self._session = session
        self._cache = cache
        self._clock = clock or SystemClock()

    async def get_token(self, credential: ProviderCredential) -> str:
        """Return a bearer token for ``credential``, fetching one on a cache miss.

        Raises :class:`ConfigurationDisabled` for a disabled provider and
        :class:`AuthenticationFailure` when the token endpoint refuses.
        """
        if not credential.is_enabled:
            raise ConfigurationDisabled(credential.name)

        cached = CachedToken.from_cache(await self._cache.get(credential.token_cache_key))
        if cached is not None and cached.is_usable(self._clock.now()):
            return cached.access_token
        return await self._request_token(credential)

    async def _request_token(self, credential: ProviderCredential) -> str:
        form = {
            "grant_type": "client_credentials",
            "client_id": credential.api_key,
            "client_secret": credential.api_secret,
        }
        try:
            async with self._session.post(
                credential.token_url,
                data=form,
                timeout=ClientTimeout(total=credential.timeout_seconds),
            ) as resp:
                status = resp.status
                body = await resp.text()
        except (ClientError, asyncio.TimeoutError) as exc:
            logger.error("oauth token request exception", provider=credential.name, error=str(exc))
            raise AuthenticationFailure(credential.name, None, str(exc) or type(exc).__name__) from exc

        payload = _decode(body)
        token = payload.get("access_token") if 200 <= status < 300 else None
        if not token:
            logger.error(
                "oauth token request failed",
                provider=credential.name,
                status=status,
                body=body[:500],
            )
            raise AuthenticationFailure(credential.name, status, body[:500] or "missing access_token")

        lifetime = _lifetime_seconds(payload)
        issued = CachedToken(
            access_token=str(token),
            expires_at=self._clock.now() + timedelta(seconds=lifetime),
        )
        ttl = max(lifetime - int(TOKEN_RENEWAL_HEADROOM.total_seconds()), 0)
        await self._cache.put(credential.token_cache_key, issued.to_cache(), ttl)
        logger.info("oauth token issued", provider=credential.name, ttl_seconds=ttl)
        return issued.access_token
