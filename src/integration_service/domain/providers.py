"""Provider credentials and cached OAuth tokens."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

# Tokens are dropped from the cache this long before the provider expires them.
TOKEN_RENEWAL_HEADROOM = timedelta(seconds=60)
DEFAULT_TOKEN_LIFETIME_SECONDS = 1799


class ProviderAuth(str, Enum):
    OAUTH2 = "oauth2"
    API_KEY = "api_key"


@dataclass(frozen=True)
class ProviderCredential:
    """Connection settings of one third-party provider, loaded once per process."""

    name: str
    base_url: str
    api_key: str = ""
    api_secret: str = ""
    token_url: str = ""
    auth: ProviderAuth = ProviderAuth.OAUTH2
    timeout_seconds: float = 30.0
    retry_times: int = 3
    retry_sleep_ms: int = 1000
    enabled: bool = True

    @property
    def is_enabled(self) -> bool:
        if not self.enabled or not self.api_key:
            return False
        if self.auth is ProviderAuth.OAUTH2:
            return bool(self.api_secret and self.token_url)
        return True

    @property
    def token_cache_key(self) -> str:
        return f"oauth_token:{self.name}"


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return now < self.expires_at - TOKEN_RENEWAL_HEADROOM

    def to_cache(self) -> dict[str, Any]:
        return {"access_token": self.access_token, "expires_at": self.expires_at.isoformat()}

    @classmethod
    def from_cache(cls, value: Any) -> "CachedToken | None":
        if not isinstance(value, dict):
            return None
        try:
            return cls(
                access_token=str(value["access_token"]),
                expires_at=datetime.fromisoformat(value["expires_at"]),
            )
        except (KeyError, TypeError, ValueError):
            return None
