"""Application settings."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from trip_common.settings.base import BaseServiceSettings

from integration_service.domain.providers import ProviderAuth, ProviderCredential


@dataclass(frozen=True)
class ClassifierConfig:
    url: str
    secret_key: str
    enabled: bool
    timeout_seconds: float

    @property
    def is_enabled(self) -> bool:
        return self.enabled and bool(self.url) and bool(self.secret_key)


class Settings(BaseServiceSettings):
    """Core configuration for the integration service."""

    app_name: str = "integration-service"
    port: int = 8010

    # Shared token cache; in-process memory cache when unset.
    redis_url: str | None = None

    # Amadeus (OAuth2 client credentials)
    amadeus_api_key: str = ""
    amadeus_api_secret: str = ""
    amadeus_base_url: str = "https://test.api.amadeus.com/v1"
    amadeus_token_url: str = "https://test.api.amadeus.com/v1/security/oauth2/token"
    amadeus_timeout_seconds: float = 30.0
    amadeus_retry_times: int = 3
    amadeus_retry_sleep_ms: int = 1000
    amadeus_enabled: bool = True

    # SerpAPI (api key in query string)
    serpapi_api_key: str = ""
    serpapi_base_url: str = "https://serpapi.com/search.json"
    serpapi_timeout_seconds: float = 30.0
    serpapi_retry_times: int = 3
    serpapi_retry_sleep_ms: int = 1000
    serpapi_enabled: bool = True

    # Green-Eye image classifier
    greeneye_url: str = ""
    greeneye_secret_key: str = ""
    greeneye_enabled: bool = False
    greeneye_timeout_seconds: float = 30.0

    # Uploaded files
    storage_root: str = "storage/app/public"
    storage_public_url: str = "http://localhost:8000/storage"

    # Agent webhooks
    webhook_retry_delay_ms: int = 100
    webhook_dispatch_max_concurrency: int = 4
    webhook_dispatch_budget_seconds: float = 60.0

    # Image moderation queue
    moderation_tries: int = 3
    moderation_backoff_seconds: float = 5.0
    moderation_worker_concurrency: int = 4
    moderation_threshold: float = 0.7

    def amadeus_credential(self) -> ProviderCredential:
        return ProviderCredential(
            name="amadeus",
            auth=ProviderAuth.OAUTH2,
            api_key=self.amadeus_api_key,
            api_secret=self.amadeus_api_secret,
            base_url=self.amadeus_base_url,
            token_url=self.amadeus_token_url,
            timeout_seconds=self.amadeus_timeout_seconds,
            retry_times=self.amadeus_retry_times,
            retry_sleep_ms=self.amadeus_retry_sleep_ms,
            enabled=self.amadeus_enabled,
        )

    def serpapi_credential(self) -> ProviderCredential:
        return ProviderCredential(
            name="serpapi",
            auth=ProviderAuth.API_KEY,
            api_key=self.serpapi_api_key,
            base_url=self.serpapi_base_url,
            timeout_seconds=self.serpapi_timeout_seconds,
            retry_times=self.serpapi_retry_times,
            retry_sleep_ms=self.serpapi_retry_sleep_ms,
            enabled=self.serpapi_enabled,
        )

    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(
            url=self.greeneye_url,
            secret_key=self.greeneye_secret_key,
            enabled=self.greeneye_enabled,
            timeout_seconds=self.greeneye_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
