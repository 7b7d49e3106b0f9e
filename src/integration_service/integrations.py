"""Process-wide integration components and their aiohttp lifecycle hooks.

``start_integrations`` opens the shared HTTP session and token cache, wires
provider clients, the moderation pipeline and its job queue, and stores
everything on the application under :data:`INTEGRATIONS_KEY`.
``stop_integrations`` releases them in reverse order.
"""
from __future__ import annotations

from dataclasses import dataclass

import structlog
from aiohttp import ClientSession, web

from trip_common.db.pool import get_pool
from trip_common.jobs import JobQueue
from trip_common.retry import RetryPolicy

from integration_service.core.clock import Clock, SystemClock
from integration_service.repositories.moderation import ModerationTargetRepository
from integration_service.repositories.webhooks import WebhookSubscriptionRepository
from integration_service.services.api_client import ApiKeyClient, OAuthApiClient
from integration_service.services.cache import Cache, MemoryCache, RedisCache
from integration_service.services.event_listeners import DomainEventListener
from integration_service.services.moderation import ModerationClassifier
from integration_service.services.moderation_pipeline import ModerationPipeline
from integration_service.services.storage import LocalDiskStorage
from integration_service.services.token_provider import TokenProvider
from integration_service.services.travel import (
    AmadeusFlightService,
    AmadeusHotelService,
    SerpApiFlightService,
)
from integration_service.services.webhooks import WebhookService
from integration_service.settings import Settings
from integration_service.webhooks_dispatcher import WebhookDispatcher
from integration_service.workers.image_moderation import ModerationScheduler

logger = structlog.get_logger(__name__)

INTEGRATIONS_KEY = "integrations"


@dataclass
class Integrations:
    settings: Settings
    session: ClientSession
    cache: Cache
    clock: Clock
    token_provider: TokenProvider
    hotels: AmadeusHotelService
    amadeus_flights: AmadeusFlightService
    serpapi_flights: SerpApiFlightService
    pipeline: ModerationPipeline
    job_queue: JobQueue
    scheduler: ModerationScheduler

    def webhook_dispatcher(self, repository: WebhookSubscriptionRepository) -> WebhookDispatcher:
        return WebhookDispatcher(
            repository,
            self.session,
            clock=self.clock,
            retry_delay_seconds=self.settings.webhook_retry_delay_ms / 1000.0,
            max_concurrency=self.settings.webhook_dispatch_max_concurrency,
            budget_seconds=self.settings.webhook_dispatch_budget_seconds,
        )

    def webhook_service(self, repository: WebhookSubscriptionRepository) -> WebhookService:
        return WebhookService(repository, self.webhook_dispatcher(repository))

    def event_listener(self, repository: WebhookSubscriptionRepository) -> DomainEventListener:
        return DomainEventListener(self.webhook_service(repository), self.scheduler)


async def build_integrations(settings: Settings, *, clock: Clock | None = None) -> Integrations:
    clock = clock or SystemClock()
    session = ClientSession()
    cache: Cache = RedisCache.from_url(settings.redis_url) if settings.redis_url else MemoryCache(clock)
    token_provider = TokenProvider(session, cache, clock)

    amadeus = OAuthApiClient(settings.amadeus_credential(), session, token_provider)
    serpapi = ApiKeyClient(settings.serpapi_credential(), session)

    storage = LocalDiskStorage(settings.storage_root, settings.storage_public_url)
    classifier = ModerationClassifier(session, settings.classifier_config(), storage, clock)
    pipeline = ModerationPipeline(
        classifier,
        ModerationTargetRepository(await get_pool()),
        threshold=settings.moderation_threshold,
    )
    job_queue = JobQueue(concurrency=settings.moderation_worker_concurrency)
    scheduler = ModerationScheduler(
        job_queue,
        pipeline,
        retry_policy=RetryPolicy(
            tries=settings.moderation_tries, backoff_seconds=settings.moderation_backoff_seconds
        ),
    )
    return Integrations(
        settings=settings,
        session=session,
        cache=cache,
        clock=clock,
        token_provider=token_provider,
        hotels=AmadeusHotelService(amadeus),
        amadeus_flights=AmadeusFlightService(amadeus),
        serpapi_flights=SerpApiFlightService(serpapi),
        pipeline=pipeline,
        job_queue=job_queue,
        scheduler=scheduler,
    )


def create_integration_hooks(settings: Settings):
    """Build ``on_startup`` / ``on_cleanup`` hooks; register after the pool hooks."""

    async def start_integrations(app: web.Application) -> None:
        integrations = await build_integrations(settings)
        await integrations.job_queue.start()
        app[INTEGRATIONS_KEY] = integrations
        logger.info(
            "integrations started",
            amadeus=settings.amadeus_credential().is_enabled,
            serpapi=settings.serpapi_credential().is_enabled,
            moderation=settings.classifier_config().is_enabled,
            shared_cache=bool(settings.redis_url),
        )

    async def stop_integrations(app: web.Application) -> None:
        integrations: Integrations | None = app.get(INTEGRATIONS_KEY)
        if integrations is None:
            return
        await integrations.job_queue.stop()
        await integrations.session.close()
        if isinstance(integrations.cache, RedisCache):
            await integrations.cache.close()

    return start_integrations, stop_integrations
