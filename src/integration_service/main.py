"""aiohttp application entrypoint."""
from __future__ import annotations

from aiohttp import web

from trip_common.aiohttp_app import add_cors_to_routes, add_healthcheck, create_base_app
from trip_common.db.pool import create_pool_hooks
from trip_common.logging_config import configure_logging

from integration_service.api.router import setup_routes
from integration_service.integrations import create_integration_hooks
from integration_service.services.webhooks import WebhookService
from integration_service.settings import Settings, get_settings

_WEBHOOK_SERVICE_KEY = "webhook_service"


def create_app(
    settings: Settings | None = None,
    *,
    webhook_service: WebhookService | None = None,
) -> web.Application:
    """Build the application.

    Passing ``webhook_service`` serves the routes from that instance and
    skips the database pool and outbound integrations entirely.
    """
    settings = settings or get_settings()
    app, cors = create_base_app(settings)

    add_healthcheck(app, settings)
    setup_routes(app)

    if webhook_service is not None:
        app[_WEBHOOK_SERVICE_KEY] = webhook_service
    else:
        init_pool, close_pool = create_pool_hooks(settings)
        start_integrations, stop_integrations = create_integration_hooks(settings)
        app.on_startup.append(init_pool)
        app.on_startup.append(start_integrations)
        app.on_cleanup.append(stop_integrations)
        app.on_cleanup.append(close_pool)

    add_cors_to_routes(app, cors)

    return app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    web.run_app(create_app(settings), host=settings.host, port=settings.port, access_log=None)


if __name__ == "__main__":
    main()
