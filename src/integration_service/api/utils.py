"""Helper utilities for API handlers."""
from __future__ import annotations

from typing import Any, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError

# Re-export read_json from trip_common so handlers import request helpers from one place.
from trip_common.aiohttp_app import read_json as read_json  # noqa: F401

from integration_service.core.exceptions import InvalidSubscriptionError

TModel = TypeVar("TModel", bound=BaseModel)


def parse_id(value: str, label: str) -> int:
    try:
        parsed = int(value)
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc
    if parsed <= 0:
        raise web.HTTPBadRequest(text=f"Invalid {label}")
    return parsed


def validate_subscription_input(model: type[TModel], body: dict[str, Any]) -> TModel:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise InvalidSubscriptionError(exc.errors(include_url=False, include_context=False)) from exc


def validation_error_response(exc: InvalidSubscriptionError) -> web.Response:
    return web.json_response({"message": str(exc), "errors": exc.errors}, status=422)
