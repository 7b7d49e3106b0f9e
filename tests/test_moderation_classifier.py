"""Green-Eye gateway against a local fake classifier."""
from __future__ import annotations

import pytest
from aiohttp import ClientSession, web

from conftest import FakeStorage, FrozenClock
from integration_service.core.exceptions import StorageMissing, UpstreamApiError
from integration_service.domain.moderation import DISABLED_REASON, ModerationKind, ModerationOutcome
from integration_service.services.moderation import ModerationClassifier, evaluate
from integration_service.services.moderation_pipeline import ModerationPipeline
from integration_service.settings import ClassifierConfig

SAFE_SCORES = {
    "adult": {"confidence": 0.02},
    "porn": {"confidence": 0.01},
    "sexy": {"confidence": 0.02},
    "normal": {"confidence": 0.95},
}
UNSAFE_SCORES = {
    "adult": {"confidence": 0.03},
    "porn": {"confidence": 0.85},
    "sexy": {"confidence": 0.02},
    "normal": {"confidence": 0.10},
}


def _classifier_app(state: dict) -> web.Application:
    async def classify(request: web.Request) -> web.Response:
        state["requests"].append((request.headers.get("X-GREEN-EYE-SECRET"), await request.json()))
        if state.get("status", 200) != 200:
            return web.Response(status=state["status"], text="classifier down")
        return web.json_response({"images": [{"result": state["scores"]}]})

    app = web.Application()
    app.router.add_post("/custom/v1/classify", classify)
    return app


@pytest.fixture
async def green_eye(aiohttp_server):
    state: dict = {"requests": [], "scores": SAFE_SCORES}
    server = await aiohttp_server(_classifier_app(state))
    config = ClassifierConfig(
        url=str(server.make_url("/custom/v1/classify")),
        secret_key="green-secret",
        enabled=True,
        timeout_seconds=5,
    )
    return config, state


@pytest.mark.asyncio
async def test_safe_image(green_eye):
    config, state = green_eye
    storage = FakeStorage({"reviews/a.jpg"})
    async with ClientSession() as session:
        classifier = ModerationClassifier(session, config, storage, FrozenClock())
        result = await classifier.check_safety("reviews/a.jpg")

    assert result.safe is True
    assert result.reason == "Content passed safety checks"
    assert result.normal == 0.95

    secret, body = state["requests"][0]
    assert secret == "green-secret"
    assert body["version"] == "V1"
    assert body["timestamp"] == int(FrozenClock().now().timestamp() * 1000)
    assert body["images"] == [{"name": "a.jpg", "url": "http://cdn.test/storage/reviews/a.jpg"}]


@pytest.mark.asyncio
async def test_unsafe_image(green_eye):
    config, state = green_eye
    state["scores"] = UNSAFE_SCORES
    async with ClientSession() as session:
        classifier = ModerationClassifier(session, config, FakeStorage(), FrozenClock())
        result = await classifier.check_safety("https://images.test/b.png")

    assert result.safe is False
    assert result.reason == "Pornographic content detected"
    assert result.porn == 0.85
    # External URLs are passed through untouched.
    assert state["requests"][0][1]["images"][0]["url"] == "https://images.test/b.png"


@pytest.mark.asyncio
async def test_disabled_classifier_returns_sentinel(green_eye):
    config, state = green_eye
    disabled = ClassifierConfig(url=config.url, secret_key="", enabled=True, timeout_seconds=5)
    async with ClientSession() as session:
        result = await ModerationClassifier(session, disabled, FakeStorage()).check_safety("x.jpg")

    assert result.safe is True
    assert result.reason == DISABLED_REASON
    assert (result.adult, result.porn, result.sexy, result.normal) == (None, None, None, None)
    assert state["requests"] == []


@pytest.mark.asyncio
async def test_missing_local_file_is_not_sent(green_eye):
    config, state = green_eye
    async with ClientSession() as session:
        classifier = ModerationClassifier(session, config, FakeStorage())
        with pytest.raises(StorageMissing):
            await classifier.check_safety("reviews/missing.jpg")

    assert state["requests"] == []


@pytest.mark.asyncio
async def test_classifier_error_raises_for_retry(green_eye):
    config, state = green_eye
    state["status"] = 503
    async with ClientSession() as session:
        classifier = ModerationClassifier(session, config, FakeStorage())
        with pytest.raises(UpstreamApiError) as excinfo:
            await classifier.check_safety("https://images.test/c.png")

    assert excinfo.value.status == 503


def test_missing_scores_use_defaults():
    result = evaluate({})
    assert result.safe is True
    assert (result.adult, result.porn, result.sexy, result.normal) == (0.0, 0.0, 0.0, 1.0)


def test_normal_winning_is_safe_even_above_threshold():
    result = evaluate({"adult": {"confidence": 0.72}, "porn": 0.05, "sexy": 0.05, "normal": {"confidence": 0.9}})
    assert result.safe is True
    assert result.reason == "Content passed safety checks"
    assert result.adult == 0.72


def test_tie_with_normal_is_unsafe():
    result = evaluate({"adult": 0.4, "porn": 0.1, "sexy": 0.1, "normal": 0.4})
    assert result.safe is False
    assert result.reason == "Adult content detected"


def test_provider_safe_flag_is_ignored():
    result = evaluate({"safe": True, "adult": {"confidence": 0.6}, "normal": {"confidence": 0.3}})
    assert result.safe is False
    assert result.reason == "Adult content detected"


def test_several_categories_are_listed_in_reason():
    result = evaluate({"adult": 0.5, "porn": 0.4, "sexy": 0.1, "normal": 0.2})
    assert result.reason == "Adult content, pornographic content detected"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("scores", "outcome", "reason"),
    [
        (
            {"adult": 0.1, "porn": 0.05, "sexy": 0.05, "normal": 0.9},
            ModerationOutcome.APPLIED_SAFE,
            "Content passed safety checks",
        ),
        (
            {"adult": 0.8, "porn": 0.1, "sexy": 0.05, "normal": 0.15},
            ModerationOutcome.APPLIED_FLAGGED,
            "Adult content detected",
        ),
    ],
)
async def test_pipeline_applies_classifier_verdict(green_eye, moderation_repo, scores, outcome, reason):
    config, state = green_eye
    state["scores"] = scores
    moderation_repo.add(ModerationKind.REVIEW, 5)
    async with ClientSession() as session:
        classifier = ModerationClassifier(session, config, FakeStorage({"reviews/5/photo.jpg"}), FrozenClock())
        pipeline = ModerationPipeline(classifier, moderation_repo)
        result = await pipeline.process(ModerationKind.REVIEW, 5, "reviews/5/photo.jpg")

    assert result is outcome
    stored = moderation_repo.rows[(ModerationKind.REVIEW, 5)]
    assert stored.moderation_results.reason == reason
    assert stored.is_flagged == (outcome is ModerationOutcome.APPLIED_FLAGGED)
    assert stored.is_flagged == (not stored.moderation_results.safe)
    assert len(state["requests"]) == 1


@pytest.mark.asyncio
async def test_pipeline_skips_missing_local_file(green_eye, moderation_repo):
    config, state = green_eye
    target = moderation_repo.add(ModerationKind.REVIEW, 5)
    async with ClientSession() as session:
        pipeline = ModerationPipeline(ModerationClassifier(session, config, FakeStorage()), moderation_repo)
        result = await pipeline.process(ModerationKind.REVIEW, 5, "reviews/5/missing.jpg")

    assert result is ModerationOutcome.SKIPPED_MISSING_IMAGE
    assert state["requests"] == []
    assert moderation_repo.saves == 0
    assert moderation_repo.rows[(ModerationKind.REVIEW, 5)] == target
