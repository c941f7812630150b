"""
Unit tests for AIService primary/fallback routing and provider error classification
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIConnectionError, NotFoundError, RateLimitError

from app.core.exceptions import AIGenerationError, NoClientAvailableError, ProviderErrorKind
from app.services.ai_service import AIService, GenerationConfig, classify_provider_error
from tests.conftest import completion, make_route

_REQUEST = httpx.Request("POST", "https://ai.example.test/v1/chat/completions")


def _status_error(cls, status_code: int, message: str, body=None):
    return cls(message, response=httpx.Response(status_code, request=_REQUEST), body=body)


@pytest.fixture
def sleep():
    return AsyncMock()


# ---------------------------------------------------------------------------
# classify_provider_error
# ---------------------------------------------------------------------------


def test_classify_insufficient_quota():
    exc = _status_error(RateLimitError, 429, "You exceeded your current quota", body={"code": "insufficient_quota"})
    assert classify_provider_error(exc) == ProviderErrorKind.QUOTA


def test_classify_plain_rate_limit():
    exc = _status_error(RateLimitError, 429, "Rate limit reached for requests")
    assert classify_provider_error(exc) == ProviderErrorKind.RATE_LIMIT


def test_classify_model_not_found():
    exc = _status_error(NotFoundError, 404, "The model does not exist")
    assert classify_provider_error(exc) == ProviderErrorKind.MODEL_NOT_FOUND


def test_classify_connection_error_is_transient():
    assert classify_provider_error(APIConnectionError(request=_REQUEST)) == ProviderErrorKind.TRANSIENT
    assert classify_provider_error(asyncio.TimeoutError()) == ProviderErrorKind.TRANSIENT


def test_classify_falls_back_to_message_text():
    assert classify_provider_error(RuntimeError("Quota exceeded for project")) == ProviderErrorKind.QUOTA
    assert classify_provider_error(RuntimeError("HTTP 429 Too Many Requests")) == ProviderErrorKind.RATE_LIMIT
    assert classify_provider_error(RuntimeError("HTTP 404 models/foo")) == ProviderErrorKind.MODEL_NOT_FOUND
    assert classify_provider_error(RuntimeError("boom")) == ProviderErrorKind.OTHER


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_primary_success_resets_failure_counter(sleep):
    primary = make_route("primary", side_effect=[RuntimeError("server error"), completion("weekly text")])
    service = AIService(primary=primary, fallback=None, max_attempts=2, sleep=sleep)

    result = await service.generate_content("prompt")

    assert result.text == "weekly text"
    assert result.key_used == "primary"
    assert result.using_fallback is False
    assert service.primary_failures == 0
    sleep.assert_awaited_once_with(1.0)


@pytest.mark.asyncio
async def test_generation_parameters_are_forwarded(sleep):
    primary = make_route("primary", model="gemini-2.0-flash")
    service = AIService(primary=primary, sleep=sleep)

    await service.generate_content("prompt", GenerationConfig(temperature=0.2, top_p=0.9, max_output_tokens=2000))

    kwargs = primary.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    assert kwargs["temperature"] == 0.2
    assert kwargs["top_p"] == 0.9
    assert kwargs["max_tokens"] == 2000
    assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]


@pytest.mark.asyncio
async def test_switches_to_fallback_after_threshold(sleep):
    primary = make_route("primary", side_effect=RuntimeError("server error"))
    fallback = make_route("fallback", model="backup-model", text="fallback report")
    service = AIService(primary=primary, fallback=fallback, max_primary_failures=3, max_attempts=2, sleep=sleep)

    with pytest.raises(AIGenerationError):
        await service.generate_content("prompt")
    assert service.primary_failures == 2
    assert service.using_fallback is False

    result = await service.generate_content("prompt")

    assert result.text == "fallback report"
    assert result.using_fallback is True
    assert result.key_used == "fallback"
    assert result.model == "backup-model"
    assert service.using_fallback is True
    assert service.primary_failures == 0
    # probe + real request
    assert fallback.client.chat.completions.create.await_count == 2


@pytest.mark.asyncio
async def test_failed_probe_keeps_primary(sleep):
    primary = make_route("primary", side_effect=RuntimeError("server error"))
    fallback = make_route("fallback", side_effect=RuntimeError("fallback down"))
    service = AIService(primary=primary, fallback=fallback, max_primary_failures=1, max_attempts=2, sleep=sleep)

    with pytest.raises(AIGenerationError) as exc_info:
        await service.generate_content("prompt")

    assert service.using_fallback is False
    assert service.get_status()["current_key"] == "primary"
    assert exc_info.value.status["current_key"] == "primary"
    assert primary.client.chat.completions.create.await_count == 2


@pytest.mark.asyncio
async def test_no_switch_without_fallback(sleep):
    primary = make_route("primary", side_effect=RuntimeError("server error"))
    service = AIService(primary=primary, fallback=None, max_primary_failures=1, max_attempts=2, sleep=sleep)

    with pytest.raises(AIGenerationError):
        await service.generate_content("prompt")

    assert service.using_fallback is False
    assert service.primary_failures == 2


@pytest.mark.asyncio
async def test_failover_is_one_way_until_reset(sleep):
    primary = make_route("primary", side_effect=[RuntimeError("server error"), completion("primary text")])
    fallback = make_route("fallback", text="fallback text")
    service = AIService(primary=primary, fallback=fallback, max_primary_failures=1, max_attempts=2, sleep=sleep)

    first = await service.generate_content("prompt")
    second = await service.generate_content("prompt")

    assert first.key_used == "fallback"
    assert second.key_used == "fallback"
    # primary was only tried once
    assert primary.client.chat.completions.create.await_count == 1

    service.reset_to_primary()
    third = await service.generate_content("prompt")
    assert third.key_used == "primary"
    assert service.get_status()["using_fallback"] is False


@pytest.mark.asyncio
async def test_error_kind_is_propagated(sleep):
    primary = make_route("primary", side_effect=RuntimeError("quota exceeded"))
    service = AIService(primary=primary, max_attempts=1, sleep=sleep)

    with pytest.raises(AIGenerationError) as exc_info:
        await service.generate_content("prompt")

    assert exc_info.value.kind == ProviderErrorKind.QUOTA
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_content_counts_as_failure(sleep):
    primary = make_route("primary", text="")
    service = AIService(primary=primary, max_attempts=1, sleep=sleep)

    with pytest.raises(AIGenerationError):
        await service.generate_content("prompt")
    assert service.primary_failures == 1


@pytest.mark.asyncio
async def test_no_client_configured(sleep):
    service = AIService(primary=None, fallback=None, sleep=sleep)

    with pytest.raises(NoClientAvailableError):
        service.get_generative_model()
    with pytest.raises(NoClientAvailableError):
        await service.generate_content("prompt")
    assert service.get_status()["current_key"] == "none"


@pytest.mark.asyncio
async def test_fallback_only_configuration(sleep):
    fallback = make_route("fallback", text="fallback text")
    service = AIService(primary=None, fallback=fallback, sleep=sleep)

    assert service.using_fallback is True
    handle = service.get_generative_model()
    assert handle.route is fallback
    assert await handle.generate_content("prompt") == "fallback text"


@pytest.mark.asyncio
async def test_aclose_closes_both_clients(sleep):
    primary = make_route("primary")
    fallback = make_route("fallback")
    service = AIService(primary=primary, fallback=fallback, sleep=sleep)

    await service.aclose()

    primary.client.close.assert_awaited_once()
    fallback.client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_model_handle_goes_through_failover(sleep):
    primary = make_route("primary", side_effect=RuntimeError("server error"))
    fallback = make_route("fallback", text="fallback text")
    service = AIService(primary=primary, fallback=fallback, max_primary_failures=1, max_attempts=1, sleep=sleep)

    handle = service.get_generative_model()
    assert handle.route is primary

    assert await handle.generate_content("prompt") == "fallback text"
    assert service.using_fallback is True
    assert service.get_status()["current_key"] == "fallback"


@pytest.mark.asyncio
async def test_fallback_errors_do_not_count_as_primary_failures(sleep):
    primary = make_route("primary", side_effect=RuntimeError("server error"))
    fallback = make_route("fallback", side_effect=[completion("ok"), completion("fallback text"), RuntimeError("fallback down")])
    service = AIService(primary=primary, fallback=fallback, max_primary_failures=1, max_attempts=1, sleep=sleep)

    first = await service.generate_content("prompt")
    assert first.key_used == "fallback"
    assert service.primary_failures == 0

    with pytest.raises(AIGenerationError):
        await service.generate_content("prompt")

    assert service.using_fallback is True
    assert service.get_status()["primary_failures"] == 0
