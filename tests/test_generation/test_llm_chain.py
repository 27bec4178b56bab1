"""Tests for the guarded completion call and model-chain fallback."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from circuitbreaker import CircuitBreakerError, CircuitBreakerMonitor
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from tenacity import wait_none

from sectionforge.config import Settings
from sectionforge.generation._llm_call import (
    CompletionResult,
    _breaker_registry,
    complete_with_chain,
    guarded_llm_call,
)
from sectionforge.generation.adapter import LLMContentGenerator
from sectionforge.processing.schemas import (
    GenerationContext,
    SectionDescriptor,
)
from sectionforge.resilience.errors import GenerationError

_ACOMPLETION = "sectionforge.generation._llm_call._acompletion"
_MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.fixture(autouse=True)
def _reset_breakers() -> None:
    """Reset circuit breakers between tests."""
    _breaker_registry.clear()
    for cb in CircuitBreakerMonitor.get_circuits():
        cb.reset()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def _disable_retry_wait() -> Any:
    """Disable tenacity wait time for fast tests."""
    original_wait = guarded_llm_call.retry.wait  # type: ignore[union-attr]
    guarded_llm_call.retry.wait = wait_none()  # type: ignore[union-attr]
    yield
    guarded_llm_call.retry.wait = original_wait  # type: ignore[union-attr]


def _mock_response(content: str) -> Any:
    """Build a mock litellm response with usage metadata."""
    msg = type("Msg", (), {"content": content})()
    choice = type("Choice", (), {"message": msg})()
    usage = type(
        "Usage",
        (),
        {"prompt_tokens": 120, "completion_tokens": 40},
    )()
    return type(
        "Response", (), {"choices": [choice], "usage": usage}
    )()


def _rate_limit() -> LitellmRateLimitError:
    return LitellmRateLimitError(
        message="Rate limit exceeded",
        model="test",
        llm_provider="openai",
    )


class TestGuardedCall:
    async def test_returns_content_and_usage(self) -> None:
        mock = AsyncMock(return_value=_mock_response('{"html": "<p/>"}'))
        with patch(_ACOMPLETION, new=mock):
            result = await guarded_llm_call("test/model-a", _MESSAGES, 10)
        assert result == CompletionResult(
            content='{"html": "<p/>"}',
            model="test/model-a",
            input_tokens=120,
            output_tokens=40,
        )
        kwargs = mock.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["timeout"] == 10

    async def test_json_mode_off_omits_response_format(self) -> None:
        mock = AsyncMock(return_value=_mock_response("plain"))
        with patch(_ACOMPLETION, new=mock):
            await guarded_llm_call(
                "test/model-a", _MESSAGES, 10, json_mode=False
            )
        assert "response_format" not in mock.call_args.kwargs

    async def test_retries_on_rate_limit_then_succeeds(self) -> None:
        rate_err = _rate_limit()
        mock = AsyncMock(
            side_effect=[rate_err, rate_err, _mock_response("{}")]
        )
        with patch(_ACOMPLETION, new=mock):
            result = await guarded_llm_call("test/model-a", _MESSAGES, 10)
        assert result.content == "{}"
        assert mock.call_count == 3

    async def test_circuit_opens_after_threshold(self) -> None:
        """Five tracked failures open the breaker for that model."""
        with patch(
            _ACOMPLETION,
            new_callable=AsyncMock,
            side_effect=ConnectionError("API down"),
        ):
            for _ in range(5):
                with pytest.raises(ConnectionError):
                    await guarded_llm_call("test/model-a", _MESSAGES, 10)
            with pytest.raises(CircuitBreakerError):
                await guarded_llm_call("test/model-a", _MESSAGES, 10)

    async def test_rate_limits_do_not_open_circuit(self) -> None:
        mock = AsyncMock(side_effect=_rate_limit())
        with patch(_ACOMPLETION, new=mock):
            for _ in range(3):
                with pytest.raises(LitellmRateLimitError):
                    await guarded_llm_call("test/model-a", _MESSAGES, 10)
        # 3 calls x 3 tenacity attempts, none short-circuited
        assert mock.call_count == 9


class TestModelChain:
    async def test_falls_back_to_next_model(self) -> None:
        calls: list[str] = []

        async def fake(**kwargs: Any) -> Any:
            calls.append(kwargs["model"])
            if kwargs["model"] == "test/model-a":
                raise ConnectionError("primary down")
            return _mock_response('{"html": "<p>ok</p>"}')

        with patch(_ACOMPLETION, new=fake):
            result = await complete_with_chain(
                ["test/model-a", "test/model-b"], _MESSAGES, 10
            )
        assert result.model == "test/model-b"
        assert calls == ["test/model-a", "test/model-b"]

    async def test_all_models_failing_raises_generation_error(self) -> None:
        with patch(
            _ACOMPLETION,
            new_callable=AsyncMock,
            side_effect=ConnectionError("API down"),
        ):
            with pytest.raises(GenerationError, match="All models failed"):
                await complete_with_chain(
                    ["test/model-a", "test/model-b"], _MESSAGES, 10
                )

    async def test_status_code_carried_from_last_error(self) -> None:
        with patch(
            _ACOMPLETION,
            new_callable=AsyncMock,
            side_effect=_rate_limit(),
        ):
            with pytest.raises(GenerationError) as exc_info:
                await complete_with_chain(["test/model-a"], _MESSAGES, 10)
        assert exc_info.value.status_code == 429

    async def test_open_circuit_skips_to_next_model(self) -> None:
        calls: list[str] = []

        async def fake(**kwargs: Any) -> Any:
            calls.append(kwargs["model"])
            if kwargs["model"] == "test/model-a":
                raise ConnectionError("primary down")
            return _mock_response("{}")

        chain = ["test/model-a", "test/model-b"]
        with patch(_ACOMPLETION, new=fake):
            for _ in range(5):
                await complete_with_chain(chain, _MESSAGES, 10)
            calls.clear()
            result = await complete_with_chain(chain, _MESSAGES, 10)
        assert result.model == "test/model-b"
        assert calls == ["test/model-b"]

    async def test_empty_chain_raises(self) -> None:
        with pytest.raises(GenerationError, match="no models configured"):
            await complete_with_chain([], _MESSAGES, 10)


class TestLLMContentGenerator:
    async def test_generate_sends_system_and_section_prompt(self) -> None:
        settings = Settings(litellm_model_chain=["test/model-a"])
        descriptor = SectionDescriptor(id="hero-1", kind="hero")
        completion = CompletionResult(
            content='{"html": "<section></section>"}',
            model="test/model-a",
            input_tokens=1,
            output_tokens=1,
        )
        with patch(
            "sectionforge.generation.adapter.complete_with_chain",
            new=AsyncMock(return_value=completion),
        ) as mock:
            out = await LLMContentGenerator(settings).generate(
                descriptor, GenerationContext(position=1, total=2)
            )
        assert out == completion.content
        models, messages, timeout = mock.call_args.args
        assert models == ["test/model-a"]
        assert timeout == settings.llm_timeout_seconds
        assert messages[0]["role"] == "system"
        assert "hero-1" in messages[1]["content"]

    async def test_generation_error_propagates(self) -> None:
        with patch(
            "sectionforge.generation.adapter.complete_with_chain",
            new=AsyncMock(side_effect=GenerationError("All models failed")),
        ):
            with pytest.raises(GenerationError):
                await LLMContentGenerator(
                    Settings(litellm_model_chain=["test/model-a"])
                ).generate(
                    SectionDescriptor(id="a"),
                    GenerationContext(position=1, total=1),
                )
