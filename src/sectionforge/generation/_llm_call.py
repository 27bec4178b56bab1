"""Guarded LLM completion: per-model circuit breaker, rate-limit retry,
and model-chain fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from sectionforge.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    ERROR_TRUNCATION_CHARS,
    LLM_MAX_OUTPUT_TOKENS,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)
from sectionforge.resilience.errors import GenerationError

logger = logging.getLogger(__name__)

# litellm stubs have partially unknown types, so use a typed alias
if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion


@dataclass(frozen=True)
class CompletionResult:
    """Raw completion text plus token accounting."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


def _is_non_rate_limit_error(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    """Rate limits are backpressure, not breaker failures."""
    return not issubclass(thrown_type, LitellmRateLimitError)


_breaker_registry: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def _get_breaker(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    """Get or create the circuit breaker for a model."""
    if model not in _breaker_registry:
        _breaker_registry[model] = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_is_non_rate_limit_error,
            name=f"llm_{model}",
        )
    return _breaker_registry[model]


def open_circuits() -> list[str]:
    """Models whose breaker is currently open."""
    return [
        model
        for model, breaker in _breaker_registry.items()
        if breaker.opened  # pyright: ignore[reportUnknownMemberType]
    ]


@retry(
    stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
    ),
    retry=retry_if_exception_type(LitellmRateLimitError),
    reraise=True,
)
async def guarded_llm_call(
    model: str,
    messages: list[dict[str, str]],
    timeout: int,
    *,
    json_mode: bool = True,
) -> CompletionResult:
    """One completion against one model, breaker-protected.

    Rate-limit errors (429) are retried with jittered exponential
    backoff and never trip the breaker.
    """
    breaker = _get_breaker(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "timeout": timeout,
            "max_tokens": LLM_MAX_OUTPUT_TOKENS,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response: Any = await _acompletion(**kwargs)

    usage: Any = getattr(response, "usage", None)
    return CompletionResult(
        content=str(response.choices[0].message.content or ""),
        model=model,
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )


async def complete_with_chain(
    models: list[str],
    messages: list[dict[str, str]],
    timeout: int,
    *,
    json_mode: bool = True,
) -> CompletionResult:
    """Try each model in order; raise GenerationError if all fail.

    The last underlying error's ``status_code`` (if any) is carried
    on the GenerationError so callers can classify it.
    """
    last_error: BaseException | None = None
    for model in models:
        try:
            return await guarded_llm_call(
                model, messages, timeout, json_mode=json_mode
            )
        except CircuitBreakerError as exc:
            logger.warning("event=circuit_open model=%s", model)
            last_error = exc
        except Exception as exc:
            logger.warning(
                "event=completion_failed model=%s error=%s",
                model,
                str(exc)[:ERROR_TRUNCATION_CHARS],
            )
            last_error = exc

    detail = str(last_error) if last_error else "no models configured"
    raise GenerationError(
        f"All models failed: {detail[:ERROR_TRUNCATION_CHARS]}",
        status_code=getattr(last_error, "status_code", None),
    )
