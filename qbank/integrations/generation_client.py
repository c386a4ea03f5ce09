"""Retrying wrapper around a text-generation callable.

Each call is bounded by a timeout. Transient failures back off exponentially
up to a capped attempt count; fatal failures stop immediately. Callers always
get a :class:`GenerationResult` back and never see an exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior, UserError

from qbank.core.exceptions import (
    FatalGenerationError,
    GenerationError,
    TransientGenerationError,
)
from qbank.schemas.quality import RetryPolicy

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[str]]
SleepFn = Callable[[float], Awaitable[None]]

_RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Tagged outcome of a generation call."""

    text: str | None = None
    reason: str | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.text is not None


def classify_generation_error(exc: BaseException) -> GenerationError:
    """Map a raised exception onto the transient/fatal taxonomy."""
    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TransientGenerationError("timeout", str(exc) or "Generation call timed out")
    if isinstance(exc, ModelHTTPError):
        status = exc.status_code
        if status == 429:
            return TransientGenerationError("rate_limited", str(exc))
        if status in _RETRYABLE_STATUS_CODES or status >= 500:
            return TransientGenerationError("server_error", str(exc))
        return FatalGenerationError("bad_request", str(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return TransientGenerationError("rate_limited", str(exc))
        if status in _RETRYABLE_STATUS_CODES or status >= 500:
            return TransientGenerationError("server_error", str(exc))
        return FatalGenerationError("bad_request", str(exc))
    if isinstance(exc, httpx.TransportError):
        return TransientGenerationError("server_error", str(exc))
    if isinstance(exc, UnexpectedModelBehavior):
        return TransientGenerationError("server_error", str(exc))
    if isinstance(exc, UserError):
        return FatalGenerationError("bad_request", str(exc))
    return FatalGenerationError("unexpected_error", f"{type(exc).__name__}: {exc}")


class GenerationClient:
    """Invoke a generation callable under a :class:`RetryPolicy`."""

    def __init__(
        self,
        generate: GenerateFn,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._generate = generate
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def generate(self, prompt: str, *, record_id: str | None = None) -> GenerationResult:
        policy = self.policy
        attempt = 0
        while True:
            attempt += 1
            try:
                text = await asyncio.wait_for(
                    self._generate(prompt),
                    timeout=policy.call_timeout_seconds,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify_generation_error(exc)
            else:
                return GenerationResult(text=text, attempts=attempt)

            retryable = isinstance(error, TransientGenerationError)
            if not retryable or attempt >= policy.max_attempts:
                logger.warning(
                    "Generation failed",
                    extra={
                        "record_id": record_id,
                        "reason": error.reason,
                        "attempts": attempt,
                        "retryable": retryable,
                        "error": error.message,
                    },
                )
                return GenerationResult(reason=error.reason, attempts=attempt)

            delay = policy.delay_after(attempt)
            logger.info(
                "Transient generation failure; retrying",
                extra={
                    "record_id": record_id,
                    "reason": error.reason,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_seconds": delay,
                },
            )
            await self._sleep(delay)
