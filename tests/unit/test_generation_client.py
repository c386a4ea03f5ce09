"""Tests for the generation retry state machine."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior, UserError

from qbank.core.exceptions import FatalGenerationError, TransientGenerationError
from qbank.integrations.generation_client import GenerationClient, classify_generation_error
from qbank.schemas.quality import RetryPolicy


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _ScriptedGenerator:
    """Raise or return scripted outcomes in order; repeat the last one."""

    def __init__(self, *outcomes: str | BaseException) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, prompt: str) -> str:
        index = min(self.calls, len(self.outcomes) - 1)
        self.calls += 1
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def test_backoff_doubles_until_cap() -> None:
    policy = RetryPolicy(backoff_base_seconds=1.0, backoff_cap_seconds=10.0)

    assert [policy.delay_after(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]


def test_policy_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_first_success_returns_text_without_sleeping() -> None:
    sleep = _SleepRecorder()
    client = GenerationClient(_ScriptedGenerator('{"ok": true}'), RetryPolicy(), sleep=sleep)

    result = await client.generate("prompt")

    assert result.ok
    assert result.text == '{"ok": true}'
    assert result.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transient_failure_is_retried_with_backoff() -> None:
    sleep = _SleepRecorder()
    generator = _ScriptedGenerator(
        ModelHTTPError(status_code=503, model_name="test-model"),
        ModelHTTPError(status_code=429, model_name="test-model"),
        "done",
    )
    client = GenerationClient(generator, RetryPolicy(max_attempts=3), sleep=sleep)

    result = await client.generate("prompt")

    assert result.text == "done"
    assert result.attempts == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_three_timeouts_exhaust_attempts_with_timeout_reason() -> None:
    sleep = _SleepRecorder()
    generator = _ScriptedGenerator(asyncio.TimeoutError())
    client = GenerationClient(generator, RetryPolicy(max_attempts=3), sleep=sleep)

    result = await client.generate("prompt")

    assert not result.ok
    assert result.reason == "timeout"
    assert result.attempts == 3
    assert generator.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_per_call_timeout_bounds_each_attempt() -> None:
    sleep = _SleepRecorder()

    async def _hang(prompt: str) -> str:
        await asyncio.Event().wait()
        return "never"

    client = GenerationClient(
        _hang,
        RetryPolicy(max_attempts=2, call_timeout_seconds=0.01),
        sleep=sleep,
    )

    result = await client.generate("prompt")

    assert result.reason == "timeout"
    assert result.attempts == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_attempt_cap_is_never_exceeded() -> None:
    sleep = _SleepRecorder()
    generator = _ScriptedGenerator(UnexpectedModelBehavior("empty response"))
    client = GenerationClient(
        generator,
        RetryPolicy(max_attempts=5, backoff_base_seconds=1.0, backoff_cap_seconds=10.0),
        sleep=sleep,
    )

    result = await client.generate("prompt")

    assert generator.calls == 5
    assert result.attempts == 5
    assert result.reason == "server_error"
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_fatal_failure_is_not_retried() -> None:
    sleep = _SleepRecorder()
    generator = _ScriptedGenerator(ModelHTTPError(status_code=400, model_name="test-model"))
    client = GenerationClient(generator, RetryPolicy(max_attempts=3), sleep=sleep)

    result = await client.generate("prompt")

    assert result.reason == "bad_request"
    assert result.attempts == 1
    assert generator.calls == 1
    assert sleep.delays == []


@pytest.mark.parametrize(
    ("error", "expected_type", "reason"),
    [
        (asyncio.TimeoutError(), TransientGenerationError, "timeout"),
        (httpx.ReadTimeout("slow"), TransientGenerationError, "timeout"),
        (httpx.ConnectError("refused"), TransientGenerationError, "server_error"),
        (ModelHTTPError(status_code=429, model_name="m"), TransientGenerationError, "rate_limited"),
        (ModelHTTPError(status_code=500, model_name="m"), TransientGenerationError, "server_error"),
        (ModelHTTPError(status_code=422, model_name="m"), FatalGenerationError, "bad_request"),
        (UserError("bad model name"), FatalGenerationError, "bad_request"),
        (RuntimeError("boom"), FatalGenerationError, "unexpected_error"),
    ],
)
def test_error_classification(error, expected_type, reason) -> None:
    classified = classify_generation_error(error)

    assert isinstance(classified, expected_type)
    assert classified.reason == reason
