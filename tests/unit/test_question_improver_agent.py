"""Tests for the question improver agent wiring."""

import pytest

from qbank.agents.question_improver import QuestionImproverAgent
from qbank.config import Settings
from qbank.integrations.generation_client import GenerationClient
from qbank.schemas.quality import RetryPolicy


def test_model_resolves_from_environment_tier() -> None:
    settings = Settings(_env_file=None, environment="production", prod_model_standard=None)

    agent = QuestionImproverAgent(settings=settings)

    assert agent.model_name == "anthropic:claude-sonnet-4-5"


def test_tier_override_and_runtime_override() -> None:
    settings = Settings(_env_file=None, environment="development", dev_model_standard="openai:gpt-4o")

    assert QuestionImproverAgent(settings=settings).model_name == "openai:gpt-4o"
    assert QuestionImproverAgent("test", settings=settings).model_name == "test"


def test_system_prompt_demands_json_only() -> None:
    agent = QuestionImproverAgent("test", settings=Settings(_env_file=None))

    assert "exactly one JSON object" in agent.system_prompt


@pytest.mark.asyncio
async def test_agent_returns_raw_text_through_generation_client() -> None:
    agent = QuestionImproverAgent("test", settings=Settings(_env_file=None))
    client = GenerationClient(agent.run, RetryPolicy(max_attempts=1))

    result = await client.generate("Improve this question.")

    assert result.ok
    assert isinstance(result.text, str)
    assert result.attempts == 1


@pytest.mark.asyncio
async def test_agent_run_reports_token_usage(monkeypatch: pytest.MonkeyPatch) -> None:
    agent = QuestionImproverAgent("test", settings=Settings(_env_file=None))
    logged: list[dict] = []
    monkeypatch.setattr(
        "qbank.agents.base_agent.logger.info",
        lambda message, extra=None: logged.append({"message": message, **(extra or {})}),
    )

    output = await agent.run("Improve this question.")

    completed = next(entry for entry in logged if entry["message"] == "Agent run completed")
    assert completed["total_tokens"] > 0
    assert completed["output_length"] == len(output)
