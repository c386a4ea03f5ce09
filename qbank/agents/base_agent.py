"""Base class for Pydantic AI text agents."""

import logging
import time
from abc import ABC, abstractmethod
from typing import cast

from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from qbank.config import Settings, get_settings

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Abstract base class for agents that return raw model text.

    Subclasses define the system_prompt property.

    Output is not parsed here; callers own validation of the returned text.
    """

    # Model tier for environment-aware resolution (standard / fast)
    model_tier: str = "standard"
    # Explicit model override at the class level (bypasses tier resolution)
    model: str | None = None

    def __init__(
        self,
        model_override: str | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the agent.

        Model resolution priority:
        1. model_override parameter (explicit runtime override)
        2. model class attribute (if set by subclass)
        3. settings.get_model(self.model_tier) (environment-aware tier fallback)
        """
        resolved_settings = settings or get_settings()
        self.temperature = resolved_settings.llm_temperature
        model_source = "tier_default"
        if model_override:
            self._model = model_override
            model_source = "runtime_override"
        elif self.model:
            self._model = self.model
            model_source = "class_override"
        else:
            self._model = resolved_settings.get_model(self.model_tier)
        self._agent: Agent[None, str] | None = None

        logger.info(
            "Agent initialized",
            extra={
                "agent": self.__class__.__name__,
                "model": self._model,
                "model_tier": self.model_tier,
                "model_source": model_source,
                "temperature": self.temperature,
            },
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def agent(self) -> Agent[None, str]:
        """Lazily initialize and return the Pydantic AI agent."""
        if self._agent is None:
            # Retries are owned by the generation client, not the agent.
            self._agent = cast(
                Agent[None, str],
                Agent(
                    model=self._model,
                    output_type=str,
                    system_prompt=self.system_prompt,
                    retries=0,
                    model_settings=ModelSettings(temperature=self.temperature),
                ),
            )
        agent = self._agent
        assert agent is not None
        return agent

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for the agent."""
        pass

    async def run(self, prompt: str) -> str:
        """Send one prompt and return the model's raw text output."""
        agent_name = self.__class__.__name__
        logger.info(
            "Prompt built, sending to LLM",
            extra={
                "agent": agent_name,
                "prompt_length": len(prompt),
                "model": self._model,
            },
        )

        t0 = time.perf_counter()
        result = await self.agent.run(prompt)
        elapsed = time.perf_counter() - t0

        usage = result.usage()
        logger.info(
            "Agent run completed",
            extra={
                "agent": agent_name,
                "duration_s": round(elapsed, 2),
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "total_tokens": usage.total_tokens,
                "output_length": len(result.output),
            },
        )

        return result.output
