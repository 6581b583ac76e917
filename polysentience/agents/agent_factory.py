"""Lazily built pydantic-ai agents bound to the configured analysis model."""

import logging
import os
from typing import Callable, Generic, TypeVar

from pydantic_ai import Agent

from polysentience.config import get_settings
from polysentience.llm_providers import LLMProvider, get_provider_for_model

logger = logging.getLogger(__name__)

DepsT = TypeVar("DepsT")
OutputT = TypeVar("OutputT")

_API_KEY_ENV = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


class AgentFactory(Generic[DepsT, OutputT]):
    """Builds an agent on first use and hands out the same instance afterwards.

    ``reset()`` drops the instance so a changed model setting takes effect.
    """

    def __init__(
        self,
        create_fn: Callable[[], Agent[DepsT, OutputT]],
        register_tools_fn: Callable[[Agent[DepsT, OutputT]], None] | None = None,
    ):
        self._create_fn = create_fn
        self._register_tools_fn = register_tools_fn
        self._agent: Agent[DepsT, OutputT] | None = None

    def get_agent(self) -> Agent[DepsT, OutputT]:
        if self._agent is None:
            self._export_provider_key()
            agent = self._create_fn()
            if self._register_tools_fn is not None:
                self._register_tools_fn(agent)
            self._agent = agent
            logger.debug(f"Built agent for model {get_settings().analysis.model}")
        return self._agent

    def reset(self) -> None:
        self._agent = None

    def _export_provider_key(self) -> None:
        """Expose the key for the configured model's provider to its SDK."""
        settings = get_settings()
        provider = get_provider_for_model(settings.analysis.model)
        key = {
            LLMProvider.OPENAI: settings.openai_api_key,
            LLMProvider.ANTHROPIC: settings.anthropic_api_key,
        }[provider]

        if key:
            os.environ[_API_KEY_ENV[provider]] = key
        elif not os.environ.get(_API_KEY_ENV[provider]):
            logger.warning(f"No {provider.value} API key configured; analysis runs will fail")
