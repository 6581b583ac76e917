"""LLM provider and model enums for model selection.

Celebrity personas all run on the same configured model; the persona is
carried by the system prompt, not by the provider.
"""

from enum import StrEnum


class LLMProvider(StrEnum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class OpenAIModel(StrEnum):
    """OpenAI models available via API."""

    GPT_5 = "gpt-5"
    GPT_5_MINI = "gpt-5-mini"
    GPT_5_NANO = "gpt-5-nano"
    GPT_4O_MINI = "gpt-4o-mini"


class AnthropicModel(StrEnum):
    """Anthropic Claude models available via API."""

    CLAUDE_SONNET_4_5 = "claude-sonnet-4-5"
    CLAUDE_HAIKU_4_5 = "claude-haiku-4-5"


def get_model_string(model: OpenAIModel | AnthropicModel) -> str:
    """Get the pydantic-ai model string for a supported model."""
    if isinstance(model, OpenAIModel):
        return f"openai:{model.value}"
    elif isinstance(model, AnthropicModel):
        return f"anthropic:{model.value}"
    return model.value


def get_provider_for_model(model: OpenAIModel | AnthropicModel) -> LLMProvider:
    """Determine the provider for a given model."""
    if isinstance(model, OpenAIModel):
        return LLMProvider.OPENAI
    elif isinstance(model, AnthropicModel):
        return LLMProvider.ANTHROPIC
    else:
        raise ValueError(f"Unknown model type: {type(model)}")
