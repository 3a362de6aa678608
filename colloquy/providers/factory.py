"""Backend factory for creating agent handles."""

from enum import Enum

from .base import AgentBackend
from .anthropic import AnthropicAgentBackend
from .openai import OpenAIAgentBackend


class ProviderType(str, Enum):
    """Supported provider types."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


_backend_classes: dict[ProviderType, type[AgentBackend]] = {
    ProviderType.ANTHROPIC: AnthropicAgentBackend,
    ProviderType.OPENAI: OpenAIAgentBackend,
}


def create_backend(provider_type: ProviderType | str, **kwargs) -> AgentBackend:
    """
    Create a new backend handle.

    Every agent gets its own handle because a handle carries the agent's
    conversation memory.

    Args:
        provider_type: The type of provider to use
        **kwargs: Passed to the backend constructor

    Returns:
        A backend instance

    Raises:
        ValueError: If the provider type is unknown
    """
    if isinstance(provider_type, str):
        try:
            provider_type = ProviderType(provider_type.lower())
        except ValueError:
            raise ValueError(f"Unknown provider type: {provider_type}")

    backend_cls = _backend_classes.get(provider_type)
    if backend_cls is None:
        raise ValueError(f"Unknown provider type: {provider_type}")
    return backend_cls(**kwargs)


def get_available_providers() -> list[ProviderType]:
    """Get list of providers with credentials configured."""
    return [p for p in ProviderType if create_backend(p).is_available()]
