# Agent backend module
from .base import AgentBackend, AudioClip, BackendListener, ChatMessage, ChatReply
from .anthropic import AnthropicAgentBackend
from .openai import OpenAIAgentBackend
from .factory import create_backend, get_available_providers, ProviderType

__all__ = [
    "AgentBackend",
    "AudioClip",
    "BackendListener",
    "ChatMessage",
    "ChatReply",
    "AnthropicAgentBackend",
    "OpenAIAgentBackend",
    "create_backend",
    "get_available_providers",
    "ProviderType",
]
