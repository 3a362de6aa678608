"""Anthropic Claude agent backend."""

import logging
from typing import List, Optional

import anthropic

from .base import AgentBackend, ChatMessage, ChatReply
from ..config import settings

logger = logging.getLogger(__name__)


class AnthropicAgentBackend(AgentBackend):
    """Text-only agent backed by Anthropic Claude models."""

    provider_name = "anthropic"
    default_model = "claude-sonnet-4-20250514"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(api_key or settings.anthropic_api_key, **kwargs)
        self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    def is_available(self) -> bool:
        """Check if Anthropic is configured."""
        return bool(self.api_key)

    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        """Generate a complete reply from Claude."""
        kwargs = {}
        if self.project_id:
            kwargs["metadata"] = {"user_id": self.project_id}

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=self.system or "",
            messages=self.format_messages(messages),
            **kwargs,
        )

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        return ChatReply(
            message=content.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            metadata={"id": response.id, "stop_reason": response.stop_reason},
        )
