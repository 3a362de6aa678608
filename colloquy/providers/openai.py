"""OpenAI agent backend with optional speech synthesis."""

import io
import logging
import wave
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from .base import AgentBackend, AudioClip, ChatMessage, ChatReply
from ..config import settings

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44


def wav_duration_seconds(data: bytes) -> float:
    """Duration of a WAV payload."""
    with wave.open(io.BytesIO(data), "rb") as wav:
        rate = wav.getframerate()
        frame_size = wav.getnchannels() * wav.getsampwidth()
        frames = wav.getnframes()
    if rate <= 0 or frame_size <= 0:
        return 0.0
    # Streamed responses carry a placeholder frame count in the header.
    if frames * frame_size > len(data):
        frames = max(0, len(data) - WAV_HEADER_SIZE) // frame_size
    return frames / float(rate)


class OpenAIAgentBackend(AgentBackend):
    """Agent backed by OpenAI chat models, optionally speaking its replies."""

    provider_name = "openai"
    default_model = "gpt-4o"
    default_tts_model = "gpt-4o-mini-tts"

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice: Optional[str] = None,
        tts_model: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(api_key or settings.openai_api_key, **kwargs)
        self.voice = voice
        self.tts_model = tts_model or self.default_tts_model
        self._client = None

    @property
    def client(self):
        """Lazy-load the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def is_available(self) -> bool:
        """Check if OpenAI is configured."""
        return bool(self.api_key)

    def format_messages(self, messages: List[ChatMessage]) -> List[Dict[str, str]]:
        """Format messages for OpenAI API, including system message."""
        formatted = []
        if self.system:
            formatted.append({"role": "system", "content": self.system})
        formatted.extend(super().format_messages(messages))
        return formatted

    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        """Generate a complete reply from OpenAI."""
        kwargs = {}
        if self.project_id:
            kwargs["user"] = self.project_id

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self.format_messages(messages),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            **kwargs,
        )

        content = response.choices[0].message.content or ""
        usage = response.usage
        return ChatReply(
            message=content.strip(),
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            metadata={"id": response.id, "finish_reason": response.choices[0].finish_reason},
        )

    async def synthesize_speech(self, text: str) -> Optional[AudioClip]:
        """Speak the reply when a voice is configured."""
        if not self.voice or not text:
            return None

        response = await self.client.audio.speech.create(
            model=self.tts_model,
            voice=self.voice,
            input=text,
            response_format="wav",
        )
        data = response.content
        return AudioClip(data=data, duration_seconds=wav_duration_seconds(data))
