"""Base interface for backend agent handles."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A message in an agent's own memory."""
    role: str  # "user", "assistant"
    content: str


@dataclass
class ChatReply:
    """Text reply from an agent."""
    message: str
    input_tokens: int = 0
    output_tokens: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AudioClip:
    """Synthesized speech. The orchestrator only reads the duration."""
    data: bytes
    duration_seconds: float
    mime_type: str = "audio/wav"


ChatHandler = Callable[[ChatReply], Awaitable[None]]
AudioHandler = Callable[[Optional[AudioClip]], Awaitable[None]]
ErrorHandler = Callable[[str], Awaitable[None]]


@dataclass
class BackendListener:
    """Bundle of reply callbacks registered on a backend handle."""
    on_chat: ChatHandler
    on_audio: AudioHandler
    on_error: ErrorHandler


class AgentBackend(ABC):
    """
    Abstract backend agent handle.

    dispatch() is fire-and-forget. Results are delivered to listeners:
    a chat reply, then an audio reply (None when no speech was produced),
    or a single error.
    """

    provider_name: str = "base"
    default_model: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        project_id: Optional[str] = None,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.project_id = project_id
        self.system = system
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.history: List[ChatMessage] = []
        self._listeners: List[BackendListener] = []
        self._tasks: Set[asyncio.Task] = set()

    def add_listener(self, listener: BackendListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: BackendListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self, prompt: str) -> asyncio.Task:
        """Send a prompt. The reply arrives through the listeners."""
        task = asyncio.create_task(self._run(prompt))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_pending(self) -> int:
        """Cancel every request still in flight. Returns how many were cancelled."""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    async def _run(self, prompt: str):
        message = ChatMessage(role="user", content=prompt)
        answered = False
        try:
            self.history.append(message)
            reply = await self.generate_reply(list(self.history))
            if reply.message:
                self.history.append(ChatMessage(role="assistant", content=reply.message))
            answered = True
            await self._emit_chat(reply)

            clip = await self.synthesize_speech(reply.message) if reply.message else None
            await self._emit_audio(clip)
        except asyncio.CancelledError:
            if not answered:
                self._forget(message)
            raise
        except Exception as e:
            # The prompt was never answered; it will be resent in the next diff.
            if not answered:
                self._forget(message)
            logger.error(f"{self.provider_name} request failed: {e}", exc_info=True)
            await self._emit_error(str(e) or e.__class__.__name__)

    def _forget(self, message: ChatMessage):
        for i in range(len(self.history) - 1, -1, -1):
            if self.history[i] is message:
                del self.history[i]
                return

    async def _emit_chat(self, reply: ChatReply):
        for listener in list(self._listeners):
            await listener.on_chat(reply)

    async def _emit_audio(self, clip: Optional[AudioClip]):
        for listener in list(self._listeners):
            await listener.on_audio(clip)

    async def _emit_error(self, error: str):
        for listener in list(self._listeners):
            await listener.on_error(error)

    @abstractmethod
    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        """Produce the text reply for the conversation so far."""
        pass

    async def synthesize_speech(self, text: str) -> Optional[AudioClip]:
        """Produce speech for a reply. Text-only backends return None."""
        return None

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend is configured and available."""
        pass

    def reset_memory(self):
        self.history.clear()

    def format_messages(self, messages: List[ChatMessage]) -> List[Dict[str, str]]:
        """Format messages for the provider's API."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]
