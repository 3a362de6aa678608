"""Shared test fixtures and configuration."""

import asyncio
import os
import random
from pathlib import Path
from typing import AsyncGenerator, Callable, List, Optional, Union

import pytest
from httpx import AsyncClient, ASGITransport

# Set test environment before importing app modules
os.environ["ANTHROPIC_API_KEY"] = "test-key"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["DEBUG"] = "true"

from colloquy.main import app
from colloquy.config import Settings
from colloquy.core.orchestrator import ConversationEvents, TurnOrchestrator, set_orchestrator
from colloquy.core.roster import AgentProfile, ConversationRoster
from colloquy.providers.base import AgentBackend, AudioClip, ChatMessage, ChatReply

ScriptedReply = Union[str, Exception]


class ScriptedBackend(AgentBackend):
    """Backend that answers from a list of canned replies."""

    provider_name = "scripted"

    def __init__(
        self,
        replies: Optional[List[ScriptedReply]] = None,
        audio_duration: Optional[float] = None,
        on_prompt: Optional[Callable[[str], None]] = None,
        **kwargs,
    ):
        super().__init__(api_key="test-key", **kwargs)
        self.replies = list(replies or [])
        self.audio_duration = audio_duration
        self.on_prompt = on_prompt
        self.prompts: List[str] = []

    def is_available(self) -> bool:
        return True

    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        if self.on_prompt:
            self.on_prompt(prompt)

        reply = self.replies.pop(0) if self.replies else "OK"
        if isinstance(reply, Exception):
            raise reply
        return ChatReply(message=reply)

    async def synthesize_speech(self, text: str) -> Optional[AudioClip]:
        if self.audio_duration is None:
            return None
        return AudioClip(data=b"RIFF", duration_seconds=self.audio_duration)


class HangingBackend(ScriptedBackend):
    """Backend that never answers."""

    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        self.prompts.append(messages[-1].content)
        await asyncio.Event().wait()


class DelayedBackend(ScriptedBackend):
    """Backend that waits before answering each call, in call order."""

    def __init__(self, replies: List[ScriptedReply], delays: List[float], **kwargs):
        super().__init__(replies, **kwargs)
        self.delays = list(delays)
        self.calls = 0

    async def generate_reply(self, messages: List[ChatMessage]) -> ChatReply:
        call = self.calls
        self.calls += 1
        await asyncio.sleep(self.delays[call] if call < len(self.delays) else 0)
        self.prompts.append(messages[-1].content)
        reply = self.replies[call] if call < len(self.replies) else "OK"
        if isinstance(reply, Exception):
            raise reply
        return ChatReply(message=reply)


class RecordingEvents(ConversationEvents):
    """Collects everything the orchestrator sends to its collaborators."""

    def __init__(self):
        self.user_messages: List[str] = []
        self.assistant_messages: List[str] = []
        self.input_locks: List[bool] = []
        self.audio: List[tuple] = []
        self.warnings: List[str] = []

    async def add_user_message(self, text: str):
        self.user_messages.append(text)

    async def add_assistant_message(self, text: str):
        self.assistant_messages.append(text)

    async def set_input_lock(self, locked: bool):
        self.input_locks.append(locked)

    async def play_audio(self, agent: AgentProfile, clip: AudioClip):
        self.audio.append((agent.display_name, clip.duration_seconds))

    async def notify_warning(self, message: str):
        self.warnings.append(message)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings writing logs under a temporary directory."""
    return Settings(
        data_dir=tmp_path,
        log_directory_name="ConversationLogs",
        turn_timeout_seconds=2.0,
        randomize_after_opening=False,
        enable_verbose_logging=False,
    )


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def make_agent() -> Callable[..., AgentProfile]:
    """Factory for agent profiles backed by a scripted backend."""

    def _make(
        name: str,
        replies: Optional[List[ScriptedReply]] = None,
        opening: bool = False,
        project_id: str = "project",
        backend: Optional[AgentBackend] = None,
        **kwargs,
    ) -> AgentProfile:
        return AgentProfile(
            display_name=name,
            project_id=project_id,
            backend=backend if backend is not None else ScriptedBackend(replies),
            opening_speaker=opening,
            agent_id=name.lower(),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_orchestrator(test_settings: Settings, events: RecordingEvents):
    """Factory for orchestrators with recording collaborators."""

    def _make(agents: Optional[List[AgentProfile]] = None, **kwargs) -> TurnOrchestrator:
        roster = ConversationRoster(
            agents=agents,
            randomize_after_opening=kwargs.pop("randomize_after_opening", False),
            rng=random.Random(7),
        )
        return TurnOrchestrator(
            roster=roster,
            events=events,
            settings=kwargs.pop("settings", test_settings),
            **kwargs,
        )

    return _make


@pytest.fixture
async def orchestrator(make_orchestrator) -> AsyncGenerator[TurnOrchestrator, None]:
    """Orchestrator installed as the process-wide instance."""
    orch = make_orchestrator()
    set_orchestrator(orch)
    yield orch
    await orch.close()
    set_orchestrator(None)


@pytest.fixture
async def client(orchestrator: TurnOrchestrator) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the test orchestrator."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
