"""Turn orchestration for conversations between a player and several agents."""

import asyncio
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..config import Settings, get_settings
from ..providers.base import AgentBackend, AudioClip, BackendListener, ChatReply
from .context_builder import ContextBuilder
from .context_input import ContextInput
from .conversation_log import ConversationLog
from .errors import ConfigurationError, PersistenceError, TransportError
from .participants import ParticipantContextTracker
from .roster import AgentProfile, ConversationRoster
from .session import ConversationSession

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_ID = "player"


class OrchestratorState(str, Enum):
    """State of the orchestrator."""
    AWAITING_INPUT = "awaiting_input"
    ROUND_IN_PROGRESS = "round_in_progress"
    PERSISTING = "persisting"


class TurnState(str, Enum):
    """Outcome of a single agent turn."""
    DISPATCHED = "dispatched"
    AWAITING_REPLY = "awaiting_reply"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class AgentTurnResult:
    """Record of what happened to one agent during a round."""
    agent_id: str
    display_name: str
    state: TurnState = TurnState.DISPATCHED
    error: Optional[str] = None


class ConversationEvents:
    """
    Outbound collaborators of the orchestrator.

    The default implementation does nothing. Subclasses forward to a
    display, an input surface and an audio output.
    """

    async def add_user_message(self, text: str):
        pass

    async def add_assistant_message(self, text: str):
        pass

    async def set_input_lock(self, locked: bool):
        pass

    async def play_audio(self, agent: AgentProfile, clip: AudioClip):
        pass

    async def notify_warning(self, message: str):
        pass


@dataclass
class AgentSubscription:
    """Listener registered on one agent's backend."""
    agent_id: str
    backend: AgentBackend
    listener: BackendListener


class AgentSubscriptionRegistry:
    """Maps agent identifiers to the listeners registered on their backends."""

    def __init__(self):
        self._subscriptions: Dict[str, AgentSubscription] = {}

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def get(self, agent_id: str) -> Optional[AgentSubscription]:
        return self._subscriptions.get(agent_id)

    def agent_ids(self) -> List[str]:
        return list(self._subscriptions.keys())

    def register(self, agent_id: str, backend: AgentBackend, listener: BackendListener):
        """Subscribe to a backend, replacing any previous subscription for the agent."""
        self.unregister(agent_id)
        backend.add_listener(listener)
        self._subscriptions[agent_id] = AgentSubscription(agent_id, backend, listener)

    def unregister(self, agent_id: str):
        subscription = self._subscriptions.pop(agent_id, None)
        if subscription is not None:
            subscription.backend.remove_listener(subscription.listener)

    def unregister_all(self):
        for agent_id in list(self._subscriptions.keys()):
            self.unregister(agent_id)


@dataclass
class _PendingTurn:
    agent: AgentProfile
    future: asyncio.Future
    request: Optional[asyncio.Task] = None  # the dispatch that may complete this turn


class TurnOrchestrator:
    """
    Drives conversation rounds.

    Each finalized player transcript starts a round. Agents speak one at
    a time in roster order; the next agent is only prompted once the
    current one has replied, failed or timed out. The log is persisted
    after every completed round.
    """

    def __init__(
        self,
        roster: Optional[ConversationRoster] = None,
        log: Optional[ConversationLog] = None,
        context_builder: Optional[ContextBuilder] = None,
        events: Optional[ConversationEvents] = None,
        settings: Optional[Settings] = None,
        session: Optional[ConversationSession] = None,
        context_input: Optional[ContextInput] = None,
    ):
        self.settings = settings or get_settings()
        self.roster = roster or ConversationRoster(
            randomize_after_opening=self.settings.randomize_after_opening,
        )
        self.log = log or ConversationLog()
        self.context_builder = context_builder or ContextBuilder(
            turn_format=self.settings.turn_format,
            separator=self.settings.turn_separator,
            include_initial_prompt=self.settings.include_initial_prompt,
            max_context_turns=self.settings.max_context_turns,
        )
        self.context_input = context_input or ContextInput(self.settings.context_suffix_format)
        self.events = events or ConversationEvents()
        self.session = session or ConversationSession(
            data_dir=self.settings.data_dir,
            log_directory_name=self.settings.log_directory_name,
        )

        self.player_id = self.settings.player_identifier or DEFAULT_PLAYER_ID
        self.player_name = self.settings.player_display_name

        self.state = OrchestratorState.AWAITING_INPUT
        self.input_locked = False
        self.round_number = 0
        self.last_round_results: List[AgentTurnResult] = []

        self.participants = ParticipantContextTracker()
        self.subscriptions = AgentSubscriptionRegistry()
        self._round_task: Optional[asyncio.Task] = None
        self._current_turn: Optional[_PendingTurn] = None

        self._sync_subscriptions()

    @property
    def round_task(self) -> Optional[asyncio.Task]:
        return self._round_task

    @property
    def current_agent(self) -> Optional[AgentProfile]:
        return self._current_turn.agent if self._current_turn else None

    @property
    def is_round_active(self) -> bool:
        return self._round_task is not None and not self._round_task.done()

    def queue_add_agent(self, profile: AgentProfile) -> bool:
        """Add an agent to the roster starting with the next round."""
        added = self.roster.queue_add_agent(profile)
        if added:
            logger.info(f"Queued agent '{profile.display_name}' ({profile.agent_id}) for next round")
        return added

    def queue_remove_agent(self, agent_id: str):
        """Remove an agent from the roster starting with the next round."""
        self.roster.queue_remove_agent(agent_id)
        logger.info(f"Queued removal of agent {agent_id}")

    async def handle_final_transcription(self, transcript: Optional[str]) -> Optional[asyncio.Task]:
        """
        Record a finalized player transcript and start a new round.

        Any round still in progress is cancelled. Blank transcripts are
        dropped without starting a round.

        Returns:
            The task running the new round, or None
        """
        if not transcript or not transcript.strip():
            return None

        suffix = self.context_input.get_context_suffix()
        final_message = f"{transcript}{suffix}".strip()

        self.log.append_turn(self.player_id, self.player_name, final_message)
        await self.events.add_user_message(final_message)
        self.context_input.clear()

        self.cancel_round()
        self._round_task = asyncio.create_task(self._run_round_safely())
        return self._round_task

    async def handle_speech_service_error(self, error: str):
        """Report a speech-to-text failure and give the input surface back."""
        logger.warning(f"Speech service error: {error}")
        await self.events.notify_warning(f"Speech service error: {error}")
        await self._set_input_lock(False)

    def cancel_round(self) -> bool:
        """Cancel the round in progress, if any."""
        if not self.is_round_active:
            return False
        logger.info(f"Cancelling round {self.round_number}")
        self._round_task.cancel()
        return True

    async def close(self):
        """Cancel any running round and in-flight requests, then unsubscribe from every backend."""
        task = self._round_task
        if self.cancel_round():
            try:
                await task
            except asyncio.CancelledError:
                pass
        for agent_id in self.subscriptions.agent_ids():
            cancelled = self.subscriptions.get(agent_id).backend.cancel_pending()
            if cancelled:
                logger.info(f"Cancelled {cancelled} pending request(s) for agent {agent_id}")
        self.subscriptions.unregister_all()

    def persist_log(self) -> Optional[Path]:
        """
        Write the full conversation log for this session.

        Raises:
            PersistenceError: If the file cannot be written
        """
        path = self.log.save_to_disk(
            self.session.log_directory,
            self.session.log_filename,
            self.settings.pretty_print_log,
        )
        if path:
            logger.info(f"Conversation log saved to {path}")
        return path

    async def _run_round_safely(self) -> List[AgentTurnResult]:
        try:
            return await self._run_round()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Round {self.round_number} aborted: {e}", exc_info=True)
            await self.events.notify_warning(f"Round aborted: {e}")
            await self._set_input_lock(False)
            self.state = OrchestratorState.AWAITING_INPUT
            return self.last_round_results

    async def _run_round(self) -> List[AgentTurnResult]:
        self.state = OrchestratorState.ROUND_IN_PROGRESS
        self.round_number += 1
        results: List[AgentTurnResult] = []
        self.last_round_results = results

        await self._set_input_lock(True)

        self.roster.begin_cycle()
        self._sync_subscriptions()

        while True:
            agent = self.roster.try_get_next_agent()
            if agent is None:
                break
            if not agent.participates:
                continue
            results.append(await self._execute_agent_turn(agent))

        await self._set_input_lock(False)

        self.state = OrchestratorState.PERSISTING
        try:
            self.persist_log()
        except PersistenceError as e:
            logger.warning(str(e))
            await self.events.notify_warning(str(e))
        finally:
            self.state = OrchestratorState.AWAITING_INPUT

        logger.info(f"Round {self.round_number} complete: {[(r.display_name, r.state.value) for r in results]}")
        return results

    async def _execute_agent_turn(self, agent: AgentProfile) -> AgentTurnResult:
        result = AgentTurnResult(agent_id=agent.agent_id, display_name=agent.display_name)

        try:
            self._preflight_agent(agent)
        except ConfigurationError as e:
            logger.warning(str(e))
            await self.events.notify_warning(str(e))
            result.state = TurnState.SKIPPED
            result.error = str(e)
            return result

        prompt = self.build_prompt_for_agent(agent)
        if not prompt:
            result.state = TurnState.SKIPPED
            return result

        turn = _PendingTurn(agent=agent, future=asyncio.get_running_loop().create_future())
        self._current_turn = turn
        try:
            try:
                turn.request = agent.backend.dispatch(prompt)
                result.state = TurnState.AWAITING_REPLY
                clip = await self._await_reply(turn)
            except TransportError as e:
                logger.warning(f"Agent '{agent.display_name}' request failed: {e}")
                await self.events.notify_warning(f"Agent '{agent.display_name}' request failed: {e}")
                result.state = TurnState.FAILED
                result.error = str(e)
                return result

            if clip is not None:
                await self.events.play_audio(agent, clip)
                await asyncio.sleep(max(0.0, clip.duration_seconds))

            result.state = TurnState.COMPLETED
            return result
        finally:
            if self._current_turn is turn:
                self._current_turn = None
            if not turn.future.done():
                turn.future.cancel()
            # Ended without a reply (timeout or interrupted round): abandon the request.
            if turn.future.cancelled() and turn.request is not None and not turn.request.done():
                logger.debug(f"Cancelling outstanding request for agent {agent.agent_id}")
                turn.request.cancel()

    async def _await_reply(self, turn: _PendingTurn) -> Optional[AudioClip]:
        timeout = self.settings.turn_timeout_seconds
        if not timeout or timeout <= 0:
            return await turn.future

        try:
            return await asyncio.wait_for(turn.future, timeout=timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"No reply within {timeout:g} seconds")

    def build_prompt_for_agent(self, agent: AgentProfile) -> str:
        """Build the prompt for an agent, deciding whether to include the participant preamble."""
        all_agents = self.roster.base_order
        include_participants = self.participants.should_include(agent, all_agents, self.player_name)

        prompt = self.context_builder.build_prompt(
            agent,
            self.log,
            additional_context=None,
            player_name=self.player_name,
            all_agents=all_agents,
            include_participant_context=include_participants,
        )

        if self.settings.enable_prompt_logging and prompt:
            logger.info(f"Sending prompt to {agent.display_name}:\n{prompt}")
            if self.settings.enable_verbose_logging:
                logger.debug(
                    f"Prompt details for {agent.display_name}: "
                    f"length={len(prompt)} lines={len(prompt.splitlines())} "
                    f"tokens={self.context_builder.count_tokens(prompt)} "
                    f"agent_id={agent.agent_id} project_id={agent.project_id}"
                )

        return prompt

    def _preflight_agent(self, agent: AgentProfile):
        if agent.backend is None:
            raise ConfigurationError(f"Agent '{agent.display_name}' has no backend handle")
        if not agent.project_id or not agent.project_id.strip():
            raise ConfigurationError(f"Agent '{agent.display_name}' is missing a project ID")

    def _sync_subscriptions(self):
        """Match backend subscriptions to the current base order."""
        profiles = {p.agent_id: p for p in self.roster.base_order}

        for agent_id in self.subscriptions.agent_ids():
            profile = profiles.get(agent_id)
            subscription = self.subscriptions.get(agent_id)
            if profile is None or profile.backend is not subscription.backend:
                self.subscriptions.unregister(agent_id)

        for agent_id, profile in profiles.items():
            if profile.backend is not None and agent_id not in self.subscriptions:
                self.subscriptions.register(agent_id, profile.backend, self._make_listener(agent_id))

    def _make_listener(self, agent_id: str) -> BackendListener:
        return BackendListener(
            on_chat=functools.partial(self._handle_chat_response, agent_id),
            on_audio=functools.partial(self._handle_audio_response, agent_id),
            on_error=functools.partial(self._handle_request_failed, agent_id),
        )

    def _pending_turn_for(self, agent_id: str) -> Optional[_PendingTurn]:
        """Return the current turn if a callback belongs to it, else None."""
        turn = self._current_turn
        if turn is None or turn.agent.agent_id != agent_id or turn.future.done():
            return None
        # Backends deliver callbacks from inside the dispatched request.
        if turn.request is not None and asyncio.current_task() is not turn.request:
            return None
        return turn

    async def _handle_chat_response(self, agent_id: str, reply: ChatReply):
        turn = self._pending_turn_for(agent_id)
        if turn is None:
            logger.debug(f"Ignoring chat reply for agent {agent_id} outside its current turn")
            return
        if reply is None or not reply.message or not reply.message.strip():
            return

        agent = turn.agent
        self.log.append_turn(agent.agent_id, agent.display_name, reply.message)
        await self.events.add_assistant_message(f"{agent.display_name}: {reply.message.strip()}")

    async def _handle_audio_response(self, agent_id: str, clip: Optional[AudioClip]):
        turn = self._pending_turn_for(agent_id)
        if turn is None:
            logger.debug(f"Ignoring audio reply for agent {agent_id} outside its current turn")
            return
        turn.future.set_result(clip)

    async def _handle_request_failed(self, agent_id: str, error: str):
        turn = self._pending_turn_for(agent_id)
        if turn is None:
            logger.debug(f"Ignoring failure for agent {agent_id} outside its current turn: {error}")
            return
        turn.future.set_exception(TransportError(error))

    async def _set_input_lock(self, locked: bool):
        self.input_locked = locked
        await self.events.set_input_lock(locked)


# Orchestrator registry
_orchestrator: Optional[TurnOrchestrator] = None


def get_orchestrator() -> TurnOrchestrator:
    """Get or create the orchestrator for this process's session."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = TurnOrchestrator()
    return _orchestrator


def set_orchestrator(orchestrator: Optional[TurnOrchestrator]):
    """Replace the process-wide orchestrator."""
    global _orchestrator
    _orchestrator = orchestrator
