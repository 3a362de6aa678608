"""Prompt assembly for a single agent turn."""

import logging
from typing import List, Optional, Sequence

import tiktoken

from .conversation_log import ConversationLog, Turn
from .roster import AgentProfile

logger = logging.getLogger(__name__)

DEFAULT_TURN_FORMAT = "{speaker}: {message}"
DEFAULT_PARTICIPANT_FORMAT = "You are in a conversation with {names}."


class ContextBuilder:
    """
    Builds the prompt sent to an agent.

    The backend is assumed to remember everything it has already been
    shown, so only the turns since the agent last spoke are included.
    """

    def __init__(
        self,
        turn_format: str = DEFAULT_TURN_FORMAT,
        separator: str = "\n",
        participant_format: str = DEFAULT_PARTICIPANT_FORMAT,
        include_initial_prompt: bool = True,
        max_context_turns: Optional[int] = None,
        encoding_name: str = "cl100k_base",
    ):
        self.turn_format = turn_format
        self.separator = separator
        self.participant_format = participant_format
        self.include_initial_prompt = include_initial_prompt
        self.max_context_turns = max_context_turns
        self.encoding_name = encoding_name
        self._encoding = None

    def build_prompt(
        self,
        agent: Optional[AgentProfile],
        log: Optional[ConversationLog],
        additional_context: Optional[str] = None,
        player_name: str = "Player",
        all_agents: Optional[Sequence[AgentProfile]] = None,
        include_participant_context: bool = False,
    ) -> str:
        """
        Build the prompt for an agent.

        Args:
            agent: The agent about to speak
            log: Conversation history
            additional_context: Ad hoc text placed before the turns
            player_name: Display name of the human participant
            all_agents: Every agent on the roster, used for the preamble
            include_participant_context: Whether to open with the
                "who else is here" line

        Returns:
            The trimmed prompt, or an empty string if there is no agent
        """
        if agent is None:
            return ""

        lines: List[str] = []

        if include_participant_context:
            preamble = self.build_participant_preamble(agent, player_name, all_agents)
            if preamble:
                lines.append(preamble)

        if self.include_initial_prompt and agent.initial_prompt and agent.initial_prompt.strip():
            lines.append(agent.initial_prompt.strip())

        if additional_context and additional_context.strip():
            lines.append(additional_context.strip())

        if log is not None and log.count > 0:
            turns = self.get_new_turns(agent, log)
            if turns:
                lines.append(self.format_turns(turns))

        return "\n".join(lines).strip()

    def get_new_turns(self, agent: AgentProfile, log: ConversationLog) -> List[Turn]:
        """Turns the agent has not seen yet, excluding its own."""
        turns = [
            t for t in log.get_turns_since_last_agent_speak(agent.agent_id)
            if t.speaker_id != agent.agent_id
        ]
        if self.max_context_turns is not None and self.max_context_turns > 0:
            turns = turns[-self.max_context_turns:]
        return turns

    def format_turns(self, turns: Sequence[Turn]) -> str:
        return self.separator.join(
            self.turn_format.format(speaker=t.speaker_name, message=t.message)
            for t in turns
        )

    def build_participant_preamble(
        self,
        agent: AgentProfile,
        player_name: str,
        all_agents: Optional[Sequence[AgentProfile]],
    ) -> str:
        """One line naming everyone else in the conversation."""
        names: List[str] = []
        if player_name and player_name.strip():
            names.append(player_name.strip())

        for other in all_agents or []:
            if other is agent or other.agent_id == agent.agent_id:
                continue
            if other.participates and other.display_name and other.display_name.strip():
                names.append(other.display_name.strip())

        if not names:
            return ""
        return self.participant_format.format(names=", ".join(names))

    def count_tokens(self, text: str) -> int:
        """Count tokens in a prompt."""
        if not text:
            return 0
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return len(self._encoding.encode(text))
