"""Change detection for the participant preamble."""

import logging
from typing import Optional, Sequence, Set

from .roster import AgentProfile

logger = logging.getLogger(__name__)


def participant_list_hash(player_name: Optional[str], agents: Optional[Sequence[AgentProfile]]) -> str:
    """Stable fingerprint of who is currently taking part."""
    participants = [player_name or "Player"]
    for agent in agents or []:
        if agent.participates and agent.display_name and agent.display_name.strip():
            participants.append(f"{agent.agent_id}:{agent.display_name}")

    participants.sort()
    return "|".join(participants)


class ParticipantContextTracker:
    """
    Decides whether an agent should be told who else is present.

    An agent gets the preamble the first time it speaks, and again after
    any change to the participant list. A change resets the notified set
    for every agent.
    """

    def __init__(self):
        self.notified: Set[str] = set()
        self.last_hash = ""

    def should_include(
        self,
        agent: Optional[AgentProfile],
        agents: Optional[Sequence[AgentProfile]],
        player_name: Optional[str],
    ) -> bool:
        if agent is None:
            return False

        first_time = agent.agent_id not in self.notified
        current_hash = participant_list_hash(player_name, agents)
        changed = current_hash != self.last_hash

        if not (first_time or changed):
            return False

        if changed:
            self.last_hash = current_hash
            self.notified.clear()
        self.notified.add(agent.agent_id)

        reason = "participants changed" if changed else "first time"
        logger.debug(f"Including participant context for {agent.display_name} ({reason})")
        return True

    def reset(self):
        self.notified.clear()
        self.last_hash = ""
