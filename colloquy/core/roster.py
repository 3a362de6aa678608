"""Agent roster and per-round speaking order."""

import logging
import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class AgentProfile:
    """Binds a backend agent handle to the metadata used by the conversation."""
    display_name: str = "Agent"
    project_id: str = ""
    backend: Optional[Any] = None
    participates: bool = True
    opening_speaker: bool = False  # Pinned to the front of every round
    initial_prompt: Optional[str] = None
    agent_id: Optional[str] = None

    def ensure_identifier(self) -> str:
        """Assign a persistent identifier if the profile has none yet."""
        if not self.agent_id or not self.agent_id.strip():
            self.agent_id = str(uuid.uuid4())
        return self.agent_id


class RosterPhase(str, Enum):
    """Whether a round is iterating the roster."""
    IDLE = "idle"
    CYCLING = "cycling"


class ConversationRoster:
    """
    Maintains the rotation of conversation agents.

    Membership changes are buffered and only folded into the base order
    by begin_cycle(), so a round always iterates a stable snapshot.
    """

    def __init__(
        self,
        agents: Optional[List[AgentProfile]] = None,
        randomize_after_opening: bool = False,
        rng: Optional[random.Random] = None,
    ):
        self.randomize_after_opening = randomize_after_opening
        self._rng = rng or random.Random()
        self.phase = RosterPhase.IDLE

        self._base_order: List[AgentProfile] = []
        self._runtime_order: List[AgentProfile] = []
        self._pending_adds: List[AgentProfile] = []
        self._pending_removals: Set[str] = set()
        self._known_identifiers: Set[str] = set()
        self._runtime_index = -1

        for profile in agents or []:
            profile.ensure_identifier()
            if profile.agent_id not in self._known_identifiers:
                self._base_order.append(profile)
                self._known_identifiers.add(profile.agent_id)

    @property
    def base_order(self) -> Sequence[AgentProfile]:
        return tuple(self._base_order)

    @property
    def runtime_order(self) -> Sequence[AgentProfile]:
        return tuple(self._runtime_order)

    @property
    def pending_adds(self) -> Sequence[AgentProfile]:
        return tuple(self._pending_adds)

    @property
    def pending_removals(self) -> Set[str]:
        return set(self._pending_removals)

    def queue_add_agent(self, profile: Optional[AgentProfile]) -> bool:
        """
        Queue an agent to join at the next cycle.

        Returns False if an agent with the same identifier is already
        known or queued.
        """
        if profile is None:
            return False

        agent_id = profile.ensure_identifier()
        if (
            agent_id in self._known_identifiers
            or self._contains_in_base_order(agent_id)
            or any(p.agent_id == agent_id for p in self._pending_adds)
        ):
            logger.debug(f"Ignoring duplicate agent {agent_id} ({profile.display_name})")
            return False

        self._pending_adds.append(profile)
        return True

    def queue_remove_agent(self, agent_id: Optional[str]):
        """Mark an agent for removal starting with the next cycle."""
        if not agent_id or not agent_id.strip():
            return
        self._pending_removals.add(agent_id)

    def begin_cycle(self):
        """Apply pending membership changes and rebuild the runtime order."""
        self._apply_pending_changes()
        self._build_runtime_order()
        self._runtime_index = -1
        self.phase = RosterPhase.CYCLING

    def try_get_next_agent(self) -> Optional[AgentProfile]:
        """Advance the cursor. Returns None once the round is exhausted."""
        if not self._runtime_order:
            self.phase = RosterPhase.IDLE
            return None

        self._runtime_index += 1
        if self._runtime_index >= len(self._runtime_order):
            self.phase = RosterPhase.IDLE
            return None

        return self._runtime_order[self._runtime_index]

    def reset_cursor(self):
        """Rewind the cursor without rebuilding the order."""
        self._runtime_index = -1

    def try_get_profile(self, agent_id: Optional[str]) -> Optional[AgentProfile]:
        """Find a profile in the base order by identifier."""
        if not agent_id or not agent_id.strip():
            return None

        for candidate in self._base_order:
            if candidate.agent_id == agent_id:
                return candidate
        return None

    def _apply_pending_changes(self):
        if self._pending_removals:
            self._base_order = [
                p for p in self._base_order if p.agent_id not in self._pending_removals
            ]
            self._known_identifiers -= self._pending_removals
            logger.info(f"Removed agents: {sorted(self._pending_removals)}")
            self._pending_removals.clear()

        if self._pending_adds:
            for profile in self._pending_adds:
                profile.ensure_identifier()
                self._base_order.append(profile)
                self._known_identifiers.add(profile.agent_id)
            logger.info(f"Added agents: {[p.display_name for p in self._pending_adds]}")
            self._pending_adds.clear()

        for profile in self._base_order:
            self._known_identifiers.add(profile.ensure_identifier())

    def _build_runtime_order(self):
        self._runtime_order = []

        opening: Optional[AgentProfile] = None
        remaining: List[AgentProfile] = []
        for profile in self._base_order:
            if not profile.participates:
                continue
            if profile.opening_speaker and opening is None:
                opening = profile
            else:
                remaining.append(profile)

        if opening is not None:
            self._runtime_order.append(opening)

        if self.randomize_after_opening and len(remaining) > 1:
            self._rng.shuffle(remaining)

        self._runtime_order.extend(remaining)

    def _contains_in_base_order(self, agent_id: str) -> bool:
        return any(p.agent_id == agent_id for p in self._base_order)
