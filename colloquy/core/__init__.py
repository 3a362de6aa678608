# Core conversation module
from .conversation_log import ConversationLog, ConversationLogData, Turn
from .roster import AgentProfile, ConversationRoster, RosterPhase
from .context_builder import ContextBuilder
from .context_input import ContextInput
from .participants import ParticipantContextTracker, participant_list_hash
from .session import ConversationSession
from .errors import ConversationError, ConfigurationError, TransportError, PersistenceError
from .orchestrator import (
    TurnOrchestrator,
    ConversationEvents,
    AgentSubscriptionRegistry,
    AgentTurnResult,
    OrchestratorState,
    TurnState,
    get_orchestrator,
    set_orchestrator,
)

__all__ = [
    "ConversationLog",
    "ConversationLogData",
    "Turn",
    "AgentProfile",
    "ConversationRoster",
    "RosterPhase",
    "ContextBuilder",
    "ContextInput",
    "ParticipantContextTracker",
    "participant_list_hash",
    "ConversationSession",
    "ConversationError",
    "ConfigurationError",
    "TransportError",
    "PersistenceError",
    "TurnOrchestrator",
    "ConversationEvents",
    "AgentSubscriptionRegistry",
    "AgentTurnResult",
    "OrchestratorState",
    "TurnState",
    "get_orchestrator",
    "set_orchestrator",
]
