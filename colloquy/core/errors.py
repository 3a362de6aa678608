"""Error types raised by the conversation core."""


class ConversationError(Exception):
    """Base class for conversation orchestration errors."""


class ConfigurationError(ConversationError):
    """An agent is missing routing configuration or a backend handle."""


class TransportError(ConversationError):
    """A backend call failed or never answered."""


class PersistenceError(ConversationError):
    """The conversation log could not be written to disk."""
