"""Manual context that is appended to the next transcript."""

from typing import Optional

DEFAULT_CONTEXT_FORMAT = " [{context}]"


class ContextInput:
    """Text surface the user can augment before speaking."""

    def __init__(self, context_format: str = DEFAULT_CONTEXT_FORMAT):
        self.context_format = context_format
        self.text = ""

    def append_context(self, context: Optional[str]) -> str:
        """Append a formatted snippet and return the new suffix."""
        if context and context.strip():
            self.text += self.context_format.format(context=context.strip())
        return self.text

    def get_context_suffix(self) -> str:
        return self.text

    def clear(self):
        self.text = ""
