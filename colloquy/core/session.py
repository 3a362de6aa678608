"""Session scoping for persisted conversation logs."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


def new_session_id() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


@dataclass
class ConversationSession:
    """One conversation per process run. Nothing carries over between sessions."""
    data_dir: Path
    log_directory_name: str = "ConversationLogs"
    session_id: str = field(default_factory=new_session_id)

    @property
    def log_directory(self) -> Path:
        return Path(self.data_dir) / self.log_directory_name

    @property
    def log_filename(self) -> str:
        return f"conversation_{self.session_id}.json"

    @property
    def log_path(self) -> Path:
        return self.log_directory / self.log_filename
