"""Conversation history with recency queries and JSON snapshots."""

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .errors import PersistenceError

logger = logging.getLogger(__name__)


def _now_millis() -> int:
    return int(time.time() * 1000)


class Turn(BaseModel):
    """A single turn saved in the conversation history."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    speaker_id: str = Field(alias="speakerId")
    speaker_name: str = Field(alias="speakerName")
    message: str
    unix_time_milliseconds: int = Field(default_factory=_now_millis, alias="unixTimeMilliseconds")


class ConversationLogData(BaseModel):
    """Document shape written to disk."""

    turns: List[Turn] = []


TurnPredicate = Callable[[Turn], bool]


class ConversationLog:
    """
    Append-only record of speaker turns.

    Turns are kept in insertion order. The only way to drop turns is
    clear(), which empties the whole log.
    """

    def __init__(self):
        self._turns: List[Turn] = []

    @property
    def turns(self) -> Sequence[Turn]:
        return tuple(self._turns)

    @property
    def count(self) -> int:
        return len(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def append_turn(self, speaker_id: str, speaker_name: str, message: Optional[str]) -> Optional[Turn]:
        """Append a turn. Blank messages are ignored."""
        if not message or not message.strip():
            return None

        turn = Turn(speaker_id=speaker_id, speaker_name=speaker_name, message=message.strip())
        self._turns.append(turn)
        return turn

    def clear(self):
        self._turns.clear()

    def get_recent_turns(self, predicate: Optional[TurnPredicate], max_count: int) -> List[Turn]:
        """
        Get the most recent turns matching a predicate.

        Scans from the newest turn backward and stops once max_count
        matches are collected.

        Args:
            predicate: Filter applied to each turn, or None to match all
            max_count: Maximum number of turns to return

        Returns:
            Matching turns, oldest first
        """
        results: List[Turn] = []
        if max_count <= 0:
            return results

        for turn in reversed(self._turns):
            if len(results) >= max_count:
                break
            if predicate is None or predicate(turn):
                results.append(turn)

        results.reverse()
        return results

    def get_turns_since_last_agent_speak(self, agent_id: str) -> List[Turn]:
        """Get every turn after the agent's most recent one, oldest first."""
        results: List[Turn] = []
        for turn in reversed(self._turns):
            if turn.speaker_id == agent_id:
                break
            results.append(turn)

        results.reverse()
        return results

    def to_snapshot(self) -> ConversationLogData:
        return ConversationLogData(turns=list(self._turns))

    def save_to_disk(self, directory: Path | str, filename: str, pretty_print: bool = True) -> Optional[Path]:
        """
        Write the full log as a JSON document, replacing any existing file.

        Raises:
            PersistenceError: If the directory or file cannot be written
        """
        if not str(directory).strip() or not filename or not filename.strip():
            return None

        path = Path(directory) / filename
        payload = self.to_snapshot().model_dump_json(by_alias=True, indent=2 if pretty_print else None)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(payload, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to write conversation log to {path}: {e}") from e

        logger.debug(f"Saved {len(self._turns)} turns to {path}")
        return path
