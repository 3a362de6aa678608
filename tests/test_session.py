"""Tests for session scoping and manual context input."""

from pathlib import Path

from colloquy.core.context_input import ContextInput
from colloquy.core.session import ConversationSession, new_session_id


class TestConversationSession:
    """Tests for ConversationSession."""

    def test_log_path(self, tmp_path: Path):
        session = ConversationSession(data_dir=tmp_path, session_id="20240101_120000")
        assert session.log_directory == tmp_path / "ConversationLogs"
        assert session.log_filename == "conversation_20240101_120000.json"
        assert session.log_path == tmp_path / "ConversationLogs" / "conversation_20240101_120000.json"

    def test_custom_directory(self, tmp_path: Path):
        session = ConversationSession(data_dir=str(tmp_path), log_directory_name="Logs")
        assert session.log_directory == tmp_path / "Logs"

    def test_session_id_format(self):
        session_id = new_session_id()
        assert len(session_id) == 15
        assert session_id[8] == "_"
        assert session_id.replace("_", "").isdigit()


class TestContextInput:
    """Tests for ContextInput."""

    def test_append(self):
        context_input = ContextInput()
        assert context_input.append_context("door opens") == " [door opens]"
        assert context_input.append_context("  music  ") == " [door opens] [music]"
        assert context_input.get_context_suffix() == " [door opens] [music]"

    def test_blank_is_ignored(self):
        context_input = ContextInput()
        context_input.append_context("   ")
        context_input.append_context(None)
        assert context_input.get_context_suffix() == ""

    def test_custom_format(self):
        context_input = ContextInput(context_format=" ({context})")
        assert context_input.append_context("aside") == " (aside)"

    def test_clear(self):
        context_input = ContextInput()
        context_input.append_context("x")
        context_input.clear()
        assert context_input.text == ""
