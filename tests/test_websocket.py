"""Tests for WebSocket handler."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect

from colloquy.api.websocket.chat_handler import (
    ConnectionManager,
    WebSocketConversationEvents,
    WSEvent,
    WSEventType,
    handle_event,
    manager,
    websocket_endpoint,
)
from colloquy.core.roster import AgentProfile
from colloquy.providers.base import AudioClip


def _sent_events(mock_ws) -> list:
    return [json.loads(call.args[0]) for call in mock_ws.send_text.call_args_list]


class TestWSEvent:
    """Tests for WSEvent dataclass."""

    def test_ws_event_default_data(self):
        event = WSEvent(type=WSEventType.ERROR)
        assert event.data == {}
        assert event.timestamp is not None

    def test_ws_event_to_json(self):
        """Test converting WSEvent to JSON."""
        event = WSEvent(type=WSEventType.INPUT_LOCK, data={"locked": True})
        parsed = json.loads(event.to_json())
        assert parsed["type"] == "input_lock"
        assert parsed["data"] == {"locked": True}
        assert "timestamp" in parsed


class TestConnectionManager:
    """Tests for ConnectionManager class."""

    async def test_connect_sends_session(self, orchestrator):
        cm = ConnectionManager()
        mock_ws = AsyncMock()

        await cm.connect(mock_ws)

        mock_ws.accept.assert_called_once()
        assert mock_ws in cm.active_connections
        sent = _sent_events(mock_ws)
        assert sent[0]["type"] == "connected"
        assert sent[0]["data"]["session_id"] == orchestrator.session.session_id

    def test_disconnect(self):
        cm = ConnectionManager()
        mock_ws = MagicMock()
        cm.active_connections.add(mock_ws)

        cm.disconnect(mock_ws)
        cm.disconnect(mock_ws)

        assert cm.active_connections == set()

    async def test_send_personal_handles_error(self):
        """Test send_personal handles errors gracefully."""
        cm = ConnectionManager()
        mock_ws = AsyncMock()
        mock_ws.send_text.side_effect = Exception("Connection closed")

        await cm.send_personal(mock_ws, WSEvent(type=WSEventType.ERROR))

    async def test_broadcast_drops_dead_connections(self):
        cm = ConnectionManager()
        alive = AsyncMock()
        dead = AsyncMock()
        dead.send_text.side_effect = Exception("Connection closed")
        cm.active_connections = {alive, dead}

        await cm.broadcast(WSEvent(type=WSEventType.WARNING, data={"message": "hi"}))

        alive.send_text.assert_called_once()
        assert cm.active_connections == {alive}


class TestWebSocketConversationEvents:
    """Tests for forwarding orchestrator output to clients."""

    @pytest.fixture
    def broadcasts(self):
        cm = MagicMock()
        cm.broadcast = AsyncMock()
        return cm

    def _events(self, cm) -> list:
        return [call.args[0] for call in cm.broadcast.call_args_list]

    async def test_messages_and_lock(self, broadcasts):
        events = WebSocketConversationEvents(broadcasts)

        await events.add_user_message("Hello")
        await events.add_assistant_message("Hi there")
        await events.set_input_lock(True)
        await events.notify_warning("Careful")

        sent = self._events(broadcasts)
        assert [e.type for e in sent] == [
            WSEventType.USER_MESSAGE,
            WSEventType.ASSISTANT_MESSAGE,
            WSEventType.INPUT_LOCK,
            WSEventType.WARNING,
        ]
        assert sent[1].data == {"text": "Hi there"}
        assert sent[2].data == {"locked": True}

    async def test_audio_is_base64(self, broadcasts):
        events = WebSocketConversationEvents(broadcasts)
        agent = AgentProfile(display_name="Alice", agent_id="alice")

        await events.play_audio(agent, AudioClip(data=b"RIFFdata", duration_seconds=1.5))

        event = self._events(broadcasts)[0]
        assert event.type == WSEventType.AUDIO
        assert event.data["agent_id"] == "alice"
        assert event.data["duration_seconds"] == 1.5
        assert base64.b64decode(event.data["data"]) == b"RIFFdata"


class TestHandleEvent:
    """Tests for inbound event routing."""

    async def test_transcript_starts_round(self, orchestrator, make_agent):
        orchestrator.queue_add_agent(make_agent("Alice", ["Hello"]))
        mock_ws = AsyncMock()

        await handle_event(mock_ws, "transcript", {"text": "Hi"})
        await orchestrator.round_task

        assert [t.message for t in orchestrator.log.turns] == ["Hi", "Hello"]
        mock_ws.send_text.assert_not_called()

    async def test_transcript_rejected_while_locked(self, orchestrator):
        orchestrator.input_locked = True
        mock_ws = AsyncMock()

        await handle_event(mock_ws, "transcript", {"text": "Hi"})

        assert orchestrator.log.count == 0
        assert _sent_events(mock_ws)[0]["type"] == "error"

    async def test_speech_error_unlocks(self, orchestrator):
        orchestrator.input_locked = True

        await handle_event(AsyncMock(), "speech_error", {"error": "timeout"})

        assert orchestrator.input_locked is False

    async def test_append_context(self, orchestrator):
        await handle_event(AsyncMock(), "append_context", {"context": "raining"})
        assert orchestrator.context_input.get_context_suffix() == " [raining]"

    async def test_unknown_event(self, orchestrator):
        mock_ws = AsyncMock()
        await handle_event(mock_ws, "bogus", {})
        sent = _sent_events(mock_ws)
        assert sent[0]["type"] == "error"
        assert "bogus" in sent[0]["data"]["message"]


def test_global_manager():
    assert isinstance(manager, ConnectionManager)


class TestWebSocketEndpoint:
    """Tests for the connection loop."""

    async def test_non_object_payload_keeps_connection(self, orchestrator):
        mock_ws = AsyncMock()
        mock_ws.receive_text.side_effect = [
            "[1, 2]",
            "not json",
            json.dumps({"type": "append_context", "data": {"context": "still here"}}),
            WebSocketDisconnect(),
        ]

        await websocket_endpoint(mock_ws)

        sent = _sent_events(mock_ws)
        assert [e["type"] for e in sent] == ["connected", "error", "error"]
        assert sent[1]["data"]["message"] == "Event must be a JSON object"
        assert orchestrator.context_input.get_context_suffix() == " [still here]"
        assert mock_ws not in manager.active_connections
