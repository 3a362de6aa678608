"""WebSocket handler for real-time conversation events."""

import base64
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...core.orchestrator import ConversationEvents, get_orchestrator
from ...core.roster import AgentProfile
from ...providers.base import AudioClip

logger = logging.getLogger(__name__)

router = APIRouter()


class WSEventType(str, Enum):
    """WebSocket event types."""
    # Connection events
    CONNECTED = "connected"
    ERROR = "error"

    # Inbound from the speech-to-text client
    TRANSCRIPT = "transcript"
    SPEECH_ERROR = "speech_error"
    APPEND_CONTEXT = "append_context"

    # Outbound display and input events
    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    INPUT_LOCK = "input_lock"
    AUDIO = "audio"
    WARNING = "warning"


@dataclass
class WSEvent:
    """WebSocket event structure."""
    type: WSEventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        })


class ConnectionManager:
    """Manages WebSocket connections for the conversation."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        """Accept a WebSocket connection."""
        await websocket.accept()
        self.active_connections.add(websocket)

        orchestrator = get_orchestrator()
        await self.send_personal(websocket, WSEvent(
            type=WSEventType.CONNECTED,
            data={
                "session_id": orchestrator.session.session_id,
                "input_locked": orchestrator.input_locked,
            },
        ))
        logger.info("WebSocket connected")

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        self.active_connections.discard(websocket)
        logger.info("WebSocket disconnected")

    async def send_personal(self, websocket: WebSocket, event: WSEvent):
        """Send event to a specific connection."""
        try:
            await websocket.send_text(event.to_json())
        except Exception as e:
            logger.error(f"Error sending to websocket: {e}")

    async def broadcast(self, event: WSEvent):
        """Broadcast event to all connections."""
        disconnected = []
        for websocket in list(self.active_connections):
            try:
                await websocket.send_text(event.to_json())
            except Exception as e:
                logger.error(f"Error broadcasting: {e}")
                disconnected.append(websocket)

        # Clean up disconnected clients
        for ws in disconnected:
            self.active_connections.discard(ws)


# Global connection manager
manager = ConnectionManager()


class WebSocketConversationEvents(ConversationEvents):
    """Forwards orchestrator output to every connected client."""

    def __init__(self, connection_manager: ConnectionManager = manager):
        self.connection_manager = connection_manager

    async def add_user_message(self, text: str):
        await self.connection_manager.broadcast(WSEvent(
            type=WSEventType.USER_MESSAGE,
            data={"text": text},
        ))

    async def add_assistant_message(self, text: str):
        await self.connection_manager.broadcast(WSEvent(
            type=WSEventType.ASSISTANT_MESSAGE,
            data={"text": text},
        ))

    async def set_input_lock(self, locked: bool):
        await self.connection_manager.broadcast(WSEvent(
            type=WSEventType.INPUT_LOCK,
            data={"locked": locked},
        ))

    async def play_audio(self, agent: AgentProfile, clip: AudioClip):
        await self.connection_manager.broadcast(WSEvent(
            type=WSEventType.AUDIO,
            data={
                "agent_id": agent.agent_id,
                "display_name": agent.display_name,
                "mime_type": clip.mime_type,
                "duration_seconds": clip.duration_seconds,
                "data": base64.b64encode(clip.data).decode("ascii"),
            },
        ))

    async def notify_warning(self, message: str):
        await self.connection_manager.broadcast(WSEvent(
            type=WSEventType.WARNING,
            data={"message": message},
        ))


@router.websocket("/conversation")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for the conversation."""
    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    await manager.send_personal(websocket, WSEvent(
                        type=WSEventType.ERROR,
                        data={"message": "Event must be a JSON object"},
                    ))
                    continue

                await handle_event(
                    websocket,
                    message.get("type"),
                    message.get("data", {}),
                )

            except json.JSONDecodeError:
                await manager.send_personal(websocket, WSEvent(
                    type=WSEventType.ERROR,
                    data={"message": "Invalid JSON"},
                ))

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        manager.disconnect(websocket)


async def handle_event(
    websocket: WebSocket,
    event_type: str,
    event_data: Dict[str, Any],
):
    """Handle incoming WebSocket events."""
    orchestrator = get_orchestrator()

    if event_type == WSEventType.TRANSCRIPT.value:
        if orchestrator.input_locked and not event_data.get("interrupt", False):
            await manager.send_personal(websocket, WSEvent(
                type=WSEventType.ERROR,
                data={"message": "Input is locked while agents are speaking"},
            ))
            return
        await orchestrator.handle_final_transcription(event_data.get("text", ""))

    elif event_type == WSEventType.SPEECH_ERROR.value:
        await orchestrator.handle_speech_service_error(event_data.get("error", "Unknown error"))

    elif event_type == WSEventType.APPEND_CONTEXT.value:
        orchestrator.context_input.append_context(event_data.get("context", ""))

    else:
        await manager.send_personal(websocket, WSEvent(
            type=WSEventType.ERROR,
            data={"message": f"Unknown event type: {event_type}"},
        ))
