"""Conversation API routes."""

from fastapi import APIRouter, HTTPException, Query
from typing import List, Optional
from pydantic import BaseModel

from ...core.conversation_log import Turn
from ...core.errors import PersistenceError
from ...core.orchestrator import get_orchestrator

router = APIRouter()


class TranscriptRequest(BaseModel):
    """A finalized transcript from the speech-to-text client."""
    text: str
    interrupt: bool = False  # Start a new round even if one is running


class TranscriptResponse(BaseModel):
    round_started: bool
    round_number: int


class SpeechErrorRequest(BaseModel):
    error: str


class ContextRequest(BaseModel):
    context: str


class ContextResponse(BaseModel):
    suffix: str


class TurnResultResponse(BaseModel):
    agent_id: str
    display_name: str
    state: str
    error: Optional[str] = None


class StatusResponse(BaseModel):
    session_id: str
    state: str
    input_locked: bool
    round_number: int
    turn_count: int
    current_agent_id: Optional[str] = None
    last_round: List[TurnResultResponse] = []


class SaveResponse(BaseModel):
    path: str
    turn_count: int


@router.post("/transcripts", response_model=TranscriptResponse, status_code=202)
async def submit_transcript(request: TranscriptRequest):
    """Submit a finalized player transcript and start a round."""
    orchestrator = get_orchestrator()

    if orchestrator.input_locked and not request.interrupt:
        raise HTTPException(status_code=409, detail="Input is locked while agents are speaking")

    task = await orchestrator.handle_final_transcription(request.text)
    return TranscriptResponse(
        round_started=task is not None,
        round_number=orchestrator.round_number,
    )


@router.post("/errors", status_code=204)
async def report_speech_error(request: SpeechErrorRequest):
    """Report a recoverable speech-to-text error. Unlocks input."""
    await get_orchestrator().handle_speech_service_error(request.error)


@router.post("/context", response_model=ContextResponse)
async def append_context(request: ContextRequest):
    """Append manual context to the next transcript."""
    suffix = get_orchestrator().context_input.append_context(request.context)
    return ContextResponse(suffix=suffix)


@router.delete("/context", response_model=ContextResponse)
async def clear_context():
    """Discard pending manual context."""
    context_input = get_orchestrator().context_input
    context_input.clear()
    return ContextResponse(suffix=context_input.get_context_suffix())


@router.get("/turns", response_model=List[Turn], response_model_by_alias=True)
async def list_turns(
    limit: int = Query(50, ge=1, le=1000),
    speaker_id: Optional[str] = Query(None, description="Filter by speaker"),
):
    """Get the most recent turns, oldest first."""
    log = get_orchestrator().log
    predicate = (lambda t: t.speaker_id == speaker_id) if speaker_id else None
    return log.get_recent_turns(predicate, limit)


@router.get("/status", response_model=StatusResponse)
async def get_status():
    """Get the orchestrator state."""
    orchestrator = get_orchestrator()
    current = orchestrator.current_agent
    return StatusResponse(
        session_id=orchestrator.session.session_id,
        state=orchestrator.state.value,
        input_locked=orchestrator.input_locked,
        round_number=orchestrator.round_number,
        turn_count=orchestrator.log.count,
        current_agent_id=current.agent_id if current else None,
        last_round=[
            TurnResultResponse(
                agent_id=r.agent_id,
                display_name=r.display_name,
                state=r.state.value,
                error=r.error,
            )
            for r in orchestrator.last_round_results
        ],
    )


@router.post("/save", response_model=SaveResponse)
async def save_log():
    """Write the conversation log to disk now."""
    orchestrator = get_orchestrator()
    try:
        path = orchestrator.persist_log()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return SaveResponse(path=str(path), turn_count=orchestrator.log.count)
