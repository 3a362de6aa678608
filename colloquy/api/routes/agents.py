"""Agent roster API routes."""

from fastapi import APIRouter, HTTPException
from typing import List, Optional
from pydantic import BaseModel

from ...core.orchestrator import get_orchestrator
from ...core.roster import AgentProfile
from ...providers.factory import create_backend

router = APIRouter()


class AgentCreate(BaseModel):
    """Request to add an agent to the conversation."""
    display_name: str
    project_id: str
    provider: str = "anthropic"
    model: Optional[str] = None
    voice: Optional[str] = None  # Only used by providers that can speak
    participates: bool = True
    opening_speaker: bool = False
    initial_prompt: Optional[str] = None
    system_prompt: Optional[str] = None
    agent_id: Optional[str] = None


class AgentResponse(BaseModel):
    """Agent on the roster."""
    agent_id: str
    display_name: str
    project_id: str
    provider: Optional[str] = None
    participates: bool
    opening_speaker: bool
    pending_removal: bool = False
    pending_add: bool = False


def _to_response(profile: AgentProfile, pending_add: bool = False) -> AgentResponse:
    orchestrator = get_orchestrator()
    return AgentResponse(
        agent_id=profile.agent_id,
        display_name=profile.display_name,
        project_id=profile.project_id,
        provider=getattr(profile.backend, "provider_name", None),
        participates=profile.participates,
        opening_speaker=profile.opening_speaker,
        pending_removal=profile.agent_id in orchestrator.roster.pending_removals,
        pending_add=pending_add,
    )


@router.get("/", response_model=List[AgentResponse])
async def list_agents():
    """List agents on the roster, including ones queued to join."""
    roster = get_orchestrator().roster
    agents = [_to_response(p) for p in roster.base_order]
    agents.extend(_to_response(p, pending_add=True) for p in roster.pending_adds)
    return agents


@router.post("/", response_model=AgentResponse, status_code=201)
async def add_agent(request: AgentCreate):
    """Queue an agent to join from the next round."""
    backend_kwargs = {
        "model": request.model,
        "project_id": request.project_id,
        "system": request.system_prompt,
    }
    if request.voice:
        backend_kwargs["voice"] = request.voice

    try:
        backend = create_backend(request.provider, **backend_kwargs)
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    profile = AgentProfile(
        display_name=request.display_name,
        project_id=request.project_id,
        backend=backend,
        participates=request.participates,
        opening_speaker=request.opening_speaker,
        initial_prompt=request.initial_prompt,
        agent_id=request.agent_id,
    )

    if not get_orchestrator().queue_add_agent(profile):
        raise HTTPException(status_code=409, detail=f"Agent {profile.agent_id} already exists")

    return _to_response(profile, pending_add=True)


@router.delete("/{agent_id}", status_code=202)
async def remove_agent(agent_id: str):
    """Queue an agent for removal from the next round."""
    orchestrator = get_orchestrator()
    if orchestrator.roster.try_get_profile(agent_id) is None:
        raise HTTPException(status_code=404, detail="Agent not found")

    orchestrator.queue_remove_agent(agent_id)
    return {"agent_id": agent_id, "pending_removal": True}
