"""Chat router: submit messages and observe the active run."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.agent_runtime.loop import Orchestrator
from src.agent_runtime.models import DisplayMessage
from src.agent_runtime.runtime import get_orchestrator


router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    """Request body for POST /chat."""

    message: str = Field(..., description="User message")


class SubmitResponse(BaseModel):
    """Response for POST /chat."""

    accepted: bool
    state: str


class UsageResponse(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ChatStateResponse(BaseModel):
    """Snapshot of the conversation for GET /chat."""

    state: str
    requires_login: bool
    usage: UsageResponse
    messages: list[DisplayMessage] = Field(default_factory=list)
    last_error: str | None = None
    turn_count: int = 0


def _snapshot(orchestrator: Orchestrator) -> ChatStateResponse:
    error = orchestrator.last_error
    return ChatStateResponse(
        state=orchestrator.state.value,
        requires_login=orchestrator.requires_login,
        usage=UsageResponse(
            input_tokens=orchestrator.usage.input_tokens,
            output_tokens=orchestrator.usage.output_tokens,
        ),
        messages=list(orchestrator.messages),
        last_error=f"{type(error).__name__}: {error}" if error is not None else None,
        turn_count=len(orchestrator.log),
    )


@router.post("", response_model=SubmitResponse, status_code=202)
async def submit(request: ChatRequest) -> SubmitResponse:
    """Start a run; poll GET /chat for progress."""
    orchestrator = get_orchestrator()
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be blank")
    if orchestrator.requires_login:
        raise HTTPException(status_code=401, detail="Login required")
    if orchestrator.is_running:
        raise HTTPException(status_code=409, detail="A run is already active")
    if not orchestrator.submit(request.message):
        raise HTTPException(status_code=409, detail="Message rejected")
    return SubmitResponse(accepted=True, state=orchestrator.state.value)


@router.get("", response_model=ChatStateResponse)
async def state() -> ChatStateResponse:
    return _snapshot(get_orchestrator())


@router.delete("", response_model=ChatStateResponse)
async def clear() -> ChatStateResponse:
    """Clear history and usage counters."""
    orchestrator = get_orchestrator()
    if not orchestrator.clear_history():
        raise HTTPException(status_code=409, detail="Cannot clear while a run is active")
    return _snapshot(orchestrator)
