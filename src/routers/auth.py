"""Auth router: choose API-key or OAuth mode, or log out."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.agent_runtime.errors import AgentRuntimeError, ApiError, AuthError
from src.agent_runtime.runtime import get_oauth_manager, get_orchestrator


router = APIRouter(prefix="/auth", tags=["auth"])


class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., description="Anthropic API key")


class OAuthExchangeRequest(BaseModel):
    code: str = Field(..., description="Authorization code from the callback page")


class AuthStatus(BaseModel):
    mode: str
    authenticated: bool


class OAuthUrlResponse(BaseModel):
    url: str


def _status() -> AuthStatus:
    session = get_orchestrator().session
    return AuthStatus(mode=session.mode.name, authenticated=session.is_authenticated)


def _ensure_idle() -> None:
    if get_orchestrator().is_running:
        raise HTTPException(status_code=409, detail="Cannot change credentials while a run is active")


@router.get("", response_model=AuthStatus)
async def status() -> AuthStatus:
    return _status()


@router.post("/api-key", response_model=AuthStatus)
async def use_api_key(request: ApiKeyRequest) -> AuthStatus:
    _ensure_idle()
    if not request.api_key.strip():
        raise HTTPException(status_code=400, detail="API key must not be blank")
    await get_orchestrator().session.use_api_key(request.api_key)
    return _status()


@router.get("/oauth/url", response_model=OAuthUrlResponse)
async def oauth_url() -> OAuthUrlResponse:
    url = await asyncio.to_thread(get_oauth_manager().build_auth_url)
    return OAuthUrlResponse(url=url)


@router.post("/oauth/exchange", response_model=AuthStatus)
async def oauth_exchange(request: OAuthExchangeRequest) -> AuthStatus:
    _ensure_idle()
    oauth = get_oauth_manager()
    try:
        await asyncio.to_thread(oauth.exchange_code, request.code)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ApiError as e:
        raise HTTPException(status_code=502, detail=f"Token exchange failed ({e.status_code}): {e.body}") from e
    except AgentRuntimeError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    await get_orchestrator().session.use_oauth(oauth)
    return _status()


@router.post("/logout", response_model=AuthStatus)
async def logout() -> AuthStatus:
    _ensure_idle()
    await get_orchestrator().session.logout()
    return _status()
