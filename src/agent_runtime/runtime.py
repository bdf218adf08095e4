"""Process-wide runtime: one session, one orchestrator."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from .auth import GatewayFactory, Session
from .config import CREDENTIALS_PATH, WORKSPACE_DIR, ensure_dirs
from .credential_store import CredentialStore
from .loop import LoopOptions, Orchestrator
from .oauth import OAuthManager
from .tools import build_default_registry

_default_orchestrator: Orchestrator | None = None
_default_oauth: OAuthManager | None = None


def build_orchestrator(
    credentials_path: Path = CREDENTIALS_PATH,
    workspace: Path = WORKSPACE_DIR,
    options: LoopOptions | None = None,
    gateway_factory: GatewayFactory | None = None,
) -> tuple[Orchestrator, OAuthManager]:
    """Wire store, OAuth manager, session, tools and orchestrator together."""
    store = CredentialStore(credentials_path)
    oauth = OAuthManager(store)
    session = Session.from_store(store, oauth_provider=oauth, gateway_factory=gateway_factory)
    options = replace(options or LoopOptions(), workspace=Path(workspace))
    orchestrator = Orchestrator(session, build_default_registry(workspace), options)
    return orchestrator, oauth


def get_orchestrator() -> Orchestrator:
    """Return the process-wide orchestrator, building it on first use."""
    global _default_orchestrator, _default_oauth
    if _default_orchestrator is None:
        ensure_dirs()
        _default_orchestrator, _default_oauth = build_orchestrator()
    return _default_orchestrator


def get_oauth_manager() -> OAuthManager:
    get_orchestrator()
    if _default_oauth is None:
        raise RuntimeError("OAuth manager not configured")
    return _default_oauth


def set_orchestrator(orchestrator: Orchestrator | None, oauth: OAuthManager | None = None) -> None:
    """Replace the process-wide orchestrator (tests, embedding)."""
    global _default_orchestrator, _default_oauth
    _default_orchestrator = orchestrator
    _default_oauth = oauth
