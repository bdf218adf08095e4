"""Session/auth state: which credential the model gateway is bound to."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Union

from .credential_store import CredentialStore
from .errors import SessionExpired
from .providers import AnthropicGateway, Credential, ModelGateway

logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """Supplies a bearer token on demand, refreshing it if needed."""

    @abstractmethod
    def get_valid_credential(self) -> str:
        """
        Return a usable access token. May block on a network refresh.

        Raises SessionExpired when the user has to log in again; transient
        network failures raise TransportError instead.
        """
        ...

    def forget(self) -> None:
        """Drop any stored tokens (called when the session is demoted)."""
        return None


@dataclass(frozen=True)
class Unauthenticated:
    name = "unauthenticated"


@dataclass(frozen=True)
class ApiKeyAuth:
    key: str
    name = "api_key"

    def __repr__(self) -> str:
        return "ApiKeyAuth(key='***')"


@dataclass(frozen=True)
class OAuthAuth:
    provider: CredentialProvider
    name = "oauth"


AuthMode = Union[Unauthenticated, ApiKeyAuth, OAuthAuth]

GatewayFactory = Callable[[Credential], ModelGateway]


class Session:
    """
    Holds the active auth mode and the single gateway bound to it.

    Switching modes, logging out or expiring drops the gateway; the next
    ``acquire_gateway`` builds a new one lazily.
    """

    def __init__(
        self,
        mode: AuthMode | None = None,
        *,
        store: CredentialStore | None = None,
        gateway_factory: GatewayFactory | None = None,
    ) -> None:
        self._mode: AuthMode = mode or Unauthenticated()
        self._store = store
        self._gateway_factory: GatewayFactory = gateway_factory or AnthropicGateway
        self._gateway: ModelGateway | None = None

    @classmethod
    def from_store(
        cls,
        store: CredentialStore,
        oauth_provider: CredentialProvider | None = None,
        gateway_factory: GatewayFactory | None = None,
    ) -> Session:
        """Pick the initial mode from persisted credentials."""
        mode: AuthMode = Unauthenticated()
        api_key = store.get_api_key()
        if api_key:
            mode = ApiKeyAuth(api_key)
        elif oauth_provider is not None and store.get_oauth_tokens() is not None:
            mode = OAuthAuth(oauth_provider)
        logger.info("Session starting in %s mode", mode.name)
        return cls(mode, store=store, gateway_factory=gateway_factory)

    @property
    def mode(self) -> AuthMode:
        return self._mode

    @property
    def is_authenticated(self) -> bool:
        return not isinstance(self._mode, Unauthenticated)

    @property
    def gateway(self) -> ModelGateway | None:
        return self._gateway

    async def _credential(self) -> Credential:
        mode = self._mode
        if isinstance(mode, ApiKeyAuth):
            return Credential(scheme="api_key", token=mode.key)
        if isinstance(mode, OAuthAuth):
            token = await asyncio.to_thread(mode.provider.get_valid_credential)
            return Credential(scheme="bearer", token=token)
        raise SessionExpired("Not logged in")

    async def acquire_gateway(self) -> ModelGateway:
        """Return the gateway for the current credential, rebuilding it if the credential changed."""
        credential = await self._credential()
        if self._gateway is not None and self._gateway.credential == credential:
            return self._gateway
        await self.invalidate()
        self._gateway = self._gateway_factory(credential)
        return self._gateway

    async def invalidate(self) -> None:
        gateway, self._gateway = self._gateway, None
        if gateway is not None:
            await gateway.aclose()

    async def use_api_key(self, key: str) -> None:
        key = key.strip()
        if not key:
            raise ValueError("API key must not be blank")
        if self._store is not None:
            self._store.save_api_key(key)
        await self._switch(ApiKeyAuth(key))

    async def use_oauth(self, provider: CredentialProvider) -> None:
        # from_store prefers a stored key over OAuth tokens
        if self._store is not None:
            self._store.clear_api_key()
        await self._switch(OAuthAuth(provider))

    async def logout(self) -> None:
        if self._store is not None:
            self._store.clear()
        await self._switch(Unauthenticated())

    async def expire(self) -> None:
        """Demote to unauthenticated after the credential provider gave up."""
        mode = self._mode
        if isinstance(mode, OAuthAuth):
            mode.provider.forget()
        logger.warning("Session expired; re-authentication required")
        await self._switch(Unauthenticated())

    async def _switch(self, mode: AuthMode) -> None:
        await self.invalidate()
        self._mode = mode
        logger.info("Auth mode is now %s", mode.name)
