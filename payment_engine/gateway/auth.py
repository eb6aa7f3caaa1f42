"""Authorization data sources: who the current user is and how to authenticate."""

from abc import ABC, abstractmethod
from typing import Optional


class AuthorizationDataSource(ABC):
    """Supplies credentials for gateway calls. Implemented by the host."""

    @abstractmethod
    def identity(self) -> Optional[str]:
        """Identifier of the logged-in user, or None when logged out."""
        ...

    @abstractmethod
    async def authorization_token(self) -> str:
        """Credential used to authenticate gateway calls."""
        ...


class StaticAuthorizationDataSource(AuthorizationDataSource):
    """Fixed identity and token. Useful for demos and tests."""

    def __init__(self, identity: Optional[str], token: str = "static-token"):
        self._identity = identity
        self._token = token

    def identity(self) -> Optional[str]:
        return self._identity

    def switch_user(self, identity: Optional[str], token: Optional[str] = None) -> None:
        self._identity = identity
        if token is not None:
            self._token = token

    async def authorization_token(self) -> str:
        return self._token
