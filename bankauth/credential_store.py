"""
CredentialStore interface for the authentication system.

The credential store is the external collaborator that owns principal
records. The authentication system reads principals from it and writes
back lockout state after every login attempt.
"""

from abc import ABC, abstractmethod
from typing import Any

from .types import Principal


class CredentialStore(ABC):
    """
    Abstract base class for credential stores.

    ``save`` is optimistic: the stored ``version`` must equal the version
    of the principal being saved, otherwise ``ConcurrentModificationError``
    is raised. A successful save bumps the version.
    """

    def __init__(self, config: dict[str, Any]):
        self.config = config.copy()
        self._validate_config(config)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_by_handle(self, handle: str) -> Principal | None:
        pass

    @abstractmethod
    async def get_by_id(self, principal_id: str) -> Principal | None:
        pass

    @abstractmethod
    async def save(self, principal: Principal) -> Principal:
        """
        Persist lockout and login state of an existing principal.

        Returns:
            The stored principal with its new version

        Raises:
            ConcurrentModificationError: If the stored version moved on
        """
        pass

    @abstractmethod
    async def create(self, principal: Principal) -> Principal:
        """
        Insert a new principal.

        Raises:
            PrincipalExistsError: If the handle is already taken
        """
        pass
