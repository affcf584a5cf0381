"""
SessionRegistry interface for the authentication system.

This module defines the abstract base class for persisting sessions and
enforcing their lifecycle: the single-active-session policy, atomic token
rotation and reclamation of dead sessions.

Security considerations:
- A deactivated session must never authorize again
- Rotation must retire the old token pair in the same step that installs the new one
- Two refreshes racing on the same token must not both succeed
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from .types import ClientMetadata, Session
from .utils import Clock, utc_now


class SessionRegistry(ABC):
    """
    Abstract base class for session registries.

    Every session returned by a registry is a copy: mutating it has no
    effect on the stored record.
    """

    def __init__(self, config: dict[str, Any], *, clock: Clock | None = None):
        """
        Initialize the session registry.

        Args:
            config: Registry configuration
            clock: Source of the current time, defaults to UTC wall clock
        """
        self.config = config.copy()
        self.clock = clock or utc_now
        self._validate_config(config)
        self.single_active_session = config.get("single_active_session", True)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        """
        Validate registry configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        pass

    async def start(self) -> None:
        """Prepare backend resources. No-op by default."""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    @abstractmethod
    async def create(
        self,
        principal_id: str,
        access_token: str,
        refresh_token: str,
        ttl_seconds: int,
        refresh_ttl_seconds: int,
        metadata: ClientMetadata | None = None,
        roles: tuple[str, ...] = (),
        single_session: bool | None = None,
    ) -> Session:
        """
        Register a new active session.

        When the single-session policy applies (``single_session`` or, if
        None, the registry default), every other active session of the
        principal is deactivated in the same step.
        """
        pass

    @abstractmethod
    async def find_by_access_token(self, access_token: str) -> Session | None:
        pass

    @abstractmethod
    async def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def deactivate(self, session_id: str) -> bool:
        """
        Deactivate one session.

        Returns:
            True if an active session was deactivated, False otherwise
        """
        pass

    @abstractmethod
    async def deactivate_all_for_principal(self, principal_id: str) -> int:
        """
        Deactivate every active session of a principal.

        Returns:
            Number of sessions that were active and are now inactive
        """
        pass

    @abstractmethod
    async def rotate(
        self,
        session_id: str,
        new_access_token: str,
        new_refresh_token: str,
        ttl_seconds: int,
        refresh_ttl_seconds: int,
        expected_refresh_token: str | None = None,
    ) -> Session:
        """
        Atomically replace the session's token pair.

        Args:
            expected_refresh_token: When given, the swap only happens if the
                session still holds this refresh token

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionInactiveError: If the session is inactive or the
                expected refresh token is no longer current
        """
        pass

    @abstractmethod
    async def touch(self, session_id: str, now: datetime | None = None) -> None:
        """Record use of the session."""
        pass

    @abstractmethod
    async def list_for_principal(
        self, principal_id: str, active_only: bool = True
    ) -> list[Session]:
        """Sessions of a principal, most recently used first."""
        pass

    @abstractmethod
    async def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Delete sessions that are inactive or whose refresh window has passed.

        Returns:
            Number of sessions removed
        """
        pass
