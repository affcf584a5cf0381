"""
IdentityPropagator interface for the authentication system.

After a principal is registered, downstream services (the customer
service in a banking deployment) are told about it. The call is fire and
forget: its failure is logged and never affects registration.
"""

from abc import ABC, abstractmethod
from typing import Any


class IdentityPropagator(ABC):
    """Abstract base class for identity propagators."""

    def __init__(self, config: dict[str, Any]):
        self.config = config.copy()
        self._validate_config(config)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def notify_principal_created(
        self, principal_id: str, profile_fields: dict[str, Any]
    ) -> None:
        """
        Announce a new principal.

        Raises:
            PropagationFailedError: If the downstream call failed
        """
        pass

    async def close(self) -> None:
        """Release client resources. No-op by default."""
