"""
LockoutPolicy interface for the authentication system.

A lockout policy decides, from a principal's failure history, whether a
login attempt may proceed. It mutates the principal it is given and leaves
persistence to the caller.
"""

from abc import ABC, abstractmethod
from typing import Any

from .types import LockoutDecision, Principal
from .utils import Clock, utc_now


class LockoutPolicy(ABC):
    """
    Abstract base class for lockout policies.

    Implementations must be deterministic given the injected clock so that
    lock windows can be tested without sleeping.
    """

    def __init__(self, config: dict[str, Any], *, clock: Clock | None = None):
        """
        Initialize the lockout policy.

        Args:
            config: Policy configuration
            clock: Source of the current time, defaults to UTC wall clock
        """
        self.config = config.copy()
        self.clock = clock or utc_now
        self._validate_config(config)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        """
        Validate policy configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        pass

    @abstractmethod
    def check(self, principal: Principal) -> LockoutDecision:
        """Report whether the principal may attempt to log in right now."""
        pass

    @abstractmethod
    def record_failure(self, principal: Principal) -> LockoutDecision:
        """
        Count a failed attempt against the principal.

        Returns:
            Decision after the failure, locked if the threshold was reached
        """
        pass

    @abstractmethod
    def record_success(self, principal: Principal) -> None:
        """Clear failure state and stamp the login time."""
        pass
