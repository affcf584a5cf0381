"""Threshold-based lockout policy."""

import logging
import math
from datetime import datetime, timedelta
from typing import Any

from bankauth.exceptions import ConfigurationError
from bankauth.lockout_policy import LockoutPolicy
from bankauth.types import LockoutDecision, Principal, PrincipalStatus

logger = logging.getLogger(__name__)


class ThresholdLockoutPolicy(LockoutPolicy):
    """
    Locks a principal for a fixed window after N consecutive failures.

    The window starts at the failure that reaches the threshold. Once it
    lapses the principal reads as unlocked, and the next failure starts a
    fresh count. Only an active principal moves to LOCKED; any other status
    is kept as is and the window is recorded alongside it.

    Configuration:
        max_failures: Consecutive failures that trigger a lock (default: 5)
        lock_duration_seconds: Length of the lock window (default: 600)
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        if config.get("max_failures", 5) < 1:
            raise ConfigurationError("max_failures must be at least 1")
        if config.get("lock_duration_seconds", 600) <= 0:
            raise ConfigurationError("lock_duration_seconds must be positive")

    def __init__(self, config: dict[str, Any], **kwargs):
        super().__init__(config, **kwargs)
        self.max_failures = config.get("max_failures", 5)
        self.lock_duration = timedelta(seconds=config.get("lock_duration_seconds", 600))

    def check(self, principal: Principal) -> LockoutDecision:
        remaining = principal.lock_remaining(self.clock())
        if remaining:
            return LockoutDecision(still_allowed=False, remaining_lock_seconds=remaining)
        return LockoutDecision(still_allowed=True)

    def record_failure(self, principal: Principal) -> LockoutDecision:
        now = self.clock()
        remaining = self._window_remaining(principal, now)
        if remaining:
            return LockoutDecision(still_allowed=False, remaining_lock_seconds=remaining)

        if principal.locked_until is not None:
            self._clear_lapsed_lock(principal)
            principal.failed_attempts = 0

        principal.failed_attempts += 1

        if principal.failed_attempts >= self.max_failures:
            principal.locked_until = now + self.lock_duration
            if principal.status is PrincipalStatus.ACTIVE:
                principal.status = PrincipalStatus.LOCKED
            logger.warning(
                f"Principal {principal.id} locked after {principal.failed_attempts} "
                f"failed attempts until {principal.locked_until.isoformat()}"
            )
            return LockoutDecision(
                still_allowed=False,
                remaining_lock_seconds=int(self.lock_duration.total_seconds()),
            )

        return LockoutDecision(still_allowed=True)

    def record_success(self, principal: Principal) -> None:
        principal.failed_attempts = 0
        if principal.locked_until is not None:
            self._clear_lapsed_lock(principal)
        principal.last_login = self.clock()

    @staticmethod
    def _window_remaining(principal: Principal, now: datetime) -> int:
        if principal.locked_until is None:
            return 0
        return max(0, math.ceil((principal.locked_until - now).total_seconds()))

    @staticmethod
    def _clear_lapsed_lock(principal: Principal) -> None:
        principal.locked_until = None
        if principal.status is PrincipalStatus.LOCKED:
            principal.status = PrincipalStatus.ACTIVE
