"""Core data types for the authentication system."""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .exceptions import AuthValidationError


class PrincipalStatus(Enum):
    """Account states of an authenticable identity."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    LOCKED = "locked"
    SUSPENDED = "suspended"
    PENDING = "pending"


class TokenType(Enum):
    """Type tag embedded in every signed token."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class Principal:
    """An authenticable identity as held by the credential store."""

    id: str
    handle: str
    secret_hash: str = field(repr=False)
    status: PrincipalStatus = PrincipalStatus.ACTIVE
    failed_attempts: int = 0
    locked_until: datetime | None = None
    last_login: datetime | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    profile: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: int = 0

    def __post_init__(self):
        """Validate principal after creation."""
        if not self.id or not self.id.strip():
            raise AuthValidationError("Principal ID cannot be empty")
        if not self.handle or not self.handle.strip():
            raise AuthValidationError("Principal handle cannot be empty")
        if self.failed_attempts < 0:
            raise AuthValidationError("Failed attempt counter cannot be negative")
        self.roles = frozenset(self.roles)

    def lock_remaining(self, now: datetime) -> int:
        """Seconds left in the lockout window, 0 when not locked.

        A lapsed ``locked_until`` reads as unlocked even if the status was
        never written back.
        """
        if self.status is not PrincipalStatus.LOCKED or self.locked_until is None:
            return 0
        remaining = (self.locked_until - now).total_seconds()
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    def is_locked(self, now: datetime) -> bool:
        return self.lock_remaining(now) > 0

    def effective_status(self, now: datetime) -> PrincipalStatus:
        """Status as observed at ``now``, applying lazy unlock."""
        if (
            self.status is PrincipalStatus.LOCKED
            and self.locked_until is not None
            and not self.is_locked(now)
        ):
            return PrincipalStatus.ACTIVE
        return self.status

    def to_public(self) -> dict[str, Any]:
        """Minimal view safe to hand back to callers."""
        return {
            "id": self.id,
            "handle": self.handle,
            "status": self.status.value,
            "roles": sorted(self.roles),
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }


@dataclass(frozen=True)
class ClientMetadata:
    """Client details recorded with a session."""

    ip_address: str | None = None
    user_agent: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"ip_address": self.ip_address, "user_agent": self.user_agent}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ClientMetadata":
        data = data or {}
        return cls(ip_address=data.get("ip_address"), user_agent=data.get("user_agent"))


@dataclass
class Session:
    """One issued token pair bound to one principal."""

    id: str
    principal_id: str
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    access_expires_at: datetime
    refresh_expires_at: datetime
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_active: bool = True
    roles: tuple[str, ...] = ()
    metadata: ClientMetadata = field(default_factory=ClientMetadata)
    last_accessed: datetime | None = None

    def __post_init__(self):
        """Validate session after creation."""
        if not self.id or not self.id.strip():
            raise AuthValidationError("Session ID cannot be empty")
        if not self.principal_id or not self.principal_id.strip():
            raise AuthValidationError("Principal ID cannot be empty")
        if not self.access_token or not self.refresh_token:
            raise AuthValidationError("Session requires both tokens")
        self.roles = tuple(self.roles)

    def is_access_expired(self, now: datetime) -> bool:
        return now >= self.access_expires_at

    def is_refresh_expired(self, now: datetime) -> bool:
        return now >= self.refresh_expires_at

    def can_authorize(self, now: datetime) -> bool:
        """Active and the access window is still open."""
        return self.is_active and not self.is_access_expired(now)

    def can_refresh(self, now: datetime) -> bool:
        return self.is_active and not self.is_refresh_expired(now)

    def is_reclaimable(self, now: datetime) -> bool:
        """Eligible for removal by the reaper."""
        return not self.is_active or self.refresh_expires_at < now


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a signed token."""

    subject: str
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    token_id: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh tokens handed to the client."""

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_in: int
    refresh_expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class LockoutDecision:
    """Outcome of a lockout evaluation."""

    still_allowed: bool
    remaining_lock_seconds: int = 0


@dataclass(frozen=True)
class AuthResult:
    """Successful login, registration or refresh."""

    session_id: str
    tokens: TokenPair
    principal: dict[str, Any]


@dataclass(frozen=True)
class AuthorizedContext:
    """What an authorized request is allowed to know about its caller."""

    principal_id: str
    session_id: str
    roles: tuple[str, ...]
    claims: TokenClaims
