"""
Bank Authentication & Session Lifecycle

Credential verification, failed-login lockout, signed token issuance and
verification, session registration and revocation, refresh-token rotation
and background reclamation of dead sessions for a multi-service banking
backend.

Security Notice:
- Secrets are only ever stored as slow salted hashes (bcrypt or argon2)
- Unknown handles and wrong secrets are indistinguishable to callers
- Expired, revoked and unknown sessions all surface as UNAUTHORIZED
- Tokens are never written to logs
"""

from .credential_store import CredentialStore
from .credential_vault import CredentialVault
from .exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthError,
    AuthValidationError,
    ConcurrentModificationError,
    ConfigurationError,
    InvalidCredentialsError,
    PrincipalExistsError,
    PropagationFailedError,
    SessionInactiveError,
    SessionNotFoundError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenMalformedError,
    TokenTypeMismatchError,
)
from .factory import AuthSystem, AuthSystemFactory, BackendLoader
from .identity_propagation import IdentityPropagator
from .lockout_policy import LockoutPolicy
from .orchestrator import AuthOrchestrator
from .reaper import SessionReaper
from .session_manager import SessionRegistry
from .token_service import TokenService
from .types import (
    AuthorizedContext,
    AuthResult,
    ClientMetadata,
    LockoutDecision,
    Principal,
    PrincipalStatus,
    Session,
    TokenClaims,
    TokenPair,
    TokenType,
)
from .utils import KeyedLock, call_with_deadline, mask_token, secure_compare, timing_protection

__all__ = [
    # Data types
    "AuthResult",
    "AuthorizedContext",
    "ClientMetadata",
    "LockoutDecision",
    "Principal",
    "PrincipalStatus",
    "Session",
    "TokenClaims",
    "TokenPair",
    "TokenType",
    # Interfaces
    "CredentialStore",
    "CredentialVault",
    "IdentityPropagator",
    "LockoutPolicy",
    "SessionRegistry",
    "TokenService",
    # Flows and lifecycle
    "AuthOrchestrator",
    "AuthSystem",
    "AuthSystemFactory",
    "BackendLoader",
    "SessionReaper",
    # Exceptions
    "AccountLockedError",
    "AccountNotActiveError",
    "AuthError",
    "AuthValidationError",
    "ConcurrentModificationError",
    "ConfigurationError",
    "InvalidCredentialsError",
    "PrincipalExistsError",
    "PropagationFailedError",
    "SessionInactiveError",
    "SessionNotFoundError",
    "StoreUnavailableError",
    "TokenExpiredError",
    "TokenMalformedError",
    "TokenTypeMismatchError",
    # Utilities
    "KeyedLock",
    "call_with_deadline",
    "mask_token",
    "secure_compare",
    "timing_protection",
]
