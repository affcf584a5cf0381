"""
Bundled implementations of the authentication interfaces.

- JWT token service with key-ring verification
- bcrypt and argon2 credential vaults
- Threshold lockout policy
- Memory and SQLAlchemy session registries
- Memory credential store
- HTTP and no-op identity propagators

Every implementation can be selected by its short name in configuration.
"""

from .limiters.threshold_lockout import ThresholdLockoutPolicy
from .memory.credential import MemoryCredentialStore
from .memory.session import MemorySessionRegistry
from .propagation.http_propagator import HttpIdentityPropagator, NullIdentityPropagator
from .storage.sql_session import SqlSessionRegistry
from .tokens.jwt_token_service import JwtTokenService
from .vaults.argon2_vault import Argon2CredentialVault
from .vaults.bcrypt_vault import BcryptCredentialVault

__all__ = [
    "Argon2CredentialVault",
    "BcryptCredentialVault",
    "HttpIdentityPropagator",
    "JwtTokenService",
    "MemoryCredentialStore",
    "MemorySessionRegistry",
    "NullIdentityPropagator",
    "SqlSessionRegistry",
    "ThresholdLockoutPolicy",
]
