"""Authentication configuration: schema and YAML loading."""

from .loader import AuthConfigLoader
from .schema import (
    AuthConfig,
    LockoutConfig,
    PropagationConfig,
    ReaperConfig,
    SessionConfig,
    StoreConfig,
    TokenConfig,
    VerifierConfig,
)

__all__ = [
    "AuthConfig",
    "AuthConfigLoader",
    "LockoutConfig",
    "PropagationConfig",
    "ReaperConfig",
    "SessionConfig",
    "StoreConfig",
    "TokenConfig",
    "VerifierConfig",
]
