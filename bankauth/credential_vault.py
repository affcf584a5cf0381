"""
CredentialVault interface for the authentication system.

This module defines the abstract base class for secret hashing and
verification.

Security considerations:
- Secrets must only be stored as slow salted hashes
- Verification must be constant time
- A corrupt stored hash must read as a failed match, never as an error
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from .exceptions import AuthValidationError


class CredentialVault(ABC):
    """
    Abstract base class for credential vaults.

    Implementations provide the synchronous primitives ``_hash`` and
    ``_check``; the public coroutines push them to a worker thread so
    that hashing never blocks the event loop.
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize the credential vault.

        Args:
            config: Vault configuration
        """
        self.config = config.copy()
        self._validate_config(config)
        self.min_secret_length = config.get("min_secret_length", 8)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        """
        Validate vault configuration.

        Raises:
            ConfigurationError: If configuration is invalid or insecure
        """
        pass

    @abstractmethod
    def _hash(self, secret: str) -> str:
        """Hash a secret (blocking)."""
        pass

    @abstractmethod
    def _check(self, secret: str, stored_hash: str) -> bool:
        """Check a secret against a stored hash (blocking, never raises)."""
        pass

    @property
    @abstractmethod
    def dummy_hash(self) -> str:
        """A valid hash of a throwaway secret, used for unknown handles."""
        pass

    def validate_secret(self, secret: str) -> None:
        """
        Enforce the secret policy before hashing.

        Raises:
            AuthValidationError: If the secret is empty or too short
        """
        if not secret:
            raise AuthValidationError("Secret cannot be empty")
        if len(secret) < self.min_secret_length:
            raise AuthValidationError(
                f"Secret must be at least {self.min_secret_length} characters long"
            )

    async def hash_secret(self, secret: str) -> str:
        """Validate and hash a secret for storage."""
        self.validate_secret(secret)
        return await asyncio.to_thread(self._hash, secret)

    async def verify(self, submitted_secret: str, stored_hash: str) -> bool:
        """Check a submitted secret against a stored hash."""
        if not submitted_secret or not stored_hash:
            return False
        return await asyncio.to_thread(self._check, submitted_secret, stored_hash)

    async def burn_verification(self, submitted_secret: str) -> None:
        """Spend the same work as a real verification and discard the result."""
        await asyncio.to_thread(self._check, submitted_secret or "x", self.dummy_hash)
