"""Argon2-based Credential Vault implementation."""

import logging
from functools import cached_property
from typing import Any

import argon2

from bankauth.credential_vault import CredentialVault
from bankauth.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Argon2CredentialVault(CredentialVault):
    """Credential vault using argon2id with configurable cost parameters."""

    def _validate_config(self, config: dict[str, Any]) -> None:
        if config.get("time_cost", 3) < 1:
            raise ConfigurationError("argon2 time_cost must be at least 1")
        if config.get("memory_cost", 65536) < 8:
            raise ConfigurationError("argon2 memory_cost must be at least 8 KiB")
        if config.get("parallelism", 1) < 1:
            raise ConfigurationError("argon2 parallelism must be at least 1")
        if config.get("min_secret_length", 8) < 1:
            raise ConfigurationError("Minimum secret length must be positive")

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.hasher = argon2.PasswordHasher(
            time_cost=config.get("time_cost", 3),
            memory_cost=config.get("memory_cost", 65536),
            parallelism=config.get("parallelism", 1),
            hash_len=config.get("hash_len", 32),
            salt_len=config.get("salt_len", 16),
        )

    def _hash(self, secret: str) -> str:
        return self.hasher.hash(secret)

    def _check(self, secret: str, stored_hash: str) -> bool:
        try:
            return self.hasher.verify(stored_hash, secret)
        except argon2.exceptions.VerifyMismatchError:
            return False
        except (argon2.exceptions.InvalidHashError, argon2.exceptions.VerificationError):
            logger.warning("Stored argon2 hash is malformed")
            return False

    def needs_rehash(self, stored_hash: str) -> bool:
        """True when the hash was made with weaker parameters than configured."""
        try:
            return self.hasher.check_needs_rehash(stored_hash)
        except argon2.exceptions.InvalidHashError:
            return True

    @cached_property
    def dummy_hash(self) -> str:
        return self._hash("dummy-secret-for-timing")
