"""
Bcrypt-based Credential Vault implementation.

Security features:
- bcrypt hashing with a configurable work factor
- Automatic salt generation for each secret
- Malformed stored hashes verify as a mismatch
"""

import logging
from functools import cached_property
from typing import Any

import bcrypt

from bankauth.credential_vault import CredentialVault
from bankauth.exceptions import AuthValidationError, ConfigurationError

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of a secret
BCRYPT_MAX_BYTES = 72


class BcryptCredentialVault(CredentialVault):
    """
    Credential vault using bcrypt for secret hashing.

    Configuration:
        rounds: bcrypt work factor (4-31, higher = slower)
        min_secret_length: Minimum secret length accepted at registration
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        rounds = config.get("rounds", 12)
        if rounds < 4 or rounds > 31:
            raise ConfigurationError("bcrypt rounds must be between 4 and 31")

        if config.get("min_secret_length", 8) < 1:
            raise ConfigurationError("Minimum secret length must be positive")

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.rounds = config.get("rounds", 12)

        logger.info(
            f"Bcrypt credential vault initialized with {self.rounds} rounds "
            f"(min secret length: {self.min_secret_length})"
        )

    def validate_secret(self, secret: str) -> None:
        super().validate_secret(secret)
        if len(secret.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise AuthValidationError(
                f"Secret must be at most {BCRYPT_MAX_BYTES} bytes long"
            )

    def _hash(self, secret: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")

    def _check(self, secret: str, stored_hash: str) -> bool:
        secret_bytes = secret.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(secret_bytes, stored_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored bcrypt hash is malformed")
            return False

    @cached_property
    def dummy_hash(self) -> str:
        return self._hash("dummy-secret-for-timing")
