"""
TokenService interface for the authentication system.

This module defines the abstract base class for the token codec: signing
and verifying access and refresh tokens.

Security considerations:
- Tokens must be signed and tamper-evident
- Access and refresh tokens must never be interchangeable
- Expiry is judged against the injected clock, never the host clock directly
"""

from abc import ABC, abstractmethod
from typing import Any

from .types import TokenClaims, TokenType
from .utils import Clock, utc_now


class TokenService(ABC):
    """
    Abstract base class for token services.

    A token service is stateless: issuing and verifying have no side
    effects, and revocation is the session registry's job.

    Security requirements:
    - Every issued token MUST be unique (carries a token id)
    - Signature and structure MUST be checked before expiry
    - A token of the wrong type MUST be rejected as malformed
    """

    def __init__(self, config: dict[str, Any], *, clock: Clock | None = None):
        """
        Initialize the token service.

        Args:
            config: Token service configuration
            clock: Source of the current time, defaults to UTC wall clock
        """
        self.config = config.copy()
        self.clock = clock or utc_now
        self._validate_config(config)

    @abstractmethod
    def _validate_config(self, config: dict[str, Any]) -> None:
        """
        Validate token service configuration.

        Raises:
            ConfigurationError: If configuration is invalid or insecure
        """
        pass

    @abstractmethod
    def issue(
        self,
        subject: str,
        token_type: TokenType,
        ttl_seconds: int,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """
        Issue a signed token.

        Args:
            subject: Principal id the token is bound to
            token_type: Access or refresh
            ttl_seconds: Lifetime from now
            extra: Additional claims (roles, handle)

        Returns:
            Encoded token string
        """
        pass

    @abstractmethod
    def verify(self, token: str, expected_type: TokenType | None = None) -> TokenClaims:
        """
        Verify a token and return its claims.

        Args:
            token: Encoded token string
            expected_type: Required type tag, or None to accept either

        Returns:
            Verified claims

        Raises:
            TokenMalformedError: Bad signature, structure, claims or type tag
            TokenExpiredError: Valid token whose expiry has passed
        """
        pass
