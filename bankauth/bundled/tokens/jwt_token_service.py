"""
JWT-based token service implementation.

Signs access and refresh tokens with one active key and verifies them
against a key ring, so keys can be rotated without invalidating tokens that
are still in flight.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from bankauth.exceptions import (
    AuthValidationError,
    ConfigurationError,
    TokenExpiredError,
    TokenMalformedError,
    TokenTypeMismatchError,
)
from bankauth.token_service import TokenService
from bankauth.types import TokenClaims, TokenType

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = [
    "HS256",
    "HS384",
    "HS512",
    "RS256",
    "RS384",
    "RS512",
    "ES256",
    "ES384",
    "ES512",
]
REQUIRED_CLAIMS = ["sub", "type", "iat", "exp", "jti"]
RESERVED_CLAIMS = {"sub", "type", "iat", "exp", "jti", "iss", "aud", "nbf"}
MIN_HMAC_KEY_BYTES = 32


class JwtTokenService(TokenService):
    """JWT-based token service implementation."""

    def _validate_config(self, config: dict[str, Any]) -> None:
        """Validate configuration for JWT token service."""
        secret_key = config.get("secret_key")
        if not secret_key:
            raise ConfigurationError(
                "JWT token service requires 'secret_key' in configuration"
            )

        algorithm = config.get("algorithm", "HS256")
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported JWT algorithm: {algorithm}")

        if algorithm.startswith("HS"):
            keys = [secret_key, *(config.get("verification_keys") or {}).values()]
            for key in keys:
                if len(key.encode("utf-8")) < MIN_HMAC_KEY_BYTES:
                    raise ConfigurationError(
                        f"HMAC keys must be at least {MIN_HMAC_KEY_BYTES} bytes"
                    )

        key_id = config.get("key_id")
        ring = config.get("verification_keys") or {}
        if ring and key_id is None:
            raise ConfigurationError("'key_id' is required when a key ring is configured")

    def __init__(self, config: dict[str, Any], **kwargs):
        """
        Initialize JWT token service.

        Args:
            config: Configuration dictionary containing:
                - secret_key: Signing key for the active key (required)
                - public_key: Verification key for asymmetric algorithms
                - algorithm: JWT algorithm (default: HS256)
                - key_id: ``kid`` header written on issued tokens (optional)
                - verification_keys: Mapping of kid to key for retired keys
                - issuer: Token issuer (optional)
                - audience: Token audience (optional)
                - leeway_seconds: Allowed clock skew on expiry (default: 0)
        """
        super().__init__(config, **kwargs)

        self.secret_key = config["secret_key"]
        self.algorithm = config.get("algorithm", "HS256")
        self.key_id = config.get("key_id")
        self.issuer = config.get("issuer")
        self.audience = config.get("audience")
        self.leeway = timedelta(seconds=config.get("leeway_seconds", 0))

        active_verify_key = config.get("public_key") or self.secret_key
        self.verification_keys: dict[str, str] = dict(
            config.get("verification_keys") or {}
        )
        if self.key_id is not None:
            self.verification_keys[self.key_id] = active_verify_key
        self._unkeyed_candidates = list(
            dict.fromkeys([active_verify_key, *self.verification_keys.values()])
        )

    def issue(
        self,
        subject: str,
        token_type: TokenType,
        ttl_seconds: int,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """
        Issue a signed JWT.

        Reserved claims in ``extra`` are ignored.
        """
        if not subject:
            raise AuthValidationError("Token subject cannot be empty")
        if ttl_seconds <= 0:
            raise AuthValidationError("Token lifetime must be positive")

        issued_at = self.clock()
        expires_at = issued_at + timedelta(seconds=ttl_seconds)

        claims = {k: v for k, v in (extra or {}).items() if k not in RESERVED_CLAIMS}
        claims.update(
            {
                "sub": subject,
                "type": token_type.value,
                "jti": str(uuid.uuid4()),
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
            }
        )
        if self.issuer:
            claims["iss"] = self.issuer
        if self.audience:
            claims["aud"] = self.audience

        headers = {"kid": self.key_id} if self.key_id is not None else None
        try:
            return jwt.encode(
                claims, self.secret_key, algorithm=self.algorithm, headers=headers
            )
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise ConfigurationError(f"Failed to sign token: {e}") from e

    def verify(self, token: str, expected_type: TokenType | None = None) -> TokenClaims:
        """
        Verify a JWT.

        The signature, structure and type tag are checked first; only a token
        that passes all three is judged for expiry.
        """
        if not token or not isinstance(token, str):
            raise TokenMalformedError("Token is empty")

        payload = self._decode(token)

        try:
            token_type = TokenType(payload["type"])
        except ValueError as e:
            raise TokenMalformedError(f"Unknown token type: {payload['type']!r}") from e

        if expected_type is not None and token_type is not expected_type:
            raise TokenTypeMismatchError(
                f"Expected {expected_type.value} token, got {token_type.value}"
            )

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], UTC)
            expires_at = datetime.fromtimestamp(payload["exp"], UTC)
        except (TypeError, ValueError, OverflowError) as e:
            raise TokenMalformedError("Token timestamps are invalid") from e

        if self.clock() >= expires_at + self.leeway:
            raise TokenExpiredError()

        return TokenClaims(
            subject=payload["sub"],
            token_type=token_type,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=payload["jti"],
            extra={k: v for k, v in payload.items() if k not in RESERVED_CLAIMS},
        )

    def _decode(self, token: str) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise TokenMalformedError(f"Invalid token: {e}") from e

        kid = header.get("kid")
        if kid is not None:
            if kid not in self.verification_keys:
                raise TokenMalformedError("Token signed with an unknown key")
            candidates = [self.verification_keys[kid]]
        else:
            candidates = self._unkeyed_candidates

        signature_error: Exception | None = None
        for key in candidates:
            try:
                return jwt.decode(
                    token,
                    key,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                    audience=self.audience,
                    options={
                        "verify_exp": False,
                        "verify_iat": False,
                        "require": REQUIRED_CLAIMS,
                    },
                )
            except jwt.InvalidSignatureError as e:
                signature_error = e
            except jwt.InvalidTokenError as e:
                raise TokenMalformedError(f"Invalid token: {e}") from e

        logger.debug("Token signature did not match any key in the ring")
        raise TokenMalformedError("Token signature is invalid") from signature_error
