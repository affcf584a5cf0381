"""Exception classes for the authentication system.

Every error carries a stable ``code`` that callers can branch on. Errors that
would reveal revocation or expiry state share the ``UNAUTHORIZED`` public
code so that an outside observer cannot tell them apart.
"""

UNAUTHORIZED = "UNAUTHORIZED"


class AuthError(Exception):
    """Base exception for all authentication-related errors."""

    code = "AUTH_ERROR"
    public_code: str | None = None
    retryable = False

    def __init__(self, message: str | None = None, details: dict | None = None):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.details = details or {}

    default_message = "Authentication error"

    @property
    def public(self) -> str:
        """Code safe to return to an untrusted caller."""
        return self.public_code or self.code


class AuthValidationError(AuthError):
    """Raised when auth data validation fails."""

    code = "VALIDATION_ERROR"
    default_message = "Invalid auth data"


class ConfigurationError(AuthError):
    """Raised when auth configuration is invalid."""

    code = "CONFIGURATION_ERROR"
    default_message = "Invalid auth configuration"


class AuthenticationError(AuthError):
    """Raised when authentication fails."""

    code = "AUTHENTICATION_FAILED"
    default_message = "Authentication failed"


class InvalidCredentialsError(AuthenticationError):
    """Unknown handle or wrong secret. Both are reported identically."""

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AccountLockedError(AuthenticationError):
    """Raised while a principal is inside a lockout window."""

    code = "ACCOUNT_LOCKED"
    default_message = "Account is temporarily locked"

    def __init__(
        self,
        remaining_seconds: int,
        message: str | None = None,
        details: dict | None = None,
    ):
        self.remaining_seconds = remaining_seconds
        details = {"remaining_seconds": remaining_seconds, **(details or {})}
        super().__init__(message, details)


class AccountNotActiveError(AuthenticationError):
    """Raised when the principal's status is not active (not time-bound)."""

    code = "ACCOUNT_NOT_ACTIVE"
    default_message = "Account is not active"


class UnauthorizedError(AuthenticationError):
    """Base for token and session failures that look the same from outside."""

    code = UNAUTHORIZED
    public_code = UNAUTHORIZED
    default_message = "Unauthorized"


class TokenMalformedError(UnauthorizedError):
    """Bad signature, bad structure or missing claims."""

    code = "TOKEN_MALFORMED"
    default_message = "Token is malformed"


class TokenTypeMismatchError(TokenMalformedError):
    """An access token where a refresh token is required, or vice versa."""

    code = "TOKEN_MALFORMED"
    default_message = "Token type mismatch"


class TokenExpiredError(UnauthorizedError):
    """The token's expiry claim has passed."""

    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class SessionNotFoundError(UnauthorizedError):
    """No session is bound to the presented token."""

    code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class SessionInactiveError(UnauthorizedError):
    """The session was revoked, rotated away or has expired."""

    code = "SESSION_INACTIVE"
    default_message = "Session is not active"


class StoreUnavailableError(AuthError):
    """A store call timed out or the backend could not be reached.

    The subsystem never retries these itself; callers retry with backoff.
    """

    code = "STORE_UNAVAILABLE"
    default_message = "Backing store unavailable"
    retryable = True


class ConcurrentModificationError(AuthError):
    """A save lost an optimistic-concurrency race."""

    code = "CONCURRENT_MODIFICATION"
    default_message = "Record was modified concurrently"


class PrincipalExistsError(AuthError):
    """Raised when registering a handle that is already taken."""

    code = "PRINCIPAL_EXISTS"
    default_message = "Handle is already registered"


class PropagationFailedError(AuthError):
    """The identity propagation call failed. Logged, never surfaced."""

    code = "PROPAGATION_FAILED"
    default_message = "Identity propagation failed"
