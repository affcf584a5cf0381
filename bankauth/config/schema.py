"""Configuration schema models using Pydantic."""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

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
MIN_HMAC_KEY_BYTES = 32

BACKEND_PATTERN = re.compile(
    r"^([a-zA-Z_][a-zA-Z0-9_-]*|[a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z_][a-zA-Z0-9_]*)*:[a-zA-Z_][a-zA-Z0-9_]*)$"
)


class BackendConfig(BaseModel):
    """Common shape of a pluggable component section."""

    backend: str = Field(..., description="Bundled backend name or import path")
    options: dict[str, Any] = Field(
        default_factory=dict, description="Extra options passed to the backend"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend_spec(cls, v):
        """Validate backend specification format."""
        if not v:
            raise ValueError("Backend specification cannot be empty")

        # Simple name (bundled): alphanumeric, underscores, hyphens
        # Import path (external): module.path:ClassName
        if not BACKEND_PATTERN.match(v):
            raise ValueError(
                "Backend must be a simple name (e.g., 'memory') or import path "
                "(e.g., 'module.path:ClassName')"
            )
        return v


class TokenConfig(BackendConfig):
    """Token signing and lifetimes."""

    backend: str = Field("jwt", description="Token service backend")
    secret_key: str = Field(..., description="Signing key of the active key")
    public_key: str | None = Field(
        None, description="Verification key for asymmetric algorithms"
    )
    algorithm: str = Field("HS256", description="JWT signing algorithm")
    key_id: str | None = Field(None, description="kid of the active key")
    verification_keys: dict[str, str] = Field(
        default_factory=dict, description="Key ring used for verification, by kid"
    )
    issuer: str | None = Field(None, description="iss claim")
    audience: str | None = Field(None, description="aud claim")
    leeway_seconds: int = Field(0, ge=0, description="Clock skew allowed on expiry")
    access_token_ttl_seconds: int = Field(86400, gt=0, description="Access token lifetime")
    refresh_token_ttl_seconds: int = Field(
        604800, gt=0, description="Refresh token lifetime"
    )

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v):
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    @model_validator(mode="after")
    def validate_keys(self):
        """Check key strength and that the active key belongs to the ring."""
        if self.algorithm.startswith("HS"):
            keys = [self.secret_key, *self.verification_keys.values()]
            if any(len(key.encode("utf-8")) < MIN_HMAC_KEY_BYTES for key in keys):
                raise ValueError(f"HMAC keys must be at least {MIN_HMAC_KEY_BYTES} bytes")

        if self.verification_keys:
            if self.key_id is None:
                raise ValueError("key_id is required when verification_keys is set")
            active_key = self.public_key or self.secret_key
            if self.verification_keys.get(self.key_id, active_key) != active_key:
                raise ValueError(f"Key ring entry '{self.key_id}' does not match the active key")

        if self.access_token_ttl_seconds > self.refresh_token_ttl_seconds:
            raise ValueError("Access tokens cannot outlive refresh tokens")
        return self


class LockoutConfig(BackendConfig):
    """Failed-login lockout policy."""

    backend: str = Field("threshold", description="Lockout policy backend")
    max_failures: int = Field(5, ge=1, description="Failures that trigger a lock")
    lock_duration_seconds: int = Field(600, gt=0, description="Length of a lock")


class SessionConfig(BackendConfig):
    """Session registry."""

    backend: str = Field("memory", description="Session registry backend")
    single_active_session: bool = Field(
        True, description="Revoke other sessions on login unless remembered"
    )
    url: str | None = Field(None, description="Database URL for the sql backend")
    create_schema: bool = Field(True, description="Create tables on startup")
    echo: bool = Field(False, description="Log SQL statements")
    session_id_length: int = Field(32, ge=16, description="Random bytes in session ids")

    @model_validator(mode="after")
    def validate_sql_url(self):
        if self.backend == "sql" and not self.url:
            raise ValueError("The sql session backend requires 'url'")
        return self


class VerifierConfig(BackendConfig):
    """Credential hashing."""

    backend: str = Field("bcrypt", description="Credential vault backend")
    rounds: int = Field(12, ge=4, le=31, description="bcrypt work factor")
    time_cost: int = Field(3, ge=1, description="argon2 iterations")
    memory_cost: int = Field(65536, ge=8, description="argon2 memory in KiB")
    parallelism: int = Field(1, ge=1, description="argon2 lanes")
    min_secret_length: int = Field(8, ge=1, description="Minimum secret length")
    min_response_seconds: float = Field(
        0.0, ge=0, description="Floor on login duration, 0 disables"
    )


class ReaperConfig(BaseModel):
    """Background session reclamation."""

    enabled: bool = Field(True, description="Run the reaper with the system")
    interval_seconds: float = Field(3600, gt=0, description="Time between sweeps")
    run_on_start: bool = Field(True, description="Sweep once at startup")


class StoreConfig(BackendConfig):
    """Credential store and store-call deadlines."""

    backend: str = Field("memory", description="Credential store backend")
    timeout_seconds: float = Field(5.0, gt=0, description="Deadline for store calls")
    max_write_attempts: int = Field(
        3, ge=1, description="Retries after an optimistic-concurrency conflict"
    )


class PropagationConfig(BackendConfig):
    """Identity propagation after registration."""

    backend: str = Field("null", description="Identity propagator backend")
    url: str | None = Field(None, description="Endpoint for the http backend")
    timeout_seconds: float = Field(5.0, gt=0, description="Deadline for the call")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra headers")

    @model_validator(mode="after")
    def validate_http_url(self):
        if self.backend == "http" and not self.url:
            raise ValueError("The http propagation backend requires 'url'")
        return self


class AuthConfig(BaseModel):
    """Main authentication configuration."""

    tokens: TokenConfig = Field(..., description="Token settings")
    lockout: LockoutConfig = Field(default_factory=LockoutConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    verifier: VerifierConfig = Field(default_factory=VerifierConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    default_roles: list[str] = Field(
        default_factory=lambda: ["customer"],
        description="Roles given to registrations that name none",
    )
