"""
Authentication flows.

The orchestrator is the only entry point for inbound calls. It composes
the token service, credential vault, lockout policy, session registry and
credential store into the login, authorize, refresh and logout flows, plus
registration and a few read-only queries.

Security considerations:
- Unknown handles and wrong secrets are indistinguishable to the caller
- Account status is only revealed after a correct secret
- Credential and lockout checks run before any existing session is revoked
- Expired, revoked and unknown sessions all surface as UNAUTHORIZED
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from typing import Any, TypeVar

from .credential_store import CredentialStore
from .credential_vault import CredentialVault
from .exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthValidationError,
    ConcurrentModificationError,
    ConfigurationError,
    InvalidCredentialsError,
    PrincipalExistsError,
    PropagationFailedError,
    SessionInactiveError,
    SessionNotFoundError,
    TokenExpiredError,
    TokenMalformedError,
)
from .identity_propagation import IdentityPropagator
from .lockout_policy import LockoutPolicy
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
    TokenPair,
    TokenType,
)
from .utils import (
    Clock,
    KeyedLock,
    call_with_deadline,
    mask_token,
    timing_protection,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthOrchestrator:
    """
    Runs the authentication and session flows.

    Configuration:
        access_token_ttl_seconds: Access token lifetime (default: 86400)
        refresh_token_ttl_seconds: Refresh token lifetime (default: 604800)
        store_timeout_seconds: Deadline for every store call (default: 5.0)
        propagation_timeout_seconds: Deadline for identity propagation (default: 5.0)
        max_write_attempts: Re-reads allowed after a version conflict (default: 3)
        min_response_seconds: Floor on login duration, 0 disables (default: 0)
        default_roles: Roles given to registrations that name none
    """

    def __init__(
        self,
        *,
        token_service: TokenService,
        credential_vault: CredentialVault,
        lockout_policy: LockoutPolicy,
        session_registry: SessionRegistry,
        credential_store: CredentialStore,
        identity_propagator: IdentityPropagator | None = None,
        config: dict[str, Any] | None = None,
        clock: Clock | None = None,
    ):
        config = config or {}
        self._validate_config(config)

        self.token_service = token_service
        self.credential_vault = credential_vault
        self.lockout_policy = lockout_policy
        self.session_registry = session_registry
        self.credential_store = credential_store
        self.identity_propagator = identity_propagator
        self.clock = clock or utc_now

        self.access_ttl = config.get("access_token_ttl_seconds", 86400)
        self.refresh_ttl = config.get("refresh_token_ttl_seconds", 604800)
        self.store_timeout = config.get("store_timeout_seconds", 5.0)
        self.propagation_timeout = config.get("propagation_timeout_seconds", 5.0)
        self.max_write_attempts = config.get("max_write_attempts", 3)
        self.min_response_seconds = config.get("min_response_seconds", 0)
        self.default_roles = tuple(config.get("default_roles", ("customer",)))

        self._principal_locks = KeyedLock()
        self._background_tasks: set[asyncio.Task] = set()

    @staticmethod
    def _validate_config(config: dict[str, Any]) -> None:
        for key in ("access_token_ttl_seconds", "refresh_token_ttl_seconds"):
            if config.get(key, 1) <= 0:
                raise ConfigurationError(f"{key} must be positive")
        if config.get("access_token_ttl_seconds", 86400) > config.get(
            "refresh_token_ttl_seconds", 604800
        ):
            raise ConfigurationError("Access tokens cannot outlive refresh tokens")
        if config.get("max_write_attempts", 3) < 1:
            raise ConfigurationError("max_write_attempts must be at least 1")
        if config.get("min_response_seconds", 0) < 0:
            raise ConfigurationError("min_response_seconds cannot be negative")

    async def login(
        self,
        handle: str,
        secret: str,
        metadata: ClientMetadata | None = None,
        remember_me: bool = False,
    ) -> AuthResult:
        """
        Authenticate a principal and open a session.

        Unless ``remember_me`` is set, the single-session policy of the
        registry revokes the principal's other sessions.

        Raises:
            InvalidCredentialsError: Unknown handle or wrong secret
            AccountLockedError: Inside a lockout window
            AccountNotActiveError: Correct secret but the account is not active
            StoreUnavailableError: A backing store missed its deadline
        """
        async with timing_protection(self.min_response_seconds):
            principal = await self._store(
                self.credential_store.get_by_handle(handle), "credential lookup"
            )
            if principal is None:
                await self.credential_vault.burn_verification(secret)
                logger.warning("Login failed: unknown handle")
                raise InvalidCredentialsError()

            async with self._principal_locks.hold(principal.id, self.store_timeout):
                principal = await self._check_credentials(principal.id, secret)
                result = await self._open_session(
                    principal, metadata, single_session=False if remember_me else None
                )

        logger.info(f"Principal {principal.id} logged in (session {result.session_id})")
        return result

    async def _check_credentials(self, principal_id: str, secret: str) -> Principal:
        """
        Verify the secret and persist the lockout outcome.

        Runs under the principal's lock. A version conflict from another
        process re-reads the principal and applies the attempt again.
        """
        verified_hash: str | None = None
        matched = False

        for _ in range(self.max_write_attempts):
            principal = await self._store(
                self.credential_store.get_by_id(principal_id), "credential lookup"
            )
            if principal is None:
                raise InvalidCredentialsError()

            decision = self.lockout_policy.check(principal)
            if not decision.still_allowed:
                logger.warning(
                    f"Login refused for locked principal {principal.id} "
                    f"({decision.remaining_lock_seconds}s remaining)"
                )
                raise AccountLockedError(decision.remaining_lock_seconds)

            if principal.secret_hash != verified_hash:
                matched = await self.credential_vault.verify(secret, principal.secret_hash)
                verified_hash = principal.secret_hash

            if not matched:
                decision = self.lockout_policy.record_failure(principal)
                try:
                    await self._store(self.credential_store.save(principal), "credential save")
                except ConcurrentModificationError:
                    continue
                logger.warning(
                    f"Login failed for principal {principal.id} "
                    f"(attempt {principal.failed_attempts})"
                )
                raise InvalidCredentialsError()

            if principal.effective_status(self.clock()) is not PrincipalStatus.ACTIVE:
                logger.warning(
                    f"Login refused for principal {principal.id}: "
                    f"status {principal.status.value}"
                )
                raise AccountNotActiveError()

            self.lockout_policy.record_success(principal)
            try:
                return await self._store(
                    self.credential_store.save(principal), "credential save"
                )
            except ConcurrentModificationError:
                continue

        raise ConcurrentModificationError(
            f"Gave up recording login attempt for principal {principal_id} "
            f"after {self.max_write_attempts} conflicts"
        )

    async def authorize(self, access_token: str) -> AuthorizedContext:
        """
        Resolve an access token to the caller's identity.

        The session record must be active and inside its access window even
        when the token's own expiry has not passed.
        """
        claims = self.token_service.verify(access_token, TokenType.ACCESS)

        session = await self._store(
            self.session_registry.find_by_access_token(access_token), "session lookup"
        )
        if session is None:
            raise SessionNotFoundError()

        now = self.clock()
        if not session.is_active:
            raise SessionInactiveError()
        if session.is_access_expired(now):
            raise TokenExpiredError()
        if session.principal_id != claims.subject:
            raise TokenMalformedError("Token subject does not match its session")

        await self._store(self.session_registry.touch(session.id, now), "session touch")

        return AuthorizedContext(
            principal_id=session.principal_id,
            session_id=session.id,
            roles=session.roles,
            claims=claims,
        )

    async def refresh(
        self, refresh_token: str, metadata: ClientMetadata | None = None
    ) -> AuthResult:
        """
        Exchange a refresh token for a new token pair.

        The old pair stops working in the same step the new one is
        installed. Of two concurrent refreshes with the same token, exactly
        one succeeds.
        """
        claims = self.token_service.verify(refresh_token, TokenType.REFRESH)

        session = await self._store(
            self.session_registry.find_by_refresh_token(refresh_token), "session lookup"
        )
        if session is None:
            raise SessionNotFoundError()

        now = self.clock()
        if not session.is_active:
            raise SessionInactiveError()
        if session.is_refresh_expired(now):
            raise TokenExpiredError()
        if session.principal_id != claims.subject:
            raise TokenMalformedError("Token subject does not match its session")

        principal = await self._store(
            self.credential_store.get_by_id(session.principal_id), "credential lookup"
        )
        if principal is None:
            raise AccountNotActiveError()
        decision = self.lockout_policy.check(principal)
        if not decision.still_allowed:
            raise AccountLockedError(decision.remaining_lock_seconds)
        if principal.effective_status(now) is not PrincipalStatus.ACTIVE:
            raise AccountNotActiveError()

        access_token, new_refresh_token = self._issue_pair(
            principal.id, principal.handle, session.roles
        )
        rotated = await self._store(
            self.session_registry.rotate(
                session.id,
                access_token,
                new_refresh_token,
                self.access_ttl,
                self.refresh_ttl,
                expected_refresh_token=refresh_token,
            ),
            "session rotate",
        )
        if metadata is not None and metadata != session.metadata:
            logger.info(
                f"Session {session.id} refreshed from a different client "
                f"({metadata.ip_address})"
            )

        logger.info(f"Session {session.id} refreshed for principal {principal.id}")
        return self._result(rotated, principal)

    async def logout(self, access_token: str) -> None:
        """
        Deactivate the session bound to an access token.

        Succeeds silently for malformed, unknown or already revoked tokens.
        An expired token still ends its session.
        """
        try:
            self.token_service.verify(access_token, TokenType.ACCESS)
        except TokenExpiredError:
            pass
        except TokenMalformedError:
            logger.debug(f"Logout ignored unusable token {mask_token(access_token)}")
            return

        session = await self._store(
            self.session_registry.find_by_access_token(access_token), "session lookup"
        )
        if session is None:
            return

        if await self._store(self.session_registry.deactivate(session.id), "session deactivate"):
            logger.info(f"Principal {session.principal_id} logged out (session {session.id})")

    async def logout_all(self, principal_id: str) -> int:
        """Deactivate every session of a principal; returns how many were active."""
        count = await self._store(
            self.session_registry.deactivate_all_for_principal(principal_id),
            "session deactivate all",
        )
        logger.info(f"Logged out principal {principal_id} from {count} session(s)")
        return count

    async def register(
        self,
        handle: str,
        secret: str,
        profile: dict[str, Any] | None = None,
        roles: tuple[str, ...] = (),
        metadata: ClientMetadata | None = None,
    ) -> AuthResult:
        """
        Create a principal and open its first session.

        Downstream services are told about the principal in the background;
        a failure there is logged and does not affect the result.

        Raises:
            AuthValidationError: Empty handle or a secret that breaks policy
            PrincipalExistsError: Handle already registered
        """
        if not handle or not handle.strip():
            raise AuthValidationError("Handle cannot be empty")
        self.credential_vault.validate_secret(secret)

        existing = await self._store(
            self.credential_store.get_by_handle(handle), "credential lookup"
        )
        if existing is not None:
            raise PrincipalExistsError()

        principal = Principal(
            id=str(uuid.uuid4()),
            handle=handle,
            secret_hash=await self.credential_vault.hash_secret(secret),
            roles=frozenset(roles or self.default_roles),
            profile=dict(profile or {}),
            created_at=self.clock(),
        )
        principal = await self._store(
            self.credential_store.create(principal), "credential create"
        )
        logger.info(f"Registered principal {principal.id}")

        self._schedule_propagation(principal)

        async with self._principal_locks.hold(principal.id, self.store_timeout):
            return await self._open_session(principal, metadata, single_session=None)

    async def lockout_status(self, handle: str) -> LockoutDecision:
        """Lock state for a handle. Unknown handles read as allowed."""
        principal = await self._store(
            self.credential_store.get_by_handle(handle), "credential lookup"
        )
        if principal is None:
            return LockoutDecision(still_allowed=True)
        return self.lockout_policy.check(principal)

    async def list_sessions(self, principal_id: str) -> list[Session]:
        """Active sessions of a principal, most recently used first."""
        return await self._store(
            self.session_registry.list_for_principal(principal_id, active_only=True),
            "session list",
        )

    async def drain(self) -> None:
        """Wait for outstanding identity propagation calls."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _open_session(
        self,
        principal: Principal,
        metadata: ClientMetadata | None,
        single_session: bool | None,
    ) -> AuthResult:
        roles = tuple(sorted(principal.roles))
        access_token, refresh_token = self._issue_pair(principal.id, principal.handle, roles)
        session = await self._store(
            self.session_registry.create(
                principal.id,
                access_token,
                refresh_token,
                self.access_ttl,
                self.refresh_ttl,
                metadata=metadata,
                roles=roles,
                single_session=single_session,
            ),
            "session create",
        )
        return self._result(session, principal)

    def _issue_pair(
        self, principal_id: str, handle: str, roles: tuple[str, ...]
    ) -> tuple[str, str]:
        extra = {"roles": list(roles), "handle": handle}
        access_token = self.token_service.issue(
            principal_id, TokenType.ACCESS, self.access_ttl, extra
        )
        refresh_token = self.token_service.issue(
            principal_id, TokenType.REFRESH, self.refresh_ttl, extra
        )
        return access_token, refresh_token

    def _result(self, session: Session, principal: Principal) -> AuthResult:
        return AuthResult(
            session_id=session.id,
            tokens=TokenPair(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                expires_in=self.access_ttl,
                refresh_expires_in=self.refresh_ttl,
            ),
            principal=principal.to_public(),
        )

    async def _store(self, call: Awaitable[T], operation: str) -> T:
        return await call_with_deadline(call, self.store_timeout, operation)

    def _schedule_propagation(self, principal: Principal) -> None:
        if self.identity_propagator is None:
            return
        fields = {"handle": principal.handle, **principal.profile}
        task = asyncio.create_task(self._propagate(principal.id, fields))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _propagate(self, principal_id: str, fields: dict[str, Any]) -> None:
        try:
            async with asyncio.timeout(self.propagation_timeout):
                await self.identity_propagator.notify_principal_created(principal_id, fields)
        except TimeoutError:
            logger.warning(
                f"PropagationFailed: principal {principal_id} not propagated "
                f"within {self.propagation_timeout}s"
            )
        except PropagationFailedError as e:
            logger.warning(f"PropagationFailed: principal {principal_id}: {e.message}")
        except Exception:
            logger.error(
                f"PropagationFailed: unexpected error propagating principal {principal_id}",
                exc_info=True,
            )
