"""
Pytest configuration and shared fixtures for auth tests.
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from bankauth.bundled.limiters.threshold_lockout import ThresholdLockoutPolicy
from bankauth.bundled.memory.credential import MemoryCredentialStore
from bankauth.bundled.memory.session import MemorySessionRegistry
from bankauth.bundled.tokens.jwt_token_service import JwtTokenService
from bankauth.bundled.vaults.bcrypt_vault import BcryptCredentialVault
from bankauth.identity_propagation import IdentityPropagator
from bankauth.orchestrator import AuthOrchestrator
from bankauth.types import Principal, PrincipalStatus

SECRET_KEY = "test-secret-key-that-is-long-enough-for-hs256"
PASSWORD = "correct-horse-battery"
EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Manually advanced clock shared by every component under test."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Jump to ``seconds`` after the epoch."""
        self.now = EPOCH + timedelta(seconds=seconds)
        return self.now


class RecordingPropagator(IdentityPropagator):
    """Propagator that remembers every call, optionally failing."""

    def __init__(self, error: Exception | None = None):
        super().__init__({})
        self.calls = []
        self.error = error

    def _validate_config(self, config):
        pass

    async def notify_principal_created(self, principal_id, profile_fields):
        self.calls.append((principal_id, profile_fields))
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def token_service(clock):
    return JwtTokenService({"secret_key": SECRET_KEY}, clock=clock)


@pytest.fixture
def vault():
    return BcryptCredentialVault({"rounds": 4, "min_secret_length": 8})


@pytest.fixture
def lockout_policy(clock):
    return ThresholdLockoutPolicy(
        {"max_failures": 5, "lock_duration_seconds": 600}, clock=clock
    )


@pytest.fixture
def session_registry(clock):
    return MemorySessionRegistry({"single_active_session": True}, clock=clock)


@pytest.fixture
def credential_store():
    return MemoryCredentialStore()


@pytest.fixture
def propagator():
    return RecordingPropagator()


@pytest.fixture
def orchestrator(
    token_service, vault, lockout_policy, session_registry, credential_store, propagator, clock
):
    return AuthOrchestrator(
        token_service=token_service,
        credential_vault=vault,
        lockout_policy=lockout_policy,
        session_registry=session_registry,
        credential_store=credential_store,
        identity_propagator=propagator,
        config={"access_token_ttl_seconds": 900, "refresh_token_ttl_seconds": 3600},
        clock=clock,
    )


async def _add_principal(
    store,
    vault,
    handle: str = "alice",
    secret: str = PASSWORD,
    principal_id: str | None = None,
    status: PrincipalStatus = PrincipalStatus.ACTIVE,
    roles: frozenset[str] = frozenset({"customer"}),
) -> Principal:
    """Create a principal directly in the credential store."""
    principal = Principal(
        id=principal_id or f"{handle}-id",
        handle=handle,
        secret_hash=await vault.hash_secret(secret),
        status=status,
        roles=roles,
        created_at=EPOCH,
    )
    return await store.create(principal)


@pytest.fixture
def make_principal(credential_store, vault):
    """Async factory that seeds principals into the shared credential store."""

    async def make(**kwargs) -> Principal:
        return await _add_principal(credential_store, vault, **kwargs)

    return make


@pytest_asyncio.fixture
async def alice(make_principal):
    return await make_principal()
