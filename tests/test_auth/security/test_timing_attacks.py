"""
Timing attack security tests.

These tests verify that a caller cannot tell an unknown handle from a wrong
secret by measuring how long a login takes.
"""

import time

import pytest

from bankauth.exceptions import InvalidCredentialsError
from bankauth.orchestrator import AuthOrchestrator

MINIMUM = 0.1


class CountingVault:
    """Wraps a vault and counts hash comparisons."""

    def __init__(self, vault):
        self._vault = vault
        self.verifications = 0
        self.burns = 0

    def __getattr__(self, name):
        return getattr(self._vault, name)

    async def verify(self, secret, stored_hash):
        self.verifications += 1
        return await self._vault.verify(secret, stored_hash)

    async def burn_verification(self, secret):
        self.burns += 1
        await self._vault.burn_verification(secret)


@pytest.fixture
def counting_vault(vault):
    return CountingVault(vault)


@pytest.fixture
def slow_orchestrator(
    token_service, counting_vault, lockout_policy, session_registry, credential_store, clock
):
    return AuthOrchestrator(
        token_service=token_service,
        credential_vault=counting_vault,
        lockout_policy=lockout_policy,
        session_registry=session_registry,
        credential_store=credential_store,
        config={
            "access_token_ttl_seconds": 900,
            "refresh_token_ttl_seconds": 3600,
            "min_response_seconds": MINIMUM,
        },
        clock=clock,
    )


class TestLoginTiming:
    """Unknown handles must cost the same as wrong secrets."""

    @pytest.mark.asyncio
    async def test_unknown_handle_spends_a_verification(
        self, slow_orchestrator, counting_vault, alice
    ):
        with pytest.raises(InvalidCredentialsError):
            await slow_orchestrator.login("mallory", "wrong-password")
        assert counting_vault.burns == 1

        with pytest.raises(InvalidCredentialsError):
            await slow_orchestrator.login("alice", "wrong-password")
        assert counting_vault.verifications == 1

    @pytest.mark.asyncio
    async def test_failed_logins_respect_minimum_duration(self, slow_orchestrator, alice):
        for handle in ("mallory", "alice"):
            start = time.perf_counter()
            with pytest.raises(InvalidCredentialsError):
                await slow_orchestrator.login(handle, "wrong-password")
            elapsed = time.perf_counter() - start

            assert elapsed >= MINIMUM * 0.95, f"{handle}: {elapsed}s"

    @pytest.mark.asyncio
    async def test_successful_login_respects_minimum_duration(self, slow_orchestrator, alice):
        start = time.perf_counter()
        await slow_orchestrator.login("alice", "correct-horse-battery")
        assert time.perf_counter() - start >= MINIMUM * 0.95

    @pytest.mark.asyncio
    async def test_dummy_hash_is_a_real_hash(self, vault):
        assert not await vault.verify("anything-at-all", vault.dummy_hash)
        assert vault.dummy_hash.startswith("$2")
