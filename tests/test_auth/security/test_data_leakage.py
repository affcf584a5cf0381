"""
Data leakage security tests.

These tests verify that secrets, hashes and tokens do not escape through
logs, error messages, string representations or public views, and that
token and session failures are indistinguishable from outside.
"""

import logging

import pytest

from bankauth.exceptions import (
    InvalidCredentialsError,
    SessionInactiveError,
    SessionNotFoundError,
    TokenExpiredError,
    TokenMalformedError,
)

PASSWORD = "correct-horse-battery"


class TestLogs:
    @pytest.mark.asyncio
    async def test_full_flow_logs_no_secrets(self, orchestrator, caplog):
        caplog.set_level(logging.DEBUG, logger="bankauth")

        registered = await orchestrator.register("alice", PASSWORD, profile={"tier": "gold"})
        login = await orchestrator.login("alice", PASSWORD, remember_me=True)
        with pytest.raises(InvalidCredentialsError):
            await orchestrator.login("alice", "wrong-password")
        await orchestrator.authorize(login.tokens.access_token)
        refreshed = await orchestrator.refresh(login.tokens.refresh_token)
        await orchestrator.logout(refreshed.tokens.access_token)
        await orchestrator.drain()

        text = caplog.text
        assert caplog.records
        assert PASSWORD not in text
        assert "wrong-password" not in text
        for result in (registered, login, refreshed):
            assert result.tokens.access_token not in text
            assert result.tokens.refresh_token not in text

    @pytest.mark.asyncio
    async def test_unknown_handle_not_logged(self, orchestrator, caplog):
        with pytest.raises(InvalidCredentialsError):
            await orchestrator.login("mallory@example.com", PASSWORD)

        assert "mallory@example.com" not in caplog.text


class TestRepresentations:
    @pytest.mark.asyncio
    async def test_records_hide_secrets(self, orchestrator, alice, session_registry):
        result = await orchestrator.login("alice", PASSWORD)
        session = await session_registry.get(result.session_id)

        assert alice.secret_hash not in repr(alice)
        assert result.tokens.access_token not in repr(session)
        assert result.tokens.refresh_token not in repr(session)
        assert result.tokens.access_token not in repr(result)

    @pytest.mark.asyncio
    async def test_public_principal_view(self, orchestrator, alice):
        result = await orchestrator.login("alice", PASSWORD)

        assert set(result.principal) == {"id", "handle", "status", "roles", "last_login"}
        assert alice.secret_hash not in str(result.principal)


class TestUniformFailures:
    @pytest.mark.asyncio
    async def test_token_failures_share_public_code(self, orchestrator, alice, clock):
        revoked = await orchestrator.login("alice", PASSWORD)
        current = await orchestrator.login("alice", PASSWORD)
        rotated = await orchestrator.refresh(current.tokens.refresh_token)

        errors = []
        for token in ("garbage", revoked.tokens.access_token, current.tokens.access_token):
            with pytest.raises(
                (TokenMalformedError, SessionInactiveError, SessionNotFoundError)
            ) as exc_info:
                await orchestrator.authorize(token)
            errors.append(exc_info.value)

        clock.advance(901)
        with pytest.raises(TokenExpiredError) as exc_info:
            await orchestrator.authorize(rotated.tokens.access_token)
        errors.append(exc_info.value)

        assert {error.public for error in errors} == {"UNAUTHORIZED"}
        assert len({type(error) for error in errors}) == 4

    @pytest.mark.asyncio
    async def test_error_messages_do_not_echo_input(self, orchestrator, alice):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await orchestrator.login("alice", "wrong-password")

        assert "wrong-password" not in str(exc_info.value)
        assert "alice" not in str(exc_info.value)
        assert exc_info.value.details == {}
