"""Tests for the auth error hierarchy."""

import pytest

from bankauth.exceptions import (
    UNAUTHORIZED,
    AccountLockedError,
    AccountNotActiveError,
    AuthenticationError,
    AuthError,
    InvalidCredentialsError,
    SessionInactiveError,
    SessionNotFoundError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenMalformedError,
    TokenTypeMismatchError,
    UnauthorizedError,
)


class TestAuthError:
    def test_default_message(self):
        error = InvalidCredentialsError()
        assert error.message == "Invalid credentials"
        assert str(error) == "Invalid credentials"
        assert error.details == {}

    def test_custom_message_and_details(self):
        error = AuthError("Something broke", {"field": "handle"})
        assert error.message == "Something broke"
        assert error.details == {"field": "handle"}

    def test_account_locked_carries_remaining(self):
        error = AccountLockedError(42)
        assert error.remaining_seconds == 42
        assert error.details == {"remaining_seconds": 42}
        assert error.public == "ACCOUNT_LOCKED"

    def test_only_store_errors_are_retryable(self):
        assert StoreUnavailableError().retryable
        assert not InvalidCredentialsError().retryable
        assert not TokenExpiredError().retryable


class TestPublicCodes:
    @pytest.mark.parametrize(
        "error_class",
        [
            TokenMalformedError,
            TokenTypeMismatchError,
            TokenExpiredError,
            SessionNotFoundError,
            SessionInactiveError,
        ],
    )
    def test_token_and_session_errors_collapse(self, error_class):
        error = error_class()
        assert isinstance(error, UnauthorizedError)
        assert isinstance(error, AuthenticationError)
        assert error.public == UNAUTHORIZED
        assert error.code != "AUTH_ERROR"

    def test_internal_codes_stay_distinct(self):
        assert TokenExpiredError.code == "TOKEN_EXPIRED"
        assert SessionInactiveError.code == "SESSION_INACTIVE"
        assert TokenTypeMismatchError.code == TokenMalformedError.code

    @pytest.mark.parametrize(
        "error,expected",
        [
            (InvalidCredentialsError(), "INVALID_CREDENTIALS"),
            (AccountNotActiveError(), "ACCOUNT_NOT_ACTIVE"),
            (StoreUnavailableError(), "STORE_UNAVAILABLE"),
        ],
    )
    def test_credential_errors_keep_their_code(self, error, expected):
        assert error.public == expected
