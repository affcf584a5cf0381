"""
Tests for YAML configuration loading.
"""

import pytest

from bankauth.config import AuthConfigLoader
from bankauth.exceptions import ConfigurationError

SECRET = "test-secret-key-that-is-long-enough-for-hs256"

CONFIG_YAML = """
auth:
  tokens:
    secret_key: ${BANKAUTH_SECRET}
    issuer: ${BANKAUTH_ISSUER:-bank-auth}
    access_token_ttl_seconds: 900
    refresh_token_ttl_seconds: 3600
  lockout:
    max_failures: 3
  sessions:
    backend: sql
    url: "sqlite+aiosqlite:///:memory:"
  reaper:
    interval_seconds: 60
"""


class TestAuthConfigLoader:
    def test_load_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BANKAUTH_SECRET", SECRET)
        monkeypatch.delenv("BANKAUTH_ISSUER", raising=False)
        path = tmp_path / "bankauth.yaml"
        path.write_text(CONFIG_YAML)

        config = AuthConfigLoader.load_auth_config(path)

        assert config.tokens.secret_key == SECRET
        assert config.tokens.issuer == "bank-auth"
        assert config.tokens.access_token_ttl_seconds == 900
        assert config.lockout.max_failures == 3
        assert config.sessions.backend == "sql"
        assert config.reaper.interval_seconds == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            AuthConfigLoader.load_auth_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bankauth.yaml"
        path.write_text("auth: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            AuthConfigLoader.load_auth_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "bankauth.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError, match="empty"):
            AuthConfigLoader.load_auth_config(path)

    def test_missing_auth_section(self, tmp_path):
        path = tmp_path / "bankauth.yaml"
        path.write_text("server:\n  port: 8000\n")

        with pytest.raises(ConfigurationError, match="No 'auth' section"):
            AuthConfigLoader.load_auth_config(path)

    def test_validation_error_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid auth configuration"):
            AuthConfigLoader.load_from_dict({"tokens": {"secret_key": "short"}})


class TestEnvSubstitution:
    def test_plain_variable(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        assert AuthConfigLoader._expand("${DB_HOST}:5432", "auth.sessions.url") == "db.internal:5432"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR", raising=False)
        assert AuthConfigLoader._expand("${UNSET_VAR:-fallback}", "auth.tokens.issuer") == "fallback"

    def test_set_variable_wins_over_default(self, monkeypatch):
        monkeypatch.setenv("ISSUER", "")
        assert AuthConfigLoader._expand("${ISSUER:-fallback}", "auth.tokens.issuer") == ""

    def test_required_with_message(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR", raising=False)
        with pytest.raises(ConfigurationError, match="set the signing key"):
            AuthConfigLoader._expand("${UNSET_VAR:?set the signing key}", "auth.tokens.secret_key")

    def test_missing_variable_names_config_path(self, monkeypatch):
        monkeypatch.delenv("BANKAUTH_SECRET", raising=False)
        with pytest.raises(ConfigurationError, match="auth.tokens.secret_key") as exc_info:
            AuthConfigLoader.load_from_dict({"tokens": {"secret_key": "${BANKAUTH_SECRET}"}})

        assert exc_info.value.details == {
            "path": "auth.tokens.secret_key",
            "variable": "BANKAUTH_SECRET",
        }

    def test_list_entries_are_indexed(self, monkeypatch):
        monkeypatch.delenv("UNSET_ROLE", raising=False)
        with pytest.raises(ConfigurationError, match=r"auth\.default_roles\[1\]"):
            AuthConfigLoader._substitute_env_vars(
                {"default_roles": ["customer", "${UNSET_ROLE}"]}, "auth"
            )

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("ROLE", "teller")
        result = AuthConfigLoader._substitute_env_vars(
            {"default_roles": ["${ROLE}", "customer"], "reaper": {"enabled": True}}, "auth"
        )
        assert result == {"default_roles": ["teller", "customer"], "reaper": {"enabled": True}}


class TestDefaultConfigPath:
    def test_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BANKAUTH_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        assert AuthConfigLoader.get_default_config_path() == tmp_path / "bankauth.yaml"

    def test_environment_override(self, tmp_path, monkeypatch):
        path = tmp_path / "prod.yaml"
        monkeypatch.setenv("BANKAUTH_CONFIG", str(path))
        assert AuthConfigLoader.get_default_config_path() == path

    def test_load_without_path(self, tmp_path, monkeypatch):
        path = tmp_path / "prod.yaml"
        path.write_text(f"auth:\n  tokens:\n    secret_key: {SECRET}\n")
        monkeypatch.setenv("BANKAUTH_CONFIG", str(path))

        assert AuthConfigLoader.load_auth_config().tokens.secret_key == SECRET
