"""Configuration loading and processing."""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .schema import AuthConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_VARIABLE = "BANKAUTH_CONFIG"
DEFAULT_CONFIG_FILE = "bankauth.yaml"


class AuthConfigLoader:
    """Loads and validates authentication configuration."""

    # ${NAME}, ${NAME:-default} or ${NAME:?message}
    ENV_REFERENCE = re.compile(
        r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<operator>:-|:\?)(?P<argument>[^}]*))?\}"
    )

    @classmethod
    def load_auth_config(cls, config_path: Path | str | None = None) -> AuthConfig:
        """Load authentication configuration from the ``auth`` section of a YAML file.

        Without a path, ``$BANKAUTH_CONFIG`` or ``./bankauth.yaml`` is used.

        Raises:
            ConfigurationError: If configuration is invalid or cannot be loaded
        """
        config_path = Path(config_path) if config_path else cls.get_default_config_path()
        try:
            raw_config = yaml.safe_load(config_path.read_text())
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file {config_path} is empty")

        auth_config = raw_config.get("auth") if isinstance(raw_config, dict) else None
        if not auth_config:
            raise ConfigurationError(f"No 'auth' section found in {config_path}")

        config = cls.load_from_dict(auth_config)
        logger.info(f"Loaded auth configuration from {config_path}")
        return config

    @classmethod
    def load_from_dict(cls, auth_config: dict[str, Any]) -> AuthConfig:
        """Validate an already-parsed ``auth`` section."""
        processed_config = cls._substitute_env_vars(auth_config, "auth")

        try:
            return AuthConfig(**processed_config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid auth configuration: {e}") from e

    @classmethod
    def _substitute_env_vars(cls, config: Any, path: str) -> Any:
        """Expand environment references in every string below ``path``.

        ``path`` is the dotted location of ``config`` in the file and is only
        used to point at the offending entry when a variable is missing.
        """
        if isinstance(config, dict):
            return {
                key: cls._substitute_env_vars(value, f"{path}.{key}")
                for key, value in config.items()
            }
        if isinstance(config, list):
            return [
                cls._substitute_env_vars(item, f"{path}[{index}]")
                for index, item in enumerate(config)
            ]
        if isinstance(config, str):
            return cls._expand(config, path)
        return config

    @classmethod
    def _expand(cls, value: str, path: str) -> str:
        def resolve(match: re.Match) -> str:
            name, operator, argument = match.group("name", "operator", "argument")
            env_value = os.environ.get(name)
            if env_value is not None:
                return env_value
            if operator == ":-":
                return argument

            message = f"Environment variable '{name}' used by {path} is not set"
            if operator == ":?" and argument:
                message = f"{message}: {argument}"
            raise ConfigurationError(message, details={"path": path, "variable": name})

        return cls.ENV_REFERENCE.sub(resolve, value)

    @classmethod
    def get_default_config_path(cls) -> Path:
        """``$BANKAUTH_CONFIG`` when set, else ``bankauth.yaml`` in the current directory."""
        configured = os.environ.get(CONFIG_PATH_VARIABLE)
        if configured:
            return Path(configured)
        return Path.cwd() / DEFAULT_CONFIG_FILE
