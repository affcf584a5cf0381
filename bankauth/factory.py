"""
Auth system factory for loading and configuring concrete auth implementations.

Every pluggable component is named in configuration either by a bundled
short name (``memory``, ``sql``, ``bcrypt``...) or by an import path of the
form ``module.path:ClassName``. The factory builds the components, registers
them in a bevy container under their abstract base classes and wires them
into an ``AuthSystem`` that owns their lifecycle.
"""

import importlib
import logging
from pathlib import Path
from typing import Any, TypeVar

from bevy import Container, get_registry
from pydantic import BaseModel

from .config import AuthConfig, AuthConfigLoader
from .config.schema import (
    LockoutConfig,
    PropagationConfig,
    SessionConfig,
    StoreConfig,
    TokenConfig,
    VerifierConfig,
)
from .credential_store import CredentialStore
from .credential_vault import CredentialVault
from .exceptions import ConfigurationError
from .identity_propagation import IdentityPropagator
from .lockout_policy import LockoutPolicy
from .orchestrator import AuthOrchestrator
from .reaper import SessionReaper
from .session_manager import SessionRegistry
from .token_service import TokenService
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

BUNDLED_BACKENDS: dict[type, dict[str, str]] = {
    TokenService: {
        "jwt": "bankauth.bundled.tokens.jwt_token_service:JwtTokenService",
    },
    CredentialVault: {
        "bcrypt": "bankauth.bundled.vaults.bcrypt_vault:BcryptCredentialVault",
        "argon2": "bankauth.bundled.vaults.argon2_vault:Argon2CredentialVault",
    },
    LockoutPolicy: {
        "threshold": "bankauth.bundled.limiters.threshold_lockout:ThresholdLockoutPolicy",
    },
    SessionRegistry: {
        "memory": "bankauth.bundled.memory.session:MemorySessionRegistry",
        "sql": "bankauth.bundled.storage.sql_session:SqlSessionRegistry",
    },
    CredentialStore: {
        "memory": "bankauth.bundled.memory.credential:MemoryCredentialStore",
    },
    IdentityPropagator: {
        "http": "bankauth.bundled.propagation.http_propagator:HttpIdentityPropagator",
        "null": "bankauth.bundled.propagation.http_propagator:NullIdentityPropagator",
    },
}


class BackendLoader:
    """Loads backend classes from bundled names or module paths."""

    @staticmethod
    def load_class(module_path: str) -> type:
        """
        Load a class from a module path like 'module.path:ClassName'.

        Raises:
            ConfigurationError: If the module or class cannot be loaded
        """
        if ":" not in module_path:
            raise ConfigurationError(
                f"Invalid module path format: {module_path}. Expected 'module:class'"
            )

        module_name, class_name = module_path.rsplit(":", 1)
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigurationError(f"Could not import module '{module_name}': {e}") from e

        try:
            return getattr(module, class_name)
        except AttributeError as e:
            raise ConfigurationError(
                f"Class '{class_name}' not found in module '{module_name}'"
            ) from e

    def resolve(self, interface: type[T], backend: str) -> type[T]:
        """
        Resolve a backend spec to a class implementing ``interface``.

        Raises:
            ConfigurationError: Unknown name, bad import path or wrong type
        """
        if ":" in backend:
            backend_class = self.load_class(backend)
        else:
            bundled = BUNDLED_BACKENDS.get(interface, {})
            if backend not in bundled:
                raise ConfigurationError(
                    f"Unknown {interface.__name__} backend '{backend}'. "
                    f"Bundled backends: {', '.join(sorted(bundled)) or 'none'}"
                )
            backend_class = self.load_class(bundled[backend])

        if not isinstance(backend_class, type) or not issubclass(backend_class, interface):
            raise ConfigurationError(f"Class {backend_class} is not a {interface.__name__}")
        return backend_class


def _backend_options(section: BaseModel, exclude: set[str] | None = None) -> dict[str, Any]:
    """Flatten a config section into the plain dict a backend is built from."""
    data = section.model_dump(exclude={"backend", "options", *(exclude or set())})
    data = {key: value for key, value in data.items() if value is not None}
    data.update(getattr(section, "options", {}))
    return data


class AuthSystemFactory:
    """Factory for creating and configuring auth system components."""

    def __init__(self, container: Container | None = None, *, clock: Clock | None = None):
        """
        Initialize the auth factory.

        Args:
            container: DI container for registering services. If None, a new one
                is created from the global registry.
            clock: Time source shared by every time-aware component
        """
        self.container = container or get_registry().create_container()
        self.clock = clock or utc_now
        self._loader = BackendLoader()

    def create_token_service(self, config: TokenConfig) -> TokenService:
        service_class = self._loader.resolve(TokenService, config.backend)
        options = _backend_options(
            config, exclude={"access_token_ttl_seconds", "refresh_token_ttl_seconds"}
        )
        return service_class(options, clock=self.clock)

    def create_credential_vault(self, config: VerifierConfig) -> CredentialVault:
        vault_class = self._loader.resolve(CredentialVault, config.backend)
        return vault_class(_backend_options(config, exclude={"min_response_seconds"}))

    def create_lockout_policy(self, config: LockoutConfig) -> LockoutPolicy:
        policy_class = self._loader.resolve(LockoutPolicy, config.backend)
        return policy_class(_backend_options(config), clock=self.clock)

    def create_session_registry(
        self, config: SessionConfig, timeout_seconds: float | None = None
    ) -> SessionRegistry:
        registry_class = self._loader.resolve(SessionRegistry, config.backend)
        options = _backend_options(config)
        if timeout_seconds is not None:
            options.setdefault("timeout_seconds", timeout_seconds)
        return registry_class(options, clock=self.clock)

    def create_credential_store(self, config: StoreConfig) -> CredentialStore:
        store_class = self._loader.resolve(CredentialStore, config.backend)
        return store_class(
            _backend_options(config, exclude={"timeout_seconds", "max_write_attempts"})
        )

    def create_identity_propagator(self, config: PropagationConfig) -> IdentityPropagator:
        propagator_class = self._loader.resolve(IdentityPropagator, config.backend)
        return propagator_class(_backend_options(config))

    def configure_auth_system(
        self,
        config: AuthConfig,
        *,
        credential_store: CredentialStore | None = None,
        identity_propagator: IdentityPropagator | None = None,
    ) -> "AuthSystem":
        """
        Build every component and register it in the container.

        ``credential_store`` and ``identity_propagator`` may be passed in
        directly when the application already owns those collaborators.
        """
        token_service = self.create_token_service(config.tokens)
        vault = self.create_credential_vault(config.verifier)
        lockout_policy = self.create_lockout_policy(config.lockout)
        session_registry = self.create_session_registry(
            config.sessions, config.store.timeout_seconds
        )
        credential_store = credential_store or self.create_credential_store(config.store)
        identity_propagator = identity_propagator or self.create_identity_propagator(
            config.propagation
        )

        orchestrator = AuthOrchestrator(
            token_service=token_service,
            credential_vault=vault,
            lockout_policy=lockout_policy,
            session_registry=session_registry,
            credential_store=credential_store,
            identity_propagator=identity_propagator,
            config={
                "access_token_ttl_seconds": config.tokens.access_token_ttl_seconds,
                "refresh_token_ttl_seconds": config.tokens.refresh_token_ttl_seconds,
                "store_timeout_seconds": config.store.timeout_seconds,
                "propagation_timeout_seconds": config.propagation.timeout_seconds,
                "max_write_attempts": config.store.max_write_attempts,
                "min_response_seconds": config.verifier.min_response_seconds,
                "default_roles": config.default_roles,
            },
            clock=self.clock,
        )
        reaper = SessionReaper(
            session_registry, config.reaper.model_dump(), clock=self.clock
        )

        self.container.add(AuthConfig, config)
        self.container.add(TokenService, token_service)
        self.container.add(CredentialVault, vault)
        self.container.add(LockoutPolicy, lockout_policy)
        self.container.add(SessionRegistry, session_registry)
        self.container.add(CredentialStore, credential_store)
        self.container.add(IdentityPropagator, identity_propagator)
        self.container.add(AuthOrchestrator, orchestrator)
        self.container.add(SessionReaper, reaper)

        logger.info(
            f"Auth system configured: tokens={config.tokens.backend} "
            f"verifier={config.verifier.backend} sessions={config.sessions.backend} "
            f"store={config.store.backend} propagation={config.propagation.backend}"
        )
        return AuthSystem(self.container, reaper_enabled=config.reaper.enabled)


class AuthSystem:
    """
    A configured authentication system and its lifecycle.

    Usage:
        async with AuthSystem.from_yaml("bankauth.yaml") as auth:
            result = await auth.orchestrator.login(handle, secret)
    """

    def __init__(self, container: Container, *, reaper_enabled: bool = True):
        self.container = container
        self.reaper_enabled = reaper_enabled
        self._started = False

    @classmethod
    def from_config(
        cls, config: AuthConfig | dict[str, Any], *, clock: Clock | None = None, **kwargs
    ) -> "AuthSystem":
        """Build from an ``AuthConfig`` or a raw ``auth`` section."""
        if not isinstance(config, AuthConfig):
            config = AuthConfigLoader.load_from_dict(config)
        return AuthSystemFactory(clock=clock).configure_auth_system(config, **kwargs)

    @classmethod
    def from_yaml(
        cls, path: Path | str | None = None, *, clock: Clock | None = None, **kwargs
    ) -> "AuthSystem":
        config = AuthConfigLoader.load_auth_config(path)
        return AuthSystemFactory(clock=clock).configure_auth_system(config, **kwargs)

    def get(self, dependency: type[T]) -> T:
        return self.container.get(dependency)

    @property
    def orchestrator(self) -> AuthOrchestrator:
        return self.get(AuthOrchestrator)

    @property
    def reaper(self) -> SessionReaper:
        return self.get(SessionReaper)

    @property
    def session_registry(self) -> SessionRegistry:
        return self.get(SessionRegistry)

    async def start(self) -> None:
        """Prepare storage and start the reaper."""
        if self._started:
            return
        await self.session_registry.start()
        if self.reaper_enabled:
            await self.reaper.start()
        self._started = True
        logger.info("Auth system started")

    async def stop(self) -> None:
        """Stop the reaper, finish propagation and release resources."""
        if not self._started:
            return
        await self.reaper.stop()
        await self.orchestrator.drain()
        await self.get(IdentityPropagator).close()
        await self.session_registry.close()
        self._started = False
        logger.info("Auth system stopped")

    async def __aenter__(self) -> "AuthSystem":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
