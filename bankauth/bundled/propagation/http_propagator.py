"""Identity propagators: an HTTP notifier and a no-op."""

import logging
from typing import Any

import httpx

from bankauth.exceptions import ConfigurationError, PropagationFailedError
from bankauth.identity_propagation import IdentityPropagator

logger = logging.getLogger(__name__)


class HttpIdentityPropagator(IdentityPropagator):
    """
    POSTs new principals to a downstream service as JSON.

    The body is ``{"principal_id": ..., **profile_fields}``. Any transport
    error or non-2xx response is raised as ``PropagationFailedError``; the
    caller decides what to do with it (the orchestrator logs and moves on).

    Configuration:
        url: Endpoint to POST to (required)
        timeout_seconds: Per-request timeout (default: 5.0)
        headers: Extra request headers, e.g. a service credential
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        url = config.get("url")
        if not url:
            raise ConfigurationError("HTTP identity propagator requires 'url'")
        if not url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Propagation URL must be http(s), got '{url}'")
        if config.get("timeout_seconds", 5.0) <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

    def __init__(self, config: dict[str, Any], *, client: httpx.AsyncClient | None = None):
        super().__init__(config)
        self.url = config["url"]
        self.timeout = config.get("timeout_seconds", 5.0)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.timeout, headers=config.get("headers") or {}
        )

    async def notify_principal_created(
        self, principal_id: str, profile_fields: dict[str, Any]
    ) -> None:
        body = {**profile_fields, "principal_id": principal_id}
        try:
            response = await self.client.post(self.url, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise PropagationFailedError(
                f"Could not reach identity endpoint: {e.__class__.__name__}",
                {"principal_id": principal_id},
            ) from e

        if not response.is_success:
            raise PropagationFailedError(
                f"Identity endpoint answered {response.status_code}",
                {"principal_id": principal_id, "status_code": response.status_code},
            )

        logger.debug(f"Propagated principal {principal_id} to {self.url}")

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class NullIdentityPropagator(IdentityPropagator):
    """Propagator for deployments with no downstream identity consumer."""

    def _validate_config(self, config: dict[str, Any]) -> None:
        pass

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__(config or {})

    async def notify_principal_created(
        self, principal_id: str, profile_fields: dict[str, Any]
    ) -> None:
        logger.debug(f"Identity propagation disabled; skipping principal {principal_id}")
