"""Memory-based credential store implementation."""

import logging
from dataclasses import replace
from typing import Any

from bankauth.credential_store import CredentialStore
from bankauth.exceptions import ConcurrentModificationError, PrincipalExistsError
from bankauth.types import Principal

from .store import MemoryStore

logger = logging.getLogger(__name__)

PRINCIPALS = "principals"
HANDLE_INDEX = "handle_index"


def _copy(principal: Principal) -> Principal:
    return replace(principal, profile=dict(principal.profile))


class MemoryCredentialStore(CredentialStore):
    """Memory-based credential store with optimistic versioning.

    Suitable for tests and single-process deployments; a real deployment
    points the authentication system at the bank's user database instead.
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        pass

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__(config or {})
        self.store = MemoryStore()

    async def get_by_handle(self, handle: str) -> Principal | None:
        with self.store.transaction() as store:
            principal_id = store.get(HANDLE_INDEX, handle)
            if principal_id is None:
                return None
            principal = store.get(PRINCIPALS, principal_id)
            return _copy(principal) if principal else None

    async def get_by_id(self, principal_id: str) -> Principal | None:
        principal = self.store.get(PRINCIPALS, principal_id)
        return _copy(principal) if principal else None

    async def save(self, principal: Principal) -> Principal:
        with self.store.transaction() as store:
            current = store.get(PRINCIPALS, principal.id)
            if current is None:
                raise ConcurrentModificationError(
                    f"Principal {principal.id} no longer exists"
                )
            if current.version != principal.version:
                raise ConcurrentModificationError(
                    f"Principal {principal.id} was modified concurrently",
                    {"expected_version": principal.version, "actual_version": current.version},
                )

            stored = replace(_copy(principal), version=principal.version + 1)
            store.set(PRINCIPALS, principal.id, stored)
            return _copy(stored)

    async def create(self, principal: Principal) -> Principal:
        with self.store.transaction() as store:
            if store.exists(HANDLE_INDEX, principal.handle) or store.exists(
                PRINCIPALS, principal.id
            ):
                raise PrincipalExistsError()

            stored = replace(_copy(principal), version=1)
            store.set(PRINCIPALS, principal.id, stored)
            store.set(HANDLE_INDEX, principal.handle, principal.id)

        logger.info(f"Created principal {principal.id}")
        return _copy(stored)
