"""Memory-based session registry implementation."""

import logging
import secrets
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from bankauth.exceptions import (
    ConfigurationError,
    SessionInactiveError,
    SessionNotFoundError,
)
from bankauth.session_manager import SessionRegistry
from bankauth.types import ClientMetadata, Session
from bankauth.utils import secure_compare

from .store import MemoryStore

logger = logging.getLogger(__name__)

SESSIONS = "sessions"
ACCESS_INDEX = "access_index"
REFRESH_INDEX = "refresh_index"
PRINCIPAL_SESSIONS = "principal_sessions"


class MemorySessionRegistry(SessionRegistry):
    """Memory-based session registry.

    Sessions live in one namespace of a ``MemoryStore``; three more
    namespaces index them by access token, refresh token and principal.
    Every mutation that touches more than one namespace runs inside a single
    store transaction with no await, so other coroutines never observe a
    half-applied change.
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        if config.get("session_id_length", 32) < 16:
            raise ConfigurationError("session_id_length must be at least 16")

    def __init__(self, config: dict[str, Any], **kwargs):
        super().__init__(config, **kwargs)
        self.session_id_length = config.get("session_id_length", 32)
        self.store = MemoryStore()

    async def create(
        self,
        principal_id: str,
        access_token: str,
        refresh_token: str,
        ttl_seconds: int,
        refresh_ttl_seconds: int,
        metadata: ClientMetadata | None = None,
        roles: tuple[str, ...] = (),
        single_session: bool | None = None,
    ) -> Session:
        if single_session is None:
            single_session = self.single_active_session

        now = self.clock()
        with self.store.transaction() as store:
            session_id = secrets.token_urlsafe(self.session_id_length)
            while store.exists(SESSIONS, session_id):
                session_id = secrets.token_urlsafe(self.session_id_length)

            session = Session(
                id=session_id,
                principal_id=principal_id,
                access_token=access_token,
                refresh_token=refresh_token,
                created_at=now,
                access_expires_at=now + timedelta(seconds=ttl_seconds),
                refresh_expires_at=now + timedelta(seconds=refresh_ttl_seconds),
                roles=tuple(roles),
                metadata=metadata or ClientMetadata(),
                last_accessed=now,
            )

            revoked = self._deactivate_all(principal_id) if single_session else 0

            store.set(SESSIONS, session_id, session)
            store.set(ACCESS_INDEX, access_token, session_id)
            store.set(REFRESH_INDEX, refresh_token, session_id)
            principal_sessions = store.get(PRINCIPAL_SESSIONS, principal_id) or set()
            principal_sessions.add(session_id)
            store.set(PRINCIPAL_SESSIONS, principal_id, principal_sessions)

        if revoked:
            logger.info(
                f"Revoked {revoked} prior session(s) of principal {principal_id} "
                "under single-session policy"
            )
        return replace(session)

    async def find_by_access_token(self, access_token: str) -> Session | None:
        return self._find_by_index(ACCESS_INDEX, access_token)

    async def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        return self._find_by_index(REFRESH_INDEX, refresh_token)

    async def get(self, session_id: str) -> Session | None:
        session = self.store.get(SESSIONS, session_id)
        return replace(session) if session else None

    async def deactivate(self, session_id: str) -> bool:
        with self.store.transaction() as store:
            session = store.get(SESSIONS, session_id)
            if session is None or not session.is_active:
                return False
            session.is_active = False
            return True

    async def deactivate_all_for_principal(self, principal_id: str) -> int:
        with self.store.transaction():
            return self._deactivate_all(principal_id)

    async def rotate(
        self,
        session_id: str,
        new_access_token: str,
        new_refresh_token: str,
        ttl_seconds: int,
        refresh_ttl_seconds: int,
        expected_refresh_token: str | None = None,
    ) -> Session:
        now = self.clock()
        with self.store.transaction() as store:
            session = store.get(SESSIONS, session_id)
            if session is None:
                raise SessionNotFoundError()
            if not session.is_active:
                raise SessionInactiveError()
            if expected_refresh_token is not None and not secure_compare(
                session.refresh_token, expected_refresh_token
            ):
                raise SessionInactiveError("Refresh token has already been used")

            store.delete(ACCESS_INDEX, session.access_token)
            store.delete(REFRESH_INDEX, session.refresh_token)

            session.access_token = new_access_token
            session.refresh_token = new_refresh_token
            session.access_expires_at = now + timedelta(seconds=ttl_seconds)
            session.refresh_expires_at = now + timedelta(seconds=refresh_ttl_seconds)
            session.last_accessed = now

            store.set(ACCESS_INDEX, new_access_token, session_id)
            store.set(REFRESH_INDEX, new_refresh_token, session_id)
            return replace(session)

    async def touch(self, session_id: str, now: datetime | None = None) -> None:
        with self.store.transaction() as store:
            session = store.get(SESSIONS, session_id)
            if session is not None:
                session.last_accessed = now or self.clock()

    async def list_for_principal(
        self, principal_id: str, active_only: bool = True
    ) -> list[Session]:
        with self.store.transaction() as store:
            session_ids = store.get(PRINCIPAL_SESSIONS, principal_id) or set()
            sessions = [
                replace(session)
                for session_id in session_ids
                if (session := store.get(SESSIONS, session_id)) is not None
                and (session.is_active or not active_only)
            ]

        sessions.sort(key=lambda s: s.last_accessed or s.created_at, reverse=True)
        return sessions

    async def sweep_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        removed = 0
        with self.store.transaction() as store:
            for session_id, session in store.items(SESSIONS):
                if session.is_reclaimable(now):
                    self._remove(session)
                    removed += 1
        return removed

    def _find_by_index(self, index: str, token: str) -> Session | None:
        if not token:
            return None
        with self.store.transaction() as store:
            session_id = store.get(index, token)
            if session_id is None:
                return None
            session = store.get(SESSIONS, session_id)
            return replace(session) if session else None

    def _deactivate_all(self, principal_id: str) -> int:
        """Caller must hold the store transaction."""
        count = 0
        for session_id in self.store.get(PRINCIPAL_SESSIONS, principal_id) or set():
            session = self.store.get(SESSIONS, session_id)
            if session is not None and session.is_active:
                session.is_active = False
                count += 1
        return count

    def _remove(self, session: Session) -> None:
        """Caller must hold the store transaction."""
        self.store.delete(SESSIONS, session.id)
        self.store.delete(ACCESS_INDEX, session.access_token)
        self.store.delete(REFRESH_INDEX, session.refresh_token)
        principal_sessions = self.store.get(PRINCIPAL_SESSIONS, session.principal_id)
        if principal_sessions is not None:
            principal_sessions.discard(session.id)
            if not principal_sessions:
                self.store.delete(PRINCIPAL_SESSIONS, session.principal_id)
