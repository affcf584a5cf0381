"""
SQLAlchemy-backed session registry.

Works against any SQLAlchemy async URL; tests run it on in-memory SQLite
through aiosqlite. Token rotation is a single conditional UPDATE, so the
database arbitrates between concurrent refreshes, including ones issued by
different processes.
"""

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    TypeDecorator,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from bankauth.exceptions import (
    ConcurrentModificationError,
    ConfigurationError,
    SessionInactiveError,
    SessionNotFoundError,
    StoreUnavailableError,
)
from bankauth.session_manager import SessionRegistry
from bankauth.types import ClientMetadata, Session
from bankauth.utils import call_with_deadline

logger = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes on every backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


session_metadata = MetaData()

auth_sessions = Table(
    "auth_sessions",
    session_metadata,
    Column("id", String(64), primary_key=True),
    Column("principal_id", String(255), nullable=False, index=True),
    Column("access_token", String(2048), nullable=False, unique=True),
    Column("refresh_token", String(2048), nullable=False, unique=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("access_expires_at", UTCDateTime(), nullable=False),
    Column("refresh_expires_at", UTCDateTime(), nullable=False, index=True),
    Column("is_active", Boolean(), nullable=False, default=True, index=True),
    Column("roles", JSON(), nullable=False, default=list),
    Column("metadata", JSON(), nullable=False, default=dict),
    Column("last_accessed", UTCDateTime(), nullable=True),
)


class SqlSessionRegistry(SessionRegistry):
    """Session registry persisted in the ``auth_sessions`` table.

    Configuration:
        url: SQLAlchemy async database URL (default: in-memory SQLite)
        timeout_seconds: Deadline for each registry call (default: 5.0)
        create_schema: Create the table on ``start()`` (default: True)
        echo: Log emitted SQL (default: False)
    """

    def _validate_config(self, config: dict[str, Any]) -> None:
        url = config.get("url", "sqlite+aiosqlite:///:memory:")
        if "+" not in url.split("://", 1)[0]:
            raise ConfigurationError(
                f"Session database URL must name an async driver, got '{url}'"
            )
        timeout = config.get("timeout_seconds", 5.0)
        if timeout is not None and timeout <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

    def __init__(
        self,
        config: dict[str, Any],
        *,
        engine: AsyncEngine | None = None,
        **kwargs,
    ):
        super().__init__(config, **kwargs)
        self.url = config.get("url", "sqlite+aiosqlite:///:memory:")
        self.timeout = config.get("timeout_seconds", 5.0)
        self.create_schema = config.get("create_schema", True)
        self.session_id_length = config.get("session_id_length", 32)

        self._owns_engine = engine is None
        self.engine = engine or self._create_engine(self.url, config.get("echo", False))

    @staticmethod
    def _create_engine(url: str, echo: bool) -> AsyncEngine:
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_pre_ping"] = True
        return create_async_engine(url, **kwargs)

    async def start(self) -> None:
        if not self.create_schema:
            return
        async with self._transaction() as conn:
            await conn.run_sync(session_metadata.create_all)
        logger.info("Session table ready")

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncConnection]:
        try:
            async with self.engine.begin() as conn:
                yield conn
        except IntegrityError as e:
            raise ConcurrentModificationError(
                "Session write conflicted with an existing record"
            ) from e
        except DBAPIError as e:
            logger.warning(f"Session database error: {e.__class__.__name__}")
            raise StoreUnavailableError("Session database unavailable") from e

    async def _run(self, coro, operation: str):
        return await call_with_deadline(coro, self.timeout, f"session {operation}")

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
        session = Session(
            id=secrets.token_urlsafe(self.session_id_length),
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
        return await self._run(self._create(session, single_session), "create")

    async def _create(self, session: Session, single_session: bool) -> Session:
        async with self._transaction() as conn:
            if single_session:
                result = await conn.execute(
                    update(auth_sessions)
                    .where(
                        auth_sessions.c.principal_id == session.principal_id,
                        auth_sessions.c.is_active.is_(True),
                    )
                    .values(is_active=False)
                )
                if result.rowcount:
                    logger.info(
                        f"Revoked {result.rowcount} prior session(s) of principal "
                        f"{session.principal_id} under single-session policy"
                    )
            await conn.execute(insert(auth_sessions).values(**self._to_row(session)))
        return session

    async def find_by_access_token(self, access_token: str) -> Session | None:
        if not access_token:
            return None
        return await self._run(
            self._select_one(auth_sessions.c.access_token == access_token), "lookup"
        )

    async def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        if not refresh_token:
            return None
        return await self._run(
            self._select_one(auth_sessions.c.refresh_token == refresh_token), "lookup"
        )

    async def get(self, session_id: str) -> Session | None:
        return await self._run(self._select_one(auth_sessions.c.id == session_id), "get")

    async def _select_one(self, condition) -> Session | None:
        async with self._transaction() as conn:
            row = (await conn.execute(select(auth_sessions).where(condition))).first()
        return self._to_session(row) if row else None

    async def deactivate(self, session_id: str) -> bool:
        count = await self._run(
            self._deactivate_where(auth_sessions.c.id == session_id), "deactivate"
        )
        return count > 0

    async def deactivate_all_for_principal(self, principal_id: str) -> int:
        return await self._run(
            self._deactivate_where(auth_sessions.c.principal_id == principal_id),
            "deactivate all",
        )

    async def _deactivate_where(self, condition) -> int:
        async with self._transaction() as conn:
            result = await conn.execute(
                update(auth_sessions)
                .where(condition, auth_sessions.c.is_active.is_(True))
                .values(is_active=False)
            )
        return result.rowcount

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
        values = {
            "access_token": new_access_token,
            "refresh_token": new_refresh_token,
            "access_expires_at": now + timedelta(seconds=ttl_seconds),
            "refresh_expires_at": now + timedelta(seconds=refresh_ttl_seconds),
            "last_accessed": now,
        }
        return await self._run(
            self._rotate(session_id, values, expected_refresh_token), "rotate"
        )

    async def _rotate(
        self, session_id: str, values: dict[str, Any], expected_refresh_token: str | None
    ) -> Session:
        conditions = [auth_sessions.c.id == session_id, auth_sessions.c.is_active.is_(True)]
        if expected_refresh_token is not None:
            conditions.append(auth_sessions.c.refresh_token == expected_refresh_token)

        async with self._transaction() as conn:
            result = await conn.execute(
                update(auth_sessions).where(*conditions).values(**values)
            )
            row = (
                await conn.execute(
                    select(auth_sessions).where(auth_sessions.c.id == session_id)
                )
            ).first()

        if row is None:
            raise SessionNotFoundError()
        if result.rowcount != 1:
            raise SessionInactiveError("Session was revoked or already rotated")
        return self._to_session(row)

    async def touch(self, session_id: str, now: datetime | None = None) -> None:
        await self._run(self._touch(session_id, now or self.clock()), "touch")

    async def _touch(self, session_id: str, now: datetime) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                update(auth_sessions)
                .where(auth_sessions.c.id == session_id)
                .values(last_accessed=now)
            )

    async def list_for_principal(
        self, principal_id: str, active_only: bool = True
    ) -> list[Session]:
        query = select(auth_sessions).where(auth_sessions.c.principal_id == principal_id)
        if active_only:
            query = query.where(auth_sessions.c.is_active.is_(True))
        query = query.order_by(auth_sessions.c.last_accessed.desc())
        return await self._run(self._select_many(query), "list")

    async def _select_many(self, query) -> list[Session]:
        async with self._transaction() as conn:
            rows = (await conn.execute(query)).all()
        return [self._to_session(row) for row in rows]

    async def sweep_expired(self, now: datetime | None = None) -> int:
        return await self._run(self._sweep(now or self.clock()), "sweep")

    async def _sweep(self, now: datetime) -> int:
        async with self._transaction() as conn:
            result = await conn.execute(
                delete(auth_sessions).where(
                    or_(
                        auth_sessions.c.is_active.is_(False),
                        auth_sessions.c.refresh_expires_at < now,
                    )
                )
            )
        return result.rowcount

    @staticmethod
    def _to_row(session: Session) -> dict[str, Any]:
        return {
            "id": session.id,
            "principal_id": session.principal_id,
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "created_at": session.created_at,
            "access_expires_at": session.access_expires_at,
            "refresh_expires_at": session.refresh_expires_at,
            "is_active": session.is_active,
            "roles": list(session.roles),
            "metadata": session.metadata.to_dict(),
            "last_accessed": session.last_accessed,
        }

    @staticmethod
    def _to_session(row) -> Session:
        data = row._mapping
        return Session(
            id=data["id"],
            principal_id=data["principal_id"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            created_at=data["created_at"],
            access_expires_at=data["access_expires_at"],
            refresh_expires_at=data["refresh_expires_at"],
            is_active=bool(data["is_active"]),
            roles=tuple(data["roles"] or ()),
            metadata=ClientMetadata.from_dict(data["metadata"]),
            last_accessed=data["last_accessed"],
        )
