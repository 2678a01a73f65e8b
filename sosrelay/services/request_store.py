"""Request store contract and its PostgreSQL implementation.

The escalation engine never writes a record unconditionally: every
change goes through ``conditional_update``, which applies only if the
record still has the index and status the caller read. That gives
overlapping sweeps at-most-once advancement without a global lock.
"""

import enum
import uuid
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Protocol

from sqlalchemy import select, text, update
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from sosrelay.config import settings
from sosrelay.core.exceptions import StoreUnavailable
from sosrelay.logging_config import get_logger
from sosrelay.models.emergency_request import (
    MUTABLE_FIELDS,
    EmergencyRecord,
    EmergencyRequest,
)
from sosrelay.services.token_resolver import parse_priorities

logger = get_logger(__name__)


class UpdateResult(str, enum.Enum):
    """Result of a conditional update."""

    APPLIED = "applied"
    CONFLICT = "conflict"
    MISSING = "missing"


class RequestStore(Protocol):
    async def create(self, record: EmergencyRecord) -> str: ...

    async def get(self, request_id: str) -> EmergencyRecord | None: ...

    async def query_by_status(self, status: str) -> list[EmergencyRecord]: ...

    async def conditional_update(
        self,
        request_id: str,
        expected_index: int,
        expected_status: str,
        fields: Mapping[str, Any],
    ) -> UpdateResult: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def check_fields(fields: Mapping[str, Any]) -> None:
    """Reject updates to anything other than the progress fields."""
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)


def _parse_id(request_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(request_id))
    except ValueError:
        return None


def row_to_record(row: EmergencyRequest) -> EmergencyRecord:
    return EmergencyRecord(
        id=str(row.id),
        sender_uid=row.sender_uid,
        type=row.type,
        condition=row.condition,
        need=row.need,
        location=row.location,
        maps_url=row.maps_url,
        priorities=parse_priorities(row.priorities or []),
        current_priority_index=row.current_priority_index or 0,
        status=row.status,
        created_at=row.created_at,
        last_sent_at=row.last_sent_at,
    )


def record_to_row(record: EmergencyRecord) -> EmergencyRequest:
    return EmergencyRequest(
        sender_uid=record.sender_uid,
        type=record.type,
        condition=record.condition,
        need=record.need,
        location=record.location,
        maps_url=record.maps_url,
        priorities=[p.model_dump(mode="json") for p in record.priorities],
        current_priority_index=record.current_priority_index,
        status=record.status,
        created_at=record.created_at,
        last_sent_at=record.last_sent_at,
    )


def create_store_engine(database_url: str) -> AsyncEngine:
    """Create the engine behind the SQL store.

    Sweeps open one session per pending record, so the pool is sized to
    the sweep concurrency. With TESTING set the engine uses NullPool,
    since each test runs on its own event loop.
    """
    if settings.testing:
        return create_async_engine(database_url, poolclass=NullPool)
    return create_async_engine(
        database_url,
        pool_size=max(5, settings.escalation_max_concurrency),
        max_overflow=10,
        pool_pre_ping=True,
    )


class SqlRequestStore:
    """RequestStore backed by the ``emergency_requests`` table.

    Every operation opens its own session so that concurrent escalation
    tasks never share one.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        self._session_maker = session_maker
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "SqlRequestStore":
        """Create a store that owns its engine and connection pool."""
        engine = create_store_engine(database_url)
        session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return cls(session_maker, engine)

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_maker() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error("Request store unavailable", error=str(e))
            raise StoreUnavailable(str(e)) from e

    async def create(self, record: EmergencyRecord) -> str:
        row = record_to_row(record)
        async with self._session() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)
        return str(row.id)

    async def get(self, request_id: str) -> EmergencyRecord | None:
        row_id = _parse_id(request_id)
        if row_id is None:
            return None
        async with self._session() as db:
            row = await db.get(EmergencyRequest, row_id)
            return row_to_record(row) if row is not None else None

    async def query_by_status(self, status: str) -> list[EmergencyRecord]:
        async with self._session() as db:
            result = await db.execute(
                select(EmergencyRequest)
                .where(EmergencyRequest.status == status)
                .order_by(EmergencyRequest.created_at, EmergencyRequest.id)
            )
            return [row_to_record(row) for row in result.scalars().all()]

    async def conditional_update(
        self,
        request_id: str,
        expected_index: int,
        expected_status: str,
        fields: Mapping[str, Any],
    ) -> UpdateResult:
        check_fields(fields)
        row_id = _parse_id(request_id)
        if row_id is None:
            return UpdateResult.MISSING

        async with self._session() as db:
            result = await db.execute(
                update(EmergencyRequest)
                .where(
                    EmergencyRequest.id == row_id,
                    EmergencyRequest.current_priority_index == expected_index,
                    EmergencyRequest.status == expected_status,
                )
                .values(**fields)
            )
            await db.commit()
            if result.rowcount == 1:
                return UpdateResult.APPLIED

            exists = await db.execute(
                select(EmergencyRequest.id).where(EmergencyRequest.id == row_id)
            )
            if exists.scalar_one_or_none() is None:
                return UpdateResult.MISSING
            return UpdateResult.CONFLICT

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            async with self._session() as db:
                await db.execute(text("SELECT 1"))
        except (StoreUnavailable, SQLAlchemyError):
            return False
        return True

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            await self.engine.dispose()
