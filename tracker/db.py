"""History store adapters.

The service holds exactly one ``HistoryStore``: either a live
``SqlHistoryStore`` bound to MySQL/PostgreSQL/SQLite, or an
``UnavailableHistoryStore`` when no database is configured or it could not
be reached at startup. Handlers never check for ``None``.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import func
from sqlmodel import SQLModel, Session, create_engine, select, col

from .exceptions import StoreUnavailable, WriteFailed
from .models import DeviceRecord
from .schemas import DeviceEntry
from .settings import Settings

log = logging.getLogger("history")


class HistoryStore(Protocol):
    available: bool

    def initialize(self) -> None: ...
    def append(self, entry: DeviceEntry) -> int: ...
    def query_all(self) -> list[DeviceRecord]: ...
    def count(self) -> int: ...
    def close(self) -> None: ...


class SqlHistoryStore:
    def __init__(self, database_url: URL | str) -> None:
        url = make_url(database_url)
        connect_args = {"check_same_thread": False} if url.get_backend_name() == "sqlite" else {}
        self.url = url
        self.engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        self.available = False

    def _session(self) -> Session:
        # prevent attribute expiration so simple reads after commit are safe
        return Session(self.engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create the devices table if missing. Safe to call repeatedly."""
        try:
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            self.available = False
            raise StoreUnavailable("Database not connected.", details=str(e)) from e
        self.available = True
        log.info("history store ready (%s)", self.url.render_as_string(hide_password=True))

    def append(self, entry: DeviceEntry) -> int:
        if not self.available:
            raise WriteFailed("history store not initialized")
        row = DeviceRecord(
            deviceId=entry.deviceId,
            label=entry.label,
            publicIP=entry.publicIP,
            clientLat=entry.clientLat,
            clientLon=entry.clientLon,
            reportedAt=entry.reportedAt,
        )
        try:
            with self._session() as s:
                s.add(row)
                s.commit()
                return row.id
        except SQLAlchemyError as e:
            raise WriteFailed("DB insert error", details=str(e)) from e

    def query_all(self) -> list[DeviceRecord]:
        if not self.available:
            raise StoreUnavailable("Database not connected.")
        stmt = select(DeviceRecord).order_by(
            col(DeviceRecord.reportedAt).desc(), col(DeviceRecord.id).desc()
        )
        try:
            with self._session() as s:
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            raise StoreUnavailable("Database query failed", details=str(e)) from e

    def count(self) -> int:
        if not self.available:
            raise StoreUnavailable("Database not connected.")
        try:
            with self._session() as s:
                return s.exec(select(func.count()).select_from(DeviceRecord)).one()
        except SQLAlchemyError as e:
            raise StoreUnavailable("Database query failed", details=str(e)) from e

    def close(self) -> None:
        self.engine.dispose()
        self.available = False


class UnavailableHistoryStore:
    """Degraded mode: live registry keeps working, history does not exist."""

    available = False

    def __init__(self, reason: str = "no database configured") -> None:
        self.reason = reason

    def initialize(self) -> None:
        raise StoreUnavailable("Database not connected.", details=self.reason)

    def append(self, entry: DeviceEntry) -> int:
        raise WriteFailed("history store unavailable", details=self.reason)

    def query_all(self) -> list[DeviceRecord]:
        raise StoreUnavailable("Database not connected.")

    def count(self) -> int:
        raise StoreUnavailable("Database not connected.")

    def close(self) -> None:
        pass


def open_history_store(settings: Settings) -> HistoryStore:
    """Build and initialize the configured store; degrade instead of raising."""
    url = settings.resolved_database_url()
    if url is None:
        log.warning("no database configured; history disabled")
        return UnavailableHistoryStore()
    try:
        store = SqlHistoryStore(url)
    except (SQLAlchemyError, ImportError, ValueError) as e:
        # bad URL or missing driver
        log.error("cannot create database engine: %s", e)
        return UnavailableHistoryStore(str(e))
    try:
        store.initialize()
    except StoreUnavailable as e:
        log.error("database connection failed: %s", e.details)
        store.close()
        return UnavailableHistoryStore(str(e.details))
    return store
