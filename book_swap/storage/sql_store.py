"""SQL swap store (SQLite/Postgres) built on SQLAlchemy Core.

One unit of work is one transaction on its own connection. On Postgres row
locks come from ``SELECT ... FOR UPDATE``. SQLite has no row locks and pysqlite
defers BEGIN until the first write, so the store takes over transaction
control: a unit of work opens with ``BEGIN IMMEDIATE``, so it holds the
database write lock from its first read and transitions run one at a time.
Plain reads open a deferred ``BEGIN``.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    event,
    insert,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import OperationalError

from book_swap.core.domain.errors import ConflictError, ErrorReason, NotFoundError
from book_swap.core.domain.types import Book, Profile, SwapRequest, SwapStatus

METADATA = MetaData()

BOOKS = Table(
    "books",
    METADATA,
    Column("id", String(64), primary_key=True),
    Column("owner_id", String(64), nullable=False, index=True),
    Column("is_available", Boolean, nullable=False, default=True),
)

PROFILES = Table(
    "profiles",
    METADATA,
    Column("id", String(64), primary_key=True),
)

SWAP_REQUESTS = Table(
    "swap_requests",
    METADATA,
    Column("id", String(64), primary_key=True),
    Column("book_id", String(64), ForeignKey("books.id"), nullable=False, index=True),
    Column("requester_id", String(64), nullable=False, index=True),
    Column("owner_id", String(64), nullable=False, index=True),
    Column("status", String(16), nullable=False, index=True),
    Column("message", Text),
    Column("offered_book_id", String(64), ForeignKey("books.id"), index=True),
    Column("counter_offered_book_id", String(64), ForeignKey("books.id"), index=True),
    Column("counter_offer_message", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    Column("cancelled_by", String(64)),
    Column("requester_completed_at", DateTime(timezone=True)),
    Column("owner_completed_at", DateTime(timezone=True)),
    Column("requester_rating", Integer),
    Column("owner_rating", Integer),
    Column("requester_feedback", Text),
    Column("owner_feedback", Text),
    CheckConstraint("requester_id <> owner_id", name="different_users"),
    CheckConstraint("offered_book_id IS NULL OR offered_book_id <> book_id", name="different_books"),
    CheckConstraint(
        "counter_offered_book_id IS NULL OR counter_offered_book_id <> book_id",
        name="counter_offer_different",
    ),
    CheckConstraint(
        "requester_rating IS NULL OR (requester_rating >= 1 AND requester_rating <= 5)",
        name="requester_rating_range",
    ),
    CheckConstraint(
        "owner_rating IS NULL OR (owner_rating >= 1 AND owner_rating <= 5)",
        name="owner_rating_range",
    ),
)

_DATETIME_COLUMNS = (
    "created_at",
    "updated_at",
    "completed_at",
    "requester_completed_at",
    "owner_completed_at",
)

# Postgres SQLSTATE for lock_not_available.
_PG_LOCK_NOT_AVAILABLE = "55P03"


# Execution option marking a connection whose transaction takes the SQLite
# write lock up front.
_WRITE_LOCK_OPTION = "book_swap_write_lock"


def _begin_sqlite(conn: Connection) -> None:
    if conn.get_execution_options().get(_WRITE_LOCK_OPTION):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


def _serialize_sqlite_transactions(engine: Engine, busy_timeout_ms: int) -> None:
    """Apply the pysqlite recipe for serializable SQLite transactions."""
    if event.contains(engine, "begin", _begin_sqlite):
        return

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        # Disable pysqlite's own BEGIN handling; the "begin" hook emits it.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")

    event.listen(engine, "begin", _begin_sqlite)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _book_from_row(row: Row) -> Book:
    return Book(id=row.id, owner_id=row.owner_id, available=bool(row.is_available))


def _swap_from_row(row: Row) -> SwapRequest:
    data = dict(row._mapping)
    for key in _DATETIME_COLUMNS:
        value = data.get(key)
        # SQLite hands back naive datetimes; everything is written in UTC.
        if isinstance(value, datetime) and value.tzinfo is None:
            data[key] = value.replace(tzinfo=timezone.utc)
    return SwapRequest.model_validate(data)


def _to_columns(fields: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    status = values.get("status")
    if isinstance(status, SwapStatus):
        values["status"] = status.value
    return values


def _is_lock_failure(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) == _PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig).lower()


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class SqlUnitOfWork:
    """One database transaction implementing the SwapUnitOfWork protocol."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._locked_books: set[str] = set()

    def lock_swap(self, swap_id: str) -> SwapRequest:
        row = self._conn.execute(
            select(SWAP_REQUESTS).where(SWAP_REQUESTS.c.id == swap_id).with_for_update()
        ).first()
        if row is None:
            raise NotFoundError(f"swap request {swap_id} not found", reason=ErrorReason.SWAP_NOT_FOUND)
        return _swap_from_row(row)

    def lock_books(self, book_ids: Iterable[str]) -> Mapping[str, Book]:
        wanted = sorted(set(book_ids))
        rows = self._conn.execute(
            select(BOOKS)
            .where(BOOKS.c.id.in_(wanted))
            .order_by(BOOKS.c.id)
            .with_for_update()
        ).all()
        found = {row.id: _book_from_row(row) for row in rows}
        missing = [book_id for book_id in wanted if book_id not in found]
        if missing:
            raise NotFoundError(
                f"book {missing[0]} not found",
                reason=ErrorReason.BOOK_NOT_FOUND,
            )
        self._locked_books.update(wanted)
        return found

    def get_book(self, book_id: str) -> Book:
        row = self._conn.execute(select(BOOKS).where(BOOKS.c.id == book_id)).first()
        if row is None:
            raise NotFoundError(f"book {book_id} not found", reason=ErrorReason.BOOK_NOT_FOUND)
        return _book_from_row(row)

    def set_book_owner_and_availability(
        self,
        book_id: str,
        *,
        owner_id: str | None = None,
        available: bool | None = None,
    ) -> Book:
        if book_id not in self._locked_books:
            raise RuntimeError(f"book {book_id} must be locked before it is written")
        values: dict[str, Any] = {}
        if owner_id is not None:
            values["owner_id"] = owner_id
        if available is not None:
            values["is_available"] = available
        if values:
            self._conn.execute(update(BOOKS).where(BOOKS.c.id == book_id).values(**values))
        return self.get_book(book_id)

    def get_swap(self, swap_id: str) -> SwapRequest:
        row = self._conn.execute(
            select(SWAP_REQUESTS).where(SWAP_REQUESTS.c.id == swap_id)
        ).first()
        if row is None:
            raise NotFoundError(f"swap request {swap_id} not found", reason=ErrorReason.SWAP_NOT_FOUND)
        return _swap_from_row(row)

    def create_swap(self, swap: SwapRequest) -> SwapRequest:
        exists = self._conn.execute(
            select(SWAP_REQUESTS.c.id).where(SWAP_REQUESTS.c.id == swap.id)
        ).first()
        if exists is not None:
            raise ConflictError(f"swap request {swap.id} already exists", reason=ErrorReason.DUPLICATE_ID)
        self._conn.execute(insert(SWAP_REQUESTS).values(**_to_columns(swap.model_dump())))
        return self.get_swap(swap.id)

    def update_status(
        self,
        swap_id: str,
        expected_status: SwapStatus,
        fields: Mapping[str, Any],
        *,
        unset_fields: Iterable[str] = (),
    ) -> SwapRequest:
        current = self.get_swap(swap_id)
        # Validate the merged row before it reaches the database.
        SwapRequest.model_validate({**current.model_dump(), **dict(fields)})

        conditions = [
            SWAP_REQUESTS.c.id == swap_id,
            SWAP_REQUESTS.c.status == expected_status.value,
        ]
        conditions.extend(SWAP_REQUESTS.c[name].is_(None) for name in unset_fields)
        result = self._conn.execute(
            update(SWAP_REQUESTS).where(*conditions).values(**_to_columns(fields))
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"swap request {swap_id} changed since it was read (expected {expected_status.value})",
                reason=ErrorReason.STATUS_CHANGED,
            )
        return self.get_swap(swap_id)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlSwapStore:
    """SwapStore backed by a SQLAlchemy engine.

    For SQLite, hand over an engine that has not opened any connection yet so
    every pooled connection gets the transaction hooks.
    """

    def __init__(self, engine: Engine, *, lock_timeout_seconds: float = 5.0) -> None:
        if lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        self._engine = engine
        self._lock_timeout_ms = int(lock_timeout_seconds * 1000)
        if engine.dialect.name == "sqlite":
            _serialize_sqlite_transactions(engine, self._lock_timeout_ms)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        METADATA.create_all(self._engine)

    @contextmanager
    def unit_of_work(self) -> Iterator[SqlUnitOfWork]:
        try:
            with self._engine.connect() as conn:
                conn.execution_options(**{_WRITE_LOCK_OPTION: True})
                with conn.begin():
                    if conn.dialect.name == "postgresql":
                        conn.execute(text(f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'"))
                    yield SqlUnitOfWork(conn)
        except OperationalError as exc:
            if _is_lock_failure(exc):
                raise ConflictError(
                    "timed out waiting for a row lock",
                    reason=ErrorReason.LOCK_TIMEOUT,
                ) from exc
            raise

    # ---- Catalog side ----
    def add_book(self, book: Book) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(BOOKS).values(id=book.id, owner_id=book.owner_id, is_available=book.available)
            )

    def add_profile(self, user_id: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(insert(PROFILES).values(id=user_id))

    def get_book(self, book_id: str) -> Book:
        with self._engine.connect() as conn:
            row = conn.execute(select(BOOKS).where(BOOKS.c.id == book_id)).first()
        if row is None:
            raise NotFoundError(f"book {book_id} not found", reason=ErrorReason.BOOK_NOT_FOUND)
        return _book_from_row(row)

    def books(self) -> dict[str, Book]:
        with self._engine.connect() as conn:
            rows = conn.execute(select(BOOKS)).all()
        return {row.id: _book_from_row(row) for row in rows}

    # ---- Read side ----
    def get_swap(self, swap_id: str) -> SwapRequest:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(SWAP_REQUESTS).where(SWAP_REQUESTS.c.id == swap_id)
            ).first()
        if row is None:
            raise NotFoundError(f"swap request {swap_id} not found", reason=ErrorReason.SWAP_NOT_FOUND)
        return _swap_from_row(row)

    def list_swaps_for_user(self, user_id: str) -> list[SwapRequest]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(SWAP_REQUESTS)
                .where(
                    or_(
                        SWAP_REQUESTS.c.requester_id == user_id,
                        SWAP_REQUESTS.c.owner_id == user_id,
                    )
                )
                .order_by(SWAP_REQUESTS.c.created_at.desc())
            ).all()
        return [_swap_from_row(row) for row in rows]


class SqlProfileDirectory:
    """ProfileDirectory reading the profiles table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_profile(self, user_id: str) -> Profile | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(PROFILES).where(PROFILES.c.id == user_id)).first()
        if row is None:
            return None
        return Profile(id=row.id)
