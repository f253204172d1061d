"""In-process swap store.

Rows live in dictionaries guarded by one data lock; each swap and each book
additionally has a row lock that a unit of work holds until it finishes. Writes
are staged on the unit and applied in one step at commit, so a failing
transition leaves no trace.
"""

# pylint: disable=protected-access
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping

from book_swap.core.domain.errors import ConflictError, ErrorReason, NotFoundError
from book_swap.core.domain.types import Book, Profile, SwapRequest, SwapStatus


def _swap_key(swap_id: str) -> str:
    return f"swap:{swap_id}"


def _book_key(book_id: str) -> str:
    return f"book:{book_id}"


class _RowLocks:
    """Per-row locks, created on first use and dropped once idle.

    A lock stays in the map while any unit of work holds it or waits for it,
    so the map only grows with the number of rows in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def acquire(self, key: str, timeout: float) -> bool:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
        if lock.acquire(timeout=timeout):
            return True
        self._forget(key)
        return False

    def release(self, key: str) -> None:
        with self._guard:
            lock = self._locks[key]
        lock.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        with self._guard:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]


class InMemorySwapStore:
    """Thread-safe in-memory implementation of the SwapStore protocol."""

    def __init__(self, *, lock_timeout_seconds: float = 5.0) -> None:
        if lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        self._lock_timeout = float(lock_timeout_seconds)
        self._data_lock = threading.Lock()
        self._row_locks = _RowLocks()
        self._books: dict[str, Book] = {}
        self._swaps: dict[str, SwapRequest] = {}

    # ---- Catalog side (books are owned by the external catalog) ----
    def add_book(self, book: Book) -> None:
        with self._data_lock:
            self._books[book.id] = book

    def get_book(self, book_id: str) -> Book:
        with self._data_lock:
            book = self._books.get(book_id)
        if book is None:
            raise NotFoundError(f"book {book_id} not found", reason=ErrorReason.BOOK_NOT_FOUND)
        return book

    def books(self) -> dict[str, Book]:
        """Snapshot of all committed books."""
        with self._data_lock:
            return dict(self._books)

    # ---- Read side ----
    def get_swap(self, swap_id: str) -> SwapRequest:
        with self._data_lock:
            swap = self._swaps.get(swap_id)
        if swap is None:
            raise NotFoundError(f"swap request {swap_id} not found", reason=ErrorReason.SWAP_NOT_FOUND)
        return swap

    def list_swaps(self) -> list[SwapRequest]:
        with self._data_lock:
            return list(self._swaps.values())

    def list_swaps_for_user(self, user_id: str) -> list[SwapRequest]:
        return [swap for swap in self.list_swaps() if swap.is_party(user_id)]

    # ---- Units of work ----
    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryUnitOfWork]:
        uow = InMemoryUnitOfWork(self)
        try:
            yield uow
            uow._commit()
        finally:
            uow._release()


class InMemoryUnitOfWork:
    """Row-locking unit of work over an InMemorySwapStore."""

    def __init__(self, store: InMemorySwapStore) -> None:
        self._store = store
        self._held: list[str] = []
        self._staged_books: dict[str, Book] = {}
        self._staged_swaps: dict[str, SwapRequest] = {}

    # ---- Locking ----
    def _acquire(self, key: str) -> None:
        if key in self._held:
            return
        if not self._store._row_locks.acquire(key, self._store._lock_timeout):
            raise ConflictError(
                f"timed out waiting for {key}",
                reason=ErrorReason.LOCK_TIMEOUT,
            )
        self._held.append(key)

    def lock_swap(self, swap_id: str) -> SwapRequest:
        self._acquire(_swap_key(swap_id))
        return self.get_swap(swap_id)

    def lock_books(self, book_ids: Iterable[str]) -> Mapping[str, Book]:
        wanted = sorted(set(book_ids))
        for book_id in wanted:
            self._acquire(_book_key(book_id))
        return {book_id: self.get_book(book_id) for book_id in wanted}

    # ---- Books ----
    def get_book(self, book_id: str) -> Book:
        staged = self._staged_books.get(book_id)
        if staged is not None:
            return staged
        return self._store.get_book(book_id)

    def set_book_owner_and_availability(
        self,
        book_id: str,
        *,
        owner_id: str | None = None,
        available: bool | None = None,
    ) -> Book:
        if _book_key(book_id) not in self._held:
            raise RuntimeError(f"book {book_id} must be locked before it is written")
        update: dict[str, Any] = {}
        if owner_id is not None:
            update["owner_id"] = owner_id
        if available is not None:
            update["available"] = available
        book = self.get_book(book_id).model_copy(update=update)
        self._staged_books[book_id] = book
        return book

    # ---- Swaps ----
    def get_swap(self, swap_id: str) -> SwapRequest:
        staged = self._staged_swaps.get(swap_id)
        if staged is not None:
            return staged
        return self._store.get_swap(swap_id)

    def create_swap(self, swap: SwapRequest) -> SwapRequest:
        self._acquire(_swap_key(swap.id))
        with self._store._data_lock:
            exists = swap.id in self._store._swaps
        if exists or swap.id in self._staged_swaps:
            raise ConflictError(f"swap request {swap.id} already exists", reason=ErrorReason.DUPLICATE_ID)
        self._staged_swaps[swap.id] = swap
        return swap

    def update_status(
        self,
        swap_id: str,
        expected_status: SwapStatus,
        fields: Mapping[str, Any],
        *,
        unset_fields: Iterable[str] = (),
    ) -> SwapRequest:
        current = self.get_swap(swap_id)
        if current.status != expected_status:
            raise ConflictError(
                f"swap request {swap_id} is {current.status.value}, expected {expected_status.value}",
                reason=ErrorReason.STATUS_CHANGED,
            )
        written = [name for name in unset_fields if getattr(current, name) is not None]
        if written:
            raise ConflictError(
                f"swap request {swap_id} already has {written[0]}",
                reason=ErrorReason.STATUS_CHANGED,
            )
        updated = SwapRequest.model_validate({**current.model_dump(), **dict(fields)})
        self._staged_swaps[swap_id] = updated
        return updated

    # ---- Lifecycle ----
    def _commit(self) -> None:
        with self._store._data_lock:
            self._store._books.update(self._staged_books)
            self._store._swaps.update(self._staged_swaps)
        self._staged_books.clear()
        self._staged_swaps.clear()

    def _release(self) -> None:
        for key in reversed(self._held):
            self._store._row_locks.release(key)
        self._held.clear()


class InMemoryProfileDirectory:
    """ProfileDirectory backed by a set of known user ids."""

    def __init__(self, user_ids: Iterable[str] = ()) -> None:
        self._profiles: dict[str, Profile] = {uid: Profile(id=uid) for uid in user_ids}

    def add_profile(self, user_id: str) -> None:
        self._profiles[user_id] = Profile(id=user_id)

    def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)
