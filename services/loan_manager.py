"""Borrowing lifecycle: borrow, return, history and the availability filter.

A loan is Active while ``returned_at`` is NULL and becomes Returned exactly
once. A book is available iff it has no active loan; that status is always
computed from the loans table and never stored on the book.

Two guards keep a book from being lent twice. A per-book ``asyncio.Lock``
serialises check-and-create inside this process, and the partial unique
index on ``borrowed_books(book_id) WHERE returned_at IS NULL`` rejects a
second active loan from any other process.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import settings
from crud.book import delete_book as _delete_book_row, get_book
from crud.loan import close_loan, create_loan, find_active_by_book, get_loan, list_loans_by_user
from crud.user import get_user
from errors import Conflict, InvalidState, NotFound, store_errors
from models import Book, BorrowedBook, utcnow

AVAILABLE = "available"
BORROWED = "borrowed"
BORROWED_STATUSES = (AVAILABLE, BORROWED)


@dataclass
class CatalogEntry:
    book: Book
    borrowed: bool


def active_loan_exists():
    """Correlated EXISTS: does the outer Book row have an active loan?"""
    return (
        select(BorrowedBook.id)
        .where(BorrowedBook.book_id == Book.id, BorrowedBook.returned_at.is_(None))
        .exists()
    )


class BookLocks:
    """One ``asyncio.Lock`` per book id, kept only while someone holds or awaits it."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, book_id: int) -> bool:
        return book_id in self._locks

    @asynccontextmanager
    async def hold(self, book_id: int):
        lock = self._locks.setdefault(book_id, asyncio.Lock())
        self._holders[book_id] = self._holders.get(book_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[book_id] -= 1
            if not self._holders[book_id]:
                del self._holders[book_id]
                del self._locks[book_id]


class LoanManager:
    def __init__(self, loan_period: Optional[timedelta] = None, clock: Callable[[], datetime] = utcnow):
        self.loan_period = loan_period if loan_period is not None else timedelta(days=settings.loan_period_days)
        self.clock = clock
        self.book_locks = BookLocks()

    async def borrow(self, db: AsyncSession, book_id: int, user_id: int) -> BorrowedBook:
        """Lend ``book_id`` to ``user_id``.

        Raises NotFound for an unknown book or user and Conflict when the
        book already has an active loan.
        """
        log = logger.bind(book_id=book_id, user_id=user_id)
        with store_errors("borrow"):
            # unknown ids never get a lock
            if await get_book(db, book_id) is None:
                raise NotFound("book", book_id)

        async with self.book_locks.hold(book_id):
            with store_errors("borrow"):
                if await get_user(db, user_id) is None:
                    raise NotFound("user", user_id)

                active = await find_active_by_book(db, book_id)
                if active is not None:
                    log.info("borrow.conflict active_loan={}", active.id)
                    raise Conflict("book", book_id, "book currently on loan", loan_id=active.id)

                borrowed_at = self.clock()
                loan = BorrowedBook(
                    book_id=book_id,
                    user_id=user_id,
                    borrowed_at=borrowed_at,
                    due_at=borrowed_at + self.loan_period,
                    returned_at=None,
                )
                try:
                    loan = await create_loan(db, loan)
                except Conflict:
                    log.info("borrow.conflict raced with another process")
                    raise
                except IntegrityError:
                    # a foreign key failed: the book or user went away after the checks
                    if await get_book(db, book_id) is None:
                        raise NotFound("book", book_id)
                    if await get_user(db, user_id) is None:
                        raise NotFound("user", user_id)
                    raise

        log.bind(loan_id=loan.id).info("borrow.ok due_at={}", loan.due_at.isoformat())
        return loan

    async def return_loan(self, db: AsyncSession, loan_id: int, user_id: Optional[int] = None) -> BorrowedBook:
        """Close an active loan.

        When ``user_id`` is given the loan must belong to that user.
        Returning a loan twice raises InvalidState.
        """
        log = logger.bind(loan_id=loan_id, user_id=user_id)
        with store_errors("return"):
            loan = await get_loan(db, loan_id)
            if loan is None or (user_id is not None and loan.user_id != user_id):
                raise NotFound("loan", loan_id)
            if loan.returned_at is not None:
                log.info("return.rejected already returned")
                raise InvalidState("loan", loan_id, "loan is not active", returned_at=loan.returned_at.isoformat())

            returned_at = max(self.clock(), loan.borrowed_at)
            if not await close_loan(db, loan_id, returned_at):
                log.info("return.rejected lost race")
                raise InvalidState("loan", loan_id, "loan is not active")
            loan = await get_loan(db, loan_id)

        log.bind(book_id=loan.book_id).info("return.ok")
        return loan

    async def list_loans_for_user(self, db: AsyncSession, user_id: int) -> List[BorrowedBook]:
        """Every loan of ``user_id``, active and returned, newest first."""
        with store_errors("list_loans"):
            if await get_user(db, user_id) is None:
                raise NotFound("user", user_id)
            return await list_loans_by_user(db, user_id)

    async def list_books(
        self,
        db: AsyncSession,
        author_id: Optional[int] = None,
        borrowed_status: Optional[str] = None,
    ) -> List[CatalogEntry]:
        """The catalog with each book's derived borrowed flag.

        ``borrowed_status`` narrows to ``"available"`` or ``"borrowed"`` books.
        """
        if borrowed_status is not None and borrowed_status not in BORROWED_STATUSES:
            raise ValueError(f"borrowed_status must be one of {BORROWED_STATUSES}, got {borrowed_status!r}")

        on_loan = active_loan_exists()
        stmt = (
            select(Book, on_loan.label("borrowed"))
            .options(selectinload(Book.author))
            .order_by(Book.title, Book.id)
        )
        if author_id is not None:
            stmt = stmt.where(Book.author_id == author_id)
        if borrowed_status == AVAILABLE:
            stmt = stmt.where(~on_loan)
        elif borrowed_status == BORROWED:
            stmt = stmt.where(on_loan)

        with store_errors("list_books"):
            result = await db.execute(stmt)
            return [CatalogEntry(book=book, borrowed=bool(borrowed)) for book, borrowed in result.all()]

    async def is_available(self, db: AsyncSession, book_id: int) -> bool:
        with store_errors("is_available"):
            if await get_book(db, book_id) is None:
                raise NotFound("book", book_id)
            return await find_active_by_book(db, book_id) is None

    async def delete_book(self, db: AsyncSession, book_id: int) -> None:
        """Delete a book unless it is on loan; returned loans go with it."""
        with store_errors("delete_book"):
            if await get_book(db, book_id) is None:
                raise NotFound("book", book_id)

        async with self.book_locks.hold(book_id):
            with store_errors("delete_book"):
                active = await find_active_by_book(db, book_id)
                if active is not None:
                    raise Conflict("book", book_id, "book currently on loan", loan_id=active.id)
                if not await _delete_book_row(db, book_id):
                    raise NotFound("book", book_id)
        logger.bind(book_id=book_id).info("book.deleted")
