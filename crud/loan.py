# crud/loan.py: loan store over the borrowed_books table
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from errors import Conflict
from models import Book, BorrowedBook

ACTIVE_LOAN_INDEX = "uq_borrowed_books_active_book"

def is_active_loan_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` came from the one-active-loan-per-book index.

    PostgreSQL names the index in its message; SQLite names the column.
    """
    message = str(exc.orig)
    return ACTIVE_LOAN_INDEX in message or "UNIQUE constraint failed: borrowed_books.book_id" in message

async def create_loan(db: AsyncSession, loan: BorrowedBook) -> BorrowedBook:
    """Persist a new loan.

    The partial unique index on active loans rejects a second active loan
    for the same book; that rejection is reported as ``Conflict``. Any
    other integrity failure, such as a vanished book or user, propagates.
    """
    book_id = loan.book_id
    db.add(loan)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if is_active_loan_violation(exc):
            raise Conflict("book", book_id, "book currently on loan") from exc
        raise
    return loan

async def get_loan(db: AsyncSession, loan_id: int) -> Optional[BorrowedBook]:
    result = await db.execute(
        select(BorrowedBook)
        .where(BorrowedBook.id == loan_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def find_active_by_book(db: AsyncSession, book_id: int) -> Optional[BorrowedBook]:
    result = await db.execute(
        select(BorrowedBook).where(
            BorrowedBook.book_id == book_id,
            BorrowedBook.returned_at.is_(None),
        )
    )
    return result.scalar_one_or_none()

async def close_loan(db: AsyncSession, loan_id: int, returned_at: datetime) -> bool:
    """Set ``returned_at`` on a loan that is still active.

    Returns False when no active loan with that id exists, so of several
    concurrent callers only one ever sees True.
    """
    result = await db.execute(
        update(BorrowedBook)
        .where(BorrowedBook.id == loan_id, BorrowedBook.returned_at.is_(None))
        .values(returned_at=returned_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1

async def list_loans_by_user(db: AsyncSession, user_id: int) -> List[BorrowedBook]:
    result = await db.execute(
        select(BorrowedBook)
        .options(selectinload(BorrowedBook.book).selectinload(Book.author))
        .where(BorrowedBook.user_id == user_id)
        .order_by(BorrowedBook.borrowed_at.desc(), BorrowedBook.id.desc())
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()
