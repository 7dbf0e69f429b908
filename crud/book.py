# crud/book.py: book store
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crud.author import get_author
from errors import Conflict, NotFound
from models import Book
from schemas import BookCreate, BookUpdate

async def get_books(db: AsyncSession, author_id: Optional[int] = None) -> List[Book]:
    stmt = select(Book).options(selectinload(Book.author)).order_by(Book.title, Book.id)
    if author_id is not None:
        stmt = stmt.where(Book.author_id == author_id)
    result = await db.execute(stmt)
    return result.scalars().all()

async def get_book(db: AsyncSession, book_id: int) -> Optional[Book]:
    result = await db.execute(
        select(Book)
        .options(selectinload(Book.author))
        .where(Book.id == book_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def find_book_by_isbn(db: AsyncSession, isbn: str) -> Optional[Book]:
    result = await db.execute(select(Book).where(Book.isbn == isbn))
    return result.scalar_one_or_none()

async def _ensure_author(db: AsyncSession, author_id: int) -> None:
    if await get_author(db, author_id) is None:
        raise NotFound("author", author_id)

async def _commit_unique_isbn(db: AsyncSession, isbn: str) -> None:
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("book", None, "isbn already exists", isbn=isbn) from exc

async def create_book(db: AsyncSession, book_data: BookCreate) -> Book:
    """Create a book; the ISBN must be unique and the author must exist."""
    await _ensure_author(db, book_data.author_id)
    if await find_book_by_isbn(db, book_data.isbn):
        raise Conflict("book", None, "isbn already exists", isbn=book_data.isbn)

    new_book = Book(**book_data.model_dump())
    db.add(new_book)
    await _commit_unique_isbn(db, book_data.isbn)
    return await get_book(db, new_book.id)

async def update_book(db: AsyncSession, book_id: int, book_data: BookUpdate) -> Book:
    book = await get_book(db, book_id)
    if book is None:
        raise NotFound("book", book_id)

    values = book_data.model_dump(exclude_unset=True)
    if values.get("author_id") is not None and values["author_id"] != book.author_id:
        await _ensure_author(db, values["author_id"])
    if values.get("isbn") and values["isbn"] != book.isbn:
        if await find_book_by_isbn(db, values["isbn"]):
            raise Conflict("book", book_id, "isbn already exists", isbn=values["isbn"])

    for field, value in values.items():
        if value is None and field in ("title", "isbn", "author_id"):
            continue
        setattr(book, field, value)
    await _commit_unique_isbn(db, book.isbn)
    return await get_book(db, book_id)

async def delete_book(db: AsyncSession, book_id: int) -> bool:
    result = await db.execute(delete(Book).where(Book.id == book_id))
    await db.commit()
    return result.rowcount > 0
