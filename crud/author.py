# crud/author.py: author store
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Conflict, NotFound
from models import Author, Book
from schemas import AuthorCreate, AuthorUpdate

async def get_authors(db: AsyncSession, q: str = "") -> List[Author]:
    stmt = select(Author).order_by(Author.name, Author.id)
    if q:
        stmt = stmt.where(Author.name.ilike(f"%{q}%"))
    result = await db.execute(stmt)
    return result.scalars().all()

async def get_author(db: AsyncSession, author_id: int) -> Optional[Author]:
    result = await db.execute(select(Author).where(Author.id == author_id))
    return result.scalar_one_or_none()

async def create_author(db: AsyncSession, author_data: AuthorCreate) -> Author:
    new_author = Author(**author_data.model_dump())
    db.add(new_author)
    await db.commit()
    await db.refresh(new_author)
    return new_author

async def update_author(db: AsyncSession, author_id: int, author_data: AuthorUpdate) -> Author:
    author = await get_author(db, author_id)
    if author is None:
        raise NotFound("author", author_id)
    for field, value in author_data.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(author, field, value)
    await db.commit()
    await db.refresh(author)
    return author

async def delete_author(db: AsyncSession, author_id: int) -> None:
    """Delete an author who has no books left in the catalog."""
    author = await get_author(db, author_id)
    if author is None:
        raise NotFound("author", author_id)
    book_count = await db.scalar(select(func.count(Book.id)).where(Book.author_id == author_id))
    if book_count:
        raise Conflict("author", author_id, "author still has books", books=book_count)
    await db.delete(author)
    await db.commit()
