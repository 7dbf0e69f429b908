# seed.py – one-shot script that loads demo users, authors and books
import asyncio
from datetime import date

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crud.author import create_author, get_authors
from crud.book import create_book, find_book_by_isbn
from crud.user import create_user, get_user_by_email
from database import AsyncSessionLocal, init_db
from schemas import AuthorCreate, BookCreate
from services.auth import hash_password

DEMO_PASSWORD = "password123"

USERS = [
    ("john@example.com", "John Doe"),
    ("jane@example.com", "Jane Doe"),
]

AUTHORS = [
    AuthorCreate(
        name="J.K. Rowling",
        biography="British author, best known for the Harry Potter series.",
        nationality="British",
        birth_date=date(1965, 7, 31),
    ),
    AuthorCreate(
        name="George R.R. Martin",
        biography="American novelist and short story writer.",
        nationality="American",
        birth_date=date(1948, 9, 20),
    ),
]

# (author name, book fields)
BOOKS = [
    ("J.K. Rowling", dict(
        title="Harry Potter and the Philosopher's Stone",
        isbn="978-0747532743",
        description="The first novel in the Harry Potter series.",
        published_at=date(1997, 6, 26),
        genre="Fantasy",
    )),
    ("George R.R. Martin", dict(
        title="A Game of Thrones",
        isbn="978-0553103540",
        description="The first novel in A Song of Ice and Fire.",
        published_at=date(1996, 8, 1),
        genre="Fantasy",
    )),
]


async def seed(db: AsyncSession) -> None:
    for email, name in USERS:
        if not await get_user_by_email(db, email):
            await create_user(db, email, name, hash_password(DEMO_PASSWORD))
            logger.info("Added user {}", email)

    authors = {a.name: a for a in await get_authors(db)}
    for author_data in AUTHORS:
        if author_data.name not in authors:
            authors[author_data.name] = await create_author(db, author_data)
            logger.info("Added author {}", author_data.name)

    for author_name, fields in BOOKS:
        book_data = BookCreate(author_id=authors[author_name].id, **fields)
        if await find_book_by_isbn(db, book_data.isbn):
            logger.info("Book {} already present", book_data.isbn)
            continue
        await create_book(db, book_data)
        logger.info("Added book {}", book_data.title)


async def main() -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        await seed(session)
    logger.info("Seeding complete!")


if __name__ == "__main__":
    asyncio.run(main())
