# models.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC now; SQLite drops tzinfo, so every timestamp is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    loans = relationship("BorrowedBook", back_populates="user")


class Author(Base):
    __tablename__ = "authors"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    biography = Column(Text, nullable=True)
    nationality = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    books = relationship("Book", back_populates="author")


class Book(Base):
    __tablename__ = "books"
    # ids are never reused, so a deleted book never shares an id with a new one
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False, index=True)
    isbn = Column(String(13), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    genre = Column(String(100), nullable=True)
    published_at = Column(Date, nullable=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    author = relationship("Author", back_populates="books")
    loans = relationship("BorrowedBook", back_populates="book", passive_deletes=True)


class BorrowedBook(Base):
    """One loan of one book to one user. Active while ``returned_at`` is NULL."""

    __tablename__ = "borrowed_books"
    __table_args__ = (
        # At most one active loan per book.
        Index(
            "uq_borrowed_books_active_book",
            "book_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    borrowed_at = Column(DateTime, nullable=False)
    due_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="loans")
    user = relationship("User", back_populates="loans")

    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    @property
    def status(self) -> str:
        return "ACTIVE" if self.returned_at is None else "RETURNED"
