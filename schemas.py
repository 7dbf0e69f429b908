from datetime import date, datetime
from typing import Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from services.isbn_utils import normalize_isbn

# Requests accept camelCase or snake_case; responses are camelCase.
INPUT_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)
OUTPUT_CONFIG = ConfigDict(from_attributes=True, alias_generator=AliasGenerator(serialization_alias=to_camel))


# ── users / auth ──────────────────────────────────────────────
class UserCreate(BaseModel):
    model_config = INPUT_CONFIG

    email: EmailStr
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    model_config = OUTPUT_CONFIG

    id: int
    email: str
    name: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# ── authors ───────────────────────────────────────────────────
class AuthorBase(BaseModel):
    model_config = INPUT_CONFIG

    name: str = Field(min_length=1, max_length=255)
    biography: Optional[str] = None
    nationality: Optional[str] = None
    birth_date: Optional[date] = None


class AuthorCreate(AuthorBase):
    pass


class AuthorUpdate(BaseModel):
    model_config = INPUT_CONFIG

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    biography: Optional[str] = None
    nationality: Optional[str] = None
    birth_date: Optional[date] = None


class AuthorOut(BaseModel):
    model_config = OUTPUT_CONFIG

    id: int
    name: str
    biography: Optional[str] = None
    nationality: Optional[str] = None
    birth_date: Optional[date] = None


# ── books ─────────────────────────────────────────────────────
class BookBase(BaseModel):
    model_config = INPUT_CONFIG

    title: str = Field(min_length=1, max_length=255)
    isbn: str
    description: Optional[str] = None
    genre: Optional[str] = None
    published_at: Optional[date] = None
    author_id: int

    @field_validator("isbn")
    @classmethod
    def _normalize_isbn(cls, value: str) -> str:
        return normalize_isbn(value)


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    model_config = INPUT_CONFIG

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    isbn: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    published_at: Optional[date] = None
    author_id: Optional[int] = None

    @field_validator("isbn")
    @classmethod
    def _normalize_isbn(cls, value: Optional[str]) -> Optional[str]:
        return normalize_isbn(value) if value is not None else None


class BookOut(BaseModel):
    model_config = OUTPUT_CONFIG

    id: int
    title: str
    isbn: str
    description: Optional[str] = None
    genre: Optional[str] = None
    published_at: Optional[date] = None
    author_id: int
    author: Optional[AuthorOut] = None
    borrowed: Optional[bool] = None

    @classmethod
    def from_entry(cls, book, borrowed: bool) -> "BookOut":
        return cls.model_validate(book).model_copy(update={"borrowed": borrowed})


# ── loans ─────────────────────────────────────────────────────
class BorrowRequest(BaseModel):
    model_config = INPUT_CONFIG

    book_id: int


class ReturnRequest(BaseModel):
    model_config = INPUT_CONFIG

    borrowed_book_id: int


class LoanOut(BaseModel):
    model_config = OUTPUT_CONFIG

    id: int
    book_id: int
    user_id: int
    borrowed_at: datetime
    due_at: datetime = Field(serialization_alias="dueDate")
    returned_at: Optional[datetime] = None
    status: str


class LoanWithBookOut(LoanOut):
    book: Optional[BookOut] = None
