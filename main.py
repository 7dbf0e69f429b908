# main.py: JSON API over the catalog and the borrowing lifecycle
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from crud.author import create_author, delete_author, get_author, get_authors, update_author
from crud.book import create_book, get_book, update_book
from database import get_db, init_db
from errors import AuthError, Conflict, InvalidState, LibraryError, NotFound, Unavailable
from logging_config import configure_logging
from models import User
from schemas import (
    AuthorCreate, AuthorOut, AuthorUpdate,
    BookCreate, BookOut, BookUpdate,
    BorrowRequest, ReturnRequest, LoanOut, LoanWithBookOut,
    LoginRequest, TokenOut, UserCreate, UserOut,
)
from services.auth import authenticate_user, create_access_token, register_user, user_from_token
from services.loan_manager import AVAILABLE, BORROWED, LoanManager

ERROR_STATUS = {
    NotFound: 404,
    Conflict: 409,
    InvalidState: 409,
    Unavailable: 503,
    AuthError: 401,
}

loan_manager = LoanManager()

def get_loan_manager() -> LoanManager:
    return loan_manager

bearer = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthError("authentication required")
    return await user_from_token(db, credentials.credentials)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    await init_db()
    logger.info("startup complete: {}", settings.app_name)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    if status >= 500:
        logger.bind(path=request.url.path).warning("store unavailable: {}", exc)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse({"detail": str(exc), **exc.to_dict()}, status_code=status, headers=headers)


@app.exception_handler(DBAPIError)
async def store_error_handler(request: Request, exc: DBAPIError):
    # store faults raised outside the loan manager, e.g. while resolving the current user
    if isinstance(exc, IntegrityError):
        error = Conflict("store", None, "integrity violation")
    else:
        error = Unavailable(f"{request.method} {request.url.path}", str(exc.orig))
    return await library_error_handler(request, error)


@app.get("/health")
async def health():
    return {"status": "ok"}

# ─────────────────────── AUTH ───────────────────────
@app.post("/auth/signup", response_model=UserOut, status_code=201)
async def register(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return await register_user(db, data)

@app.post("/auth/login", response_model=TokenOut)
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, data.email, data.password)
    return TokenOut(access_token=create_access_token(user.id), user=UserOut.model_validate(user))

@app.get("/auth/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user

# ─────────────────────── AUTHORS ───────────────────────
@app.get("/author", response_model=List[AuthorOut])
async def list_authors(q: str = "", db: AsyncSession = Depends(get_db)):
    return await get_authors(db, q)

@app.post("/author", response_model=AuthorOut, status_code=201)
async def add_author(data: AuthorCreate, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return await create_author(db, data)

@app.get("/author/{author_id}", response_model=AuthorOut)
async def read_author(author_id: int, db: AsyncSession = Depends(get_db)):
    author = await get_author(db, author_id)
    if not author:
        raise NotFound("author", author_id)
    return author

@app.patch("/author/{author_id}", response_model=AuthorOut)
async def edit_author(
    author_id: int,
    data: AuthorUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await update_author(db, author_id, data)

@app.delete("/author/{author_id}", status_code=204)
async def remove_author(author_id: int, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    await delete_author(db, author_id)

# ─────────────────────── BOOKS ───────────────────────
@app.get("/books", response_model=List[BookOut])
async def list_books(
    author_id: Optional[int] = Query(None, alias="authorId"),
    borrowed: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
):
    status = None if borrowed is None else (BORROWED if borrowed else AVAILABLE)
    entries = await manager.list_books(db, author_id=author_id, borrowed_status=status)
    return [BookOut.from_entry(entry.book, entry.borrowed) for entry in entries]

@app.post("/books", response_model=BookOut, status_code=201)
async def add_book(data: BookCreate, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    book = await create_book(db, data)
    return BookOut.from_entry(book, False)

@app.get("/books/{book_id}", response_model=BookOut)
async def read_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
):
    book = await get_book(db, book_id)
    if not book:
        raise NotFound("book", book_id)
    available = await manager.is_available(db, book_id)
    return BookOut.from_entry(book, not available)

@app.patch("/books/{book_id}", response_model=BookOut)
async def edit_book(
    book_id: int,
    data: BookUpdate,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
    user: User = Depends(get_current_user),
):
    book = await update_book(db, book_id, data)
    available = await manager.is_available(db, book_id)
    return BookOut.from_entry(book, not available)

@app.delete("/books/{book_id}", status_code=204)
async def remove_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
    user: User = Depends(get_current_user),
):
    await manager.delete_book(db, book_id)

# ─────────────────────── BORROWING ───────────────────────
@app.post("/borrowed-books/borrow", response_model=LoanOut, status_code=201)
async def borrow_book(
    data: BorrowRequest,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
    user: User = Depends(get_current_user),
):
    return await manager.borrow(db, data.book_id, user.id)

@app.post("/borrowed-books/return", response_model=LoanOut)
async def return_book(
    data: ReturnRequest,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
    user: User = Depends(get_current_user),
):
    return await manager.return_loan(db, data.borrowed_book_id, user_id=user.id)

@app.get("/borrowed-books/user/{user_id}", response_model=List[LoanWithBookOut])
async def user_loans(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    manager: LoanManager = Depends(get_loan_manager),
    user: User = Depends(get_current_user),
):
    if user.id != user_id:
        raise HTTPException(403, "Cannot view another user's borrowed books")
    return await manager.list_loans_for_user(db, user_id)
