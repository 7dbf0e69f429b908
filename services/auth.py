"""Authentication helpers: password hashing, registration, login and tokens.

Passwords are stored as salted PBKDF2-SHA256 hashes in the form
``pbkdf2_sha256$<iterations>$<salt>$<hash>``. Access tokens are JWTs whose
``sub`` claim is the user id. The loan manager never sees a token, only the
user id resolved from it.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from crud.user import create_user, get_user, get_user_by_email
from errors import AuthError
from models import User
from schemas import UserCreate

HASH_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    iterations = iterations or settings.password_hash_iterations
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{HASH_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": str(user_id), "exp": expire}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """Return the user id carried by ``token`` or raise AuthError."""
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return int(claims["sub"])
    except (JWTError, KeyError, ValueError) as exc:
        raise AuthError("invalid or expired token") from exc


async def register_user(db: AsyncSession, data: UserCreate) -> User:
    user = await create_user(db, data.email, data.name, hash_password(data.password))
    logger.bind(user_id=user.id).info("user.registered")
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login.failed")
        raise AuthError("invalid credentials")
    return user


async def user_from_token(db: AsyncSession, token: str) -> User:
    user = await get_user(db, decode_access_token(token))
    if user is None:
        raise AuthError("unknown user")
    return user
