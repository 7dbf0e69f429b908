# crud/user.py: user store
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Conflict
from models import User

async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()

async def create_user(db: AsyncSession, email: str, name: str, password_hash: str) -> User:
    if await get_user_by_email(db, email):
        raise Conflict("user", None, "email already registered", email=email)
    new_user = User(email=email.lower(), name=name, password_hash=password_hash)
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("user", None, "email already registered", email=email) from exc
    await db.refresh(new_user)
    return new_user
