from datetime import timedelta

import pytest

from errors import AuthError, Conflict
from schemas import UserCreate
from services.auth import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    hash_password,
    register_user,
    user_from_token,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = hash_password("hunter22")
    assert hashed.startswith("pbkdf2_sha256$")
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert hash_password("hunter22") != hashed  # salted


def test_verify_rejects_garbage_hash():
    assert not verify_password("anything", "not-a-hash")
    assert not verify_password("anything", "md5$1$salt$abc")


def test_token_roundtrip():
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_token_is_rejected():
    token = create_access_token(42, expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthError):
        decode_access_token(token)


async def test_register_and_authenticate(db):
    user = await register_user(db, UserCreate(email="dana@example.com", name="Dana", password="pass1234"))

    assert (await authenticate_user(db, "DANA@example.com", "pass1234")).id == user.id
    with pytest.raises(AuthError):
        await authenticate_user(db, "dana@example.com", "wrong-pass")
    with pytest.raises(AuthError):
        await authenticate_user(db, "nobody@example.com", "pass1234")
    with pytest.raises(Conflict):
        await register_user(db, UserCreate(email="dana@example.com", name="Dana", password="pass1234"))


async def test_user_from_token(db, catalog):
    token = create_access_token(catalog.alice.id)
    assert (await user_from_token(db, token)).email == "alice@example.com"

    with pytest.raises(AuthError):
        await user_from_token(db, create_access_token(9999))
