import os
from dataclasses import dataclass
from datetime import datetime, timedelta

# Must be set before config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crud.author import create_author
from crud.book import create_book
from crud.user import create_user
from database import get_db, init_db, make_engine, make_sessionmaker
from main import app, get_loan_manager
from schemas import AuthorCreate, BookCreate
from services.auth import hash_password
from services.loan_manager import LoanManager

T0 = datetime(2024, 3, 1, 9, 0, 0)
PASSWORD = "secret123"

DUNE_ISBN = "9780441172719"
HOBBIT_ISBN = "9780547928227"
NEUROMANCER_ISBN = "9780441569595"


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class Catalog:
    alice: object
    bob: object
    herbert: object
    tolkien: object
    dune: object
    hobbit: object


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so concurrent sessions really use separate connections.
    test_engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'library_test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return LoanManager(loan_period=timedelta(days=14), clock=clock)


@pytest_asyncio.fixture
async def catalog(db):
    alice = await create_user(db, "alice@example.com", "Alice", hash_password(PASSWORD))
    bob = await create_user(db, "bob@example.com", "Bob", hash_password(PASSWORD))
    herbert = await create_author(db, AuthorCreate(name="Frank Herbert", nationality="American"))
    tolkien = await create_author(db, AuthorCreate(name="J.R.R. Tolkien", nationality="British"))
    dune = await create_book(db, BookCreate(title="Dune", isbn=DUNE_ISBN, genre="Science Fiction", author_id=herbert.id))
    hobbit = await create_book(db, BookCreate(title="The Hobbit", isbn=HOBBIT_ISBN, genre="Fantasy", author_id=tolkien.id))
    return Catalog(alice=alice, bob=bob, herbert=herbert, tolkien=tolkien, dune=dune, hobbit=hobbit)


@pytest_asyncio.fixture
async def client(session_factory, manager):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_loan_manager] = lambda: manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


async def auth_headers(client, email: str, password: str = PASSWORD) -> dict:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
