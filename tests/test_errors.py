import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from errors import Conflict, NotFound, Unavailable, store_errors


def test_store_errors_turns_database_faults_into_unavailable():
    with pytest.raises(Unavailable) as excinfo:
        with store_errors("borrow"):
            raise DBAPIError("SELECT 1", {}, Exception("disk I/O error"))

    error = excinfo.value
    assert error.reason == "disk I/O error"
    assert error.to_dict() == {
        "code": "unavailable",
        "entity": "store",
        "id": None,
        "reason": "disk I/O error",
        "operation": "borrow",
    }
    assert isinstance(error.__cause__, DBAPIError)


def test_store_errors_covers_operational_errors():
    with pytest.raises(Unavailable):
        with store_errors("list_books"):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_store_errors_leaves_integrity_errors_alone():
    with pytest.raises(IntegrityError):
        with store_errors("borrow"):
            raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))


def test_store_errors_leaves_library_errors_alone():
    with pytest.raises(NotFound):
        with store_errors("borrow"):
            raise NotFound("book", 7)


def test_error_messages():
    assert str(NotFound("book", 7)) == "book 7: not found"
    assert str(Conflict("book", 7, "book currently on loan")) == "book 7: book currently on loan"
    assert str(Unavailable("borrow", "db down")) == "store: db down"
