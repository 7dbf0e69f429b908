"""Typed errors raised by the stores and the loan manager.

Each error carries structured detail (which entity, which id, why) so the
request layer can render its own message. None of them is retried here.
"""
from contextlib import contextmanager
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError


class LibraryError(Exception):
    code = "library_error"

    def __init__(self, entity: str, entity_id: Any = None, reason: Optional[str] = None, **context: Any):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        self.context = context
        super().__init__(self._describe())

    def _describe(self) -> str:
        target = self.entity if self.entity_id is None else f"{self.entity} {self.entity_id}"
        return f"{target}: {self.reason}" if self.reason else target

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "entity": self.entity, "id": self.entity_id, "reason": self.reason}
        payload.update(self.context)
        return payload


class NotFound(LibraryError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any = None, **context: Any):
        super().__init__(entity, entity_id, "not found", **context)


class Conflict(LibraryError):
    code = "conflict"


class InvalidState(LibraryError):
    code = "invalid_state"


class Unavailable(LibraryError):
    """A transient store fault; the caller decides whether to retry."""

    code = "unavailable"

    def __init__(self, operation: str, reason: Optional[str] = None):
        super().__init__("store", None, reason, operation=operation)


class AuthError(LibraryError):
    code = "not_authenticated"

    def __init__(self, reason: str = "invalid credentials"):
        super().__init__("auth", None, reason)


@contextmanager
def store_errors(operation: str):
    """Turn database faults other than integrity violations into ``Unavailable``."""
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        raise Unavailable(operation, str(exc.orig)) from exc
