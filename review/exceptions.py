# review/exceptions.py
"""
Error taxonomy for the review workflow.

Services raise these; views catch them at the initiating action and answer
`{"detail": ...}` with `status_code`. Store failures (Django DatabaseError,
RedisError from the change feed) are translated at the service boundary by
`translate_store_errors`.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import redis
from django.db import DatabaseError, OperationalError

# Driver messages meaning "gave up waiting on a database lock".
_TIMEOUT_MARKERS = ("database is locked", "statement timeout", "lock timeout")


class ReviewError(Exception):
    status_code = 400
    default_detail = "Request failed."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def as_payload(self) -> Dict[str, Any]:
        return {"detail": self.detail}


class AuthError(ReviewError):
    """Bad credentials, unapproved account, or an action the caller may not perform."""
    status_code = 401
    default_detail = "invalid credentials"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code


class PersistenceError(ReviewError):
    status_code = 503
    default_detail = "The store could not complete the request; retry later."


class StoreTimeout(PersistenceError):
    status_code = 504
    default_detail = "The store did not answer in time; retry later."


class BadRequest(ReviewError):
    status_code = 400
    default_detail = "Invalid request."


class NotFound(ReviewError):
    status_code = 404
    default_detail = "Not found."


class InvalidContent(BadRequest):
    status_code = 400
    default_detail = "Invalid exercise content."

    def __init__(self, errors: Optional[Dict[str, str]] = None, detail: Optional[str] = None):
        super().__init__(detail)
        self.errors = errors or {}

    def as_payload(self) -> Dict[str, Any]:
        payload = super().as_payload()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class LockDenied(ReviewError):
    """The editing lock is held by someone else (or not held by the caller)."""
    status_code = 409
    default_detail = "Exercise is being edited by another validator."

    def __init__(self, detail: Optional[str] = None, *, holder_id=None, holder_name=None, claimed_at=None):
        super().__init__(detail)
        self.holder_id = holder_id
        self.holder_name = holder_name
        self.claimed_at = claimed_at

    def as_payload(self) -> Dict[str, Any]:
        payload = super().as_payload()
        if self.holder_id is not None:
            payload["holder"] = {"id": self.holder_id, "full_name": self.holder_name}
            payload["claimed_at"] = self.claimed_at.isoformat() if self.claimed_at else None
        return payload


class Conflict(ReviewError):
    status_code = 409
    default_detail = "Exercise was modified by someone else; reload it before saving."

    def __init__(self, detail: Optional[str] = None, *, current_version: Optional[int] = None):
        super().__init__(detail)
        self.current_version = current_version

    def as_payload(self) -> Dict[str, Any]:
        payload = super().as_payload()
        if self.current_version is not None:
            payload["current_version"] = self.current_version
        return payload


def _is_timeout(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    """Re-raise Django database and Redis errors as PersistenceError / StoreTimeout."""
    try:
        yield
    except OperationalError as e:
        if _is_timeout(e):
            raise StoreTimeout(f"{action}: the store did not answer in time.") from e
        raise PersistenceError(f"{action} failed: {e}") from e
    except DatabaseError as e:
        raise PersistenceError(f"{action} failed: {e}") from e
    except redis.TimeoutError as e:
        raise StoreTimeout(f"{action}: the store did not answer in time.") from e
    except redis.RedisError as e:
        raise PersistenceError(f"{action} failed: {e}") from e
