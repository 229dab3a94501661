"""
memeboard.errors — Error taxonomy
==================================

Every failure a caller can act on maps to one of these classes.  Services
raise them; the API turns them into JSON responses with the matching HTTP
status, and :mod:`memeboard.client` turns those responses back into the
same classes.
"""

from __future__ import annotations


class MemeboardError(Exception):
    """Base class for all user-facing failures."""

    status_code: int = 500
    kind: str = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "error": self.kind}


class ValidationError(MemeboardError):
    """Bad input: oversized upload, empty comment, invalid username…"""

    status_code = 400
    kind = "validation"


class UnauthorizedError(MemeboardError):
    """The acting user does not own the record being mutated."""

    status_code = 403
    kind = "unauthorized"


class NotFoundError(MemeboardError):
    """The record vanished between read and mutate (or never existed)."""

    status_code = 404
    kind = "not_found"


class ConflictError(MemeboardError):
    """Duplicate unique key, e.g. liking the same post twice."""

    status_code = 409
    kind = "conflict"


class TransientError(MemeboardError):
    """The database or the API is unreachable; the user may retry."""

    status_code = 503
    kind = "transient"


ERRORS_BY_STATUS: dict[int, type[MemeboardError]] = {
    cls.status_code: cls
    for cls in (ValidationError, UnauthorizedError, NotFoundError, ConflictError, TransientError)
}
