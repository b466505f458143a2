"""
Domain error taxonomy.

Every error raised by the membership store, the ledger and the gateway is a
CollabError. The API layer renders them with a single exception handler, so
services never deal with HTTP status codes directly.
"""
from typing import Any, Dict, Optional


class CollabError(Exception):
    """Base class for all collaboration-core errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(CollabError):
    """Trip, member, expense or notification absent."""
    status_code = 404
    code = "not_found"


class Forbidden(CollabError):
    """Permission denied, including the owner-protection rule."""
    status_code = 403
    code = "forbidden"


class InvalidInput(CollabError):
    """Malformed amount, empty split set, bad split shape."""
    status_code = 400
    code = "invalid_input"


class InvalidRole(InvalidInput):
    code = "invalid_role"


class SplitMismatch(CollabError):
    """Split amounts or percentages do not add up."""
    status_code = 422
    code = "split_mismatch"


class DuplicateOwner(CollabError):
    status_code = 409
    code = "duplicate_owner"


class CannotRemoveOwner(CollabError):
    status_code = 409
    code = "cannot_remove_owner"


class UnknownMember(CollabError):
    """A split or payer references someone who is not a member of the trip."""
    status_code = 422
    code = "unknown_member"


class Conflict(CollabError):
    """Concurrent-write contention on the same trip. Safe to retry."""
    status_code = 409
    code = "conflict"


class Unavailable(CollabError):
    """Notification transport is down."""
    status_code = 503
    code = "unavailable"


class AuthError(CollabError):
    """Bearer credential missing or rejected by the identity provider."""
    status_code = 401
    code = "unauthorized"
