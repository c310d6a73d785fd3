"""
Error taxonomy shared by the engines, the admin callables and the HTTP layer.

Every error carries a machine-readable ``kind`` (the callable error codes the
web client already understands) and a human message.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class OfficeHubError(Exception):
    kind = "internal"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "field": self.field}


class ValidationError(OfficeHubError):
    kind = "invalid-argument"


class AuthenticationError(OfficeHubError):
    kind = "unauthenticated"


class AuthorizationError(OfficeHubError):
    kind = "permission-denied"


class NotFoundError(OfficeHubError):
    kind = "not-found"


class StateError(OfficeHubError):
    """Operation is not valid for the record's current lifecycle state."""

    kind = "failed-precondition"


class ConflictError(OfficeHubError):
    """Optimistic write lost the race too many times."""

    kind = "aborted"


class InternalError(OfficeHubError):
    kind = "internal"


HTTP_STATUS = {
    "invalid-argument": 400,
    "unauthenticated": 401,
    "permission-denied": 403,
    "not-found": 404,
    "failed-precondition": 409,
    "aborted": 409,
    "internal": 500,
}
