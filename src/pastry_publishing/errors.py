"""
# Governance Errors

Exception hierarchy for the governance core. Every failure raised by a service carries a
taxonomy `kind` and the HTTP `status_code` the boundary layer should answer with.

| Exception | kind | HTTP |
|-----------|------|------|
| `UnauthorizedError` | Unauthorized | 401 |
| `ForbiddenError` | Forbidden | 403 |
| `NotFoundError` | NotFound | 404 |
| `InvalidArgumentError` | InvalidArgument | 400 |
| `ConflictError` | Conflict | 409 |
| `PreconditionFailedError` | PreconditionFailed | 412 |
| `StorageTimeoutError` | DeadlineExceeded | 504 |
| `StorageUnavailableError` | Unavailable | 503 |

Visibility failures are raised as `NotFoundError` so hidden content is indistinguishable
from absent content.
"""

from typing import Any, Dict, Optional


class GovernanceError(Exception):
    """Base class for all governance failures."""

    kind: str = "Internal"
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class UnauthorizedError(GovernanceError):
    kind = "Unauthorized"
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(GovernanceError):
    kind = "Forbidden"
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(GovernanceError):
    kind = "NotFound"
    status_code = 404
    default_message = "Resource not found"


class InvalidArgumentError(GovernanceError):
    kind = "InvalidArgument"
    status_code = 400
    default_message = "Invalid argument"


class ConflictError(GovernanceError):
    kind = "Conflict"
    status_code = 409
    default_message = "Resource already exists"


class PreconditionFailedError(GovernanceError):
    kind = "PreconditionFailed"
    status_code = 412
    default_message = "Operation not allowed in the current state"


class StorageTimeoutError(GovernanceError):
    kind = "DeadlineExceeded"
    status_code = 504
    default_message = "Storage operation timed out"


class StorageUnavailableError(GovernanceError):
    kind = "Unavailable"
    status_code = 503
    default_message = "Storage operation failed"
