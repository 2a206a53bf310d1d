"""Error taxonomy for owner statement operations.

Every rejection carries a specific message (which property, row, date or
amount caused it) and a transport code mirroring the RPC layer's codes.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Transport-level error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class StatementError(Exception):
    """Base exception for owner statement operations."""

    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for the transport layer."""
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class UnauthorizedError(StatementError):
    """Caller has no resolvable organization context."""

    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(StatementError):
    """Resource belongs to a different organization."""

    code = ErrorCode.FORBIDDEN


class NotFoundError(StatementError):
    """Referenced statement or item does not exist (or is tombstoned)."""

    code = ErrorCode.NOT_FOUND


class BadRequestError(StatementError):
    """Request rejected before any write took place."""

    code = ErrorCode.BAD_REQUEST
    kind = "validation"

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["kind"] = self.kind
        return payload


class ConsistencyError(BadRequestError):
    """Caller-supplied totals disagree with the recomputed aggregates."""

    kind = "consistency"


class ValidationError(BadRequestError):
    """Malformed or out-of-range input."""

    kind = "validation"


class StateError(BadRequestError):
    """Nothing to do, or the operation was already performed."""

    kind = "state"


class InternalError(StatementError):
    """Upstream extraction model unavailable or produced unusable output."""

    code = ErrorCode.INTERNAL_SERVER_ERROR
