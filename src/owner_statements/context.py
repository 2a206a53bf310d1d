"""Caller context resolved upstream by the authentication layer."""

from dataclasses import dataclass

from owner_statements.errors import UnauthorizedError


@dataclass(frozen=True)
class CallerContext:
    """Organization and user on whose behalf an operation runs."""

    org_id: str | None
    user_id: str | None

    def require(self) -> tuple[str, str]:
        """Return ``(org_id, user_id)`` or raise if either is missing."""
        if not self.org_id:
            raise UnauthorizedError("No organization selected")
        if not self.user_id:
            raise UnauthorizedError("No user associated with this request")
        return self.org_id, self.user_id
