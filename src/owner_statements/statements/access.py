"""Organization-scoped loading of statements and items."""

from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from owner_statements.db.models import OwnerStatement, Property, StatementState
from owner_statements.errors import ForbiddenError, NotFoundError


def load_statement(
    session: Session,
    org_id: str,
    statement_id: str,
    require_live: bool = True,
) -> OwnerStatement:
    """Load a statement the caller's organization owns.

    Raises:
        NotFoundError: If it does not exist, or is tombstoned and ``require_live``.
        ForbiddenError: If it belongs to another organization.
    """
    statement = session.get(OwnerStatement, statement_id)
    if statement is None:
        raise NotFoundError(f"Owner statement {statement_id} not found")
    if statement.organization_id != org_id:
        raise ForbiddenError(f"Owner statement {statement_id} belongs to another organization")
    if require_live and statement.state is StatementState.TOMBSTONED:
        raise NotFoundError(f"Owner statement {statement_id} has been deleted")
    return statement


def load_org_properties(session: Session, org_id: str, property_ids: list[str]) -> dict[str, Property]:
    """Return the live properties among ``property_ids`` owned by the organization."""
    if not property_ids:
        return {}
    rows = (
        session.query(Property)
        .filter(
            Property.id.in_(property_ids),
            Property.organization_id == org_id,
            Property.deleted_at.is_(None),
        )
        .all()
    )
    return {row.id: row for row in rows}


def live_statements_for_month(session: Session, org_id: str, month: date) -> list[OwnerStatement]:
    """Live statements of an organization for one statement month."""
    return (
        session.query(OwnerStatement)
        .filter(
            OwnerStatement.organization_id == org_id,
            OwnerStatement.statement_month == month,
            OwnerStatement.deleted_at.is_(None),
        )
        .order_by(OwnerStatement.created_at)
        .all()
    )


@dataclass(frozen=True)
class StatementRef:
    """Detached identity of a live statement, usable after its session closes."""

    statement_id: str
    property_id: str
    property_name: str


def statement_refs_for_month(session: Session, org_id: str, month: date) -> list[StatementRef]:
    return [
        StatementRef(statement.id, statement.property_id, statement.property_name)
        for statement in live_statements_for_month(session, org_id, month)
    ]
