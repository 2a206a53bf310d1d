"""Statement writer: reads, full writes, soft delete and single-item changes.

Full writes (create/update) trust nothing the caller computed: the supplied
totals are checked against the supplied items before a transaction opens.
Single-item changes go through the incremental recomputer so the stored
summary always matches the items.
"""

from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy.orm import Session

from owner_statements.context import CallerContext
from owner_statements.db import (
    OwnerStatement,
    Property,
    StatementAdjustment,
    StatementExpense,
    StatementIncome,
    StatementState,
    Store,
)
from owner_statements.db.models import utcnow
from owner_statements.errors import NotFoundError, StateError, ValidationError
from owner_statements.money import verify_totals
from owner_statements.schemas import (
    AdjustmentInput,
    CreateStatementInput,
    ExpenseInput,
    FieldEdit,
    GetManyInput,
    IncomeInput,
    NewItem,
    RemoveItemInput,
    Section,
    UpdateStatementInput,
)
from owner_statements.statements.access import load_statement
from owner_statements.statements.recompute import (
    ITEM_MODELS,
    apply_field_edit,
    load_item,
    recalculate_statement_totals,
)

logger = structlog.get_logger(__name__)


def build_line_items(
    incomes: Iterable[IncomeInput],
    expenses: Iterable[ExpenseInput],
    adjustments: Iterable[AdjustmentInput],
) -> tuple[list[StatementIncome], list[StatementExpense], list[StatementAdjustment]]:
    """Turn validated item inputs into unsaved ORM rows."""
    return (
        [StatementIncome(**item.model_dump()) for item in incomes],
        [StatementExpense(**item.model_dump()) for item in expenses],
        [StatementAdjustment(**item.model_dump()) for item in adjustments],
    )


def require_org_property(session: Session, org_id: str, property_id: str) -> Property:
    """Load a live property of the organization, or reject the request."""
    prop = session.get(Property, property_id)
    if prop is None or prop.organization_id != org_id or prop.deleted_at is not None:
        raise ValidationError(f"Property {property_id} not found in this organization")
    return prop


class StatementWriter:
    """CRUD operations on owner statements for one caller."""

    def __init__(self, store: Store, context: CallerContext):
        self._store = store
        self._context = context
        self._logger = logger.bind(component="statement_writer")

    # === Reads ===

    def get_many(self, query: GetManyInput) -> list[dict[str, Any]]:
        """Live statement summaries of the caller's organization, newest month first."""
        org_id, _ = self._context.require()
        with self._store.read() as session:
            q = session.query(OwnerStatement).filter(
                OwnerStatement.organization_id == org_id,
                OwnerStatement.deleted_at.is_(None),
            )
            if query.property_id:
                q = q.filter(OwnerStatement.property_id == query.property_id)
            if query.month:
                q = q.filter(OwnerStatement.statement_month == query.month)
            statements = q.order_by(
                OwnerStatement.statement_month.desc(), OwnerStatement.created_at.desc()
            ).all()
            return [statement.summary_dict() for statement in statements]

    def get_one(self, statement_id: str) -> dict[str, Any]:
        org_id, _ = self._context.require()
        with self._store.read() as session:
            return load_statement(session, org_id, statement_id).to_dict()

    # === Full writes ===

    def create(self, data: CreateStatementInput) -> dict[str, Any]:
        """Create a statement with its items after checking the supplied totals."""
        org_id, user_id = self._context.require()
        totals = verify_totals(data.totals, data.incomes, data.expenses, data.adjustments)

        with self._store.transaction() as session:
            prop = require_org_property(session, org_id, data.property_id)
            existing = (
                session.query(OwnerStatement.id)
                .filter(
                    OwnerStatement.organization_id == org_id,
                    OwnerStatement.property_id == prop.id,
                    OwnerStatement.statement_month == data.statement_month,
                    OwnerStatement.deleted_at.is_(None),
                )
                .count()
            )

            incomes, expenses, adjustments = build_line_items(
                data.incomes, data.expenses, data.adjustments
            )
            statement = OwnerStatement(
                organization_id=org_id,
                property_id=prop.id,
                statement_month=data.statement_month,
                notes=data.notes,
                created_by=user_id,
                updated_by=user_id,
                incomes=incomes,
                expenses=expenses,
                adjustments=adjustments,
                **totals.as_dict(),
            )
            statement.rental_property = prop
            session.add(statement)
            session.flush()

            if existing:
                self._logger.warning(
                    "duplicate_live_statement",
                    property_id=prop.id,
                    statement_month=data.statement_month.isoformat(),
                    existing_count=existing,
                )
            result = statement.to_dict()

        self._logger.info(
            "statement_created",
            statement_id=result["id"],
            property_id=data.property_id,
            grand_total=result["grand_total"],
        )
        return result

    def update(self, data: UpdateStatementInput) -> dict[str, Any]:
        """Replace all items and summary fields of a statement."""
        org_id, user_id = self._context.require()

        with self._store.transaction() as session:
            statement = load_statement(session, org_id, data.id)
            totals = verify_totals(data.totals, data.incomes, data.expenses, data.adjustments)

            incomes, expenses, adjustments = build_line_items(
                data.incomes, data.expenses, data.adjustments
            )
            statement.incomes = incomes
            statement.expenses = expenses
            statement.adjustments = adjustments
            if data.notes is not None:
                statement.notes = data.notes
            for name, value in totals.as_dict().items():
                setattr(statement, name, value)
            statement.updated_at = utcnow()
            statement.updated_by = user_id
            session.flush()
            result = statement.to_dict()

        self._logger.info("statement_updated", statement_id=data.id, grand_total=result["grand_total"])
        return result

    def delete(self, statement_id: str) -> dict[str, Any]:
        """Tombstone a live statement.

        Raises:
            StateError: If the statement is already tombstoned.
        """
        org_id, user_id = self._context.require()

        with self._store.transaction() as session:
            statement = load_statement(session, org_id, statement_id, require_live=False)
            if statement.state is StatementState.TOMBSTONED:
                raise StateError(f"Owner statement {statement_id} is already deleted")
            statement.deleted_at = utcnow()
            statement.updated_at = statement.deleted_at
            statement.updated_by = user_id

        self._logger.info("statement_deleted", statement_id=statement_id)
        return {"success": True}

    # === Single-item changes ===

    def update_item_field(self, edit: FieldEdit) -> dict[str, Any]:
        """Edit one field of one item and return the recomputed statement."""
        org_id, user_id = self._context.require()

        with self._store.transaction() as session:
            item = load_item(session, Section(edit.section), edit.item_id)
            statement = load_statement(session, org_id, item.statement_id)
            apply_field_edit(session, statement, item, edit, user_id)
            return statement.to_dict()

    def add_item(self, new_item: NewItem) -> dict[str, Any]:
        """Append one item to a statement and return the recomputed statement."""
        org_id, user_id = self._context.require()
        section = Section(new_item.section)
        model = ITEM_MODELS[section]

        with self._store.transaction() as session:
            statement = load_statement(session, org_id, new_item.statement_id)
            item = model(statement_id=statement.id, **new_item.item.model_dump())
            session.add(item)
            recalculate_statement_totals(session, statement, user_id)
            result = statement.to_dict()

        self._logger.info(
            "item_added", statement_id=new_item.statement_id, section=section.value, item_id=item.id
        )
        return result

    def remove_item(self, data: RemoveItemInput) -> dict[str, Any]:
        """Delete one item from a statement and return the recomputed statement."""
        org_id, user_id = self._context.require()

        with self._store.transaction() as session:
            statement = load_statement(session, org_id, data.statement_id)
            item = load_item(session, data.section, data.item_id)
            if item.statement_id != statement.id:
                raise NotFoundError(
                    f"Item {data.item_id} does not belong to owner statement {data.statement_id}"
                )
            session.delete(item)
            recalculate_statement_totals(session, statement, user_id)
            result = statement.to_dict()

        self._logger.info(
            "item_removed", statement_id=data.statement_id, section=data.section.value, item_id=data.item_id
        )
        return result
