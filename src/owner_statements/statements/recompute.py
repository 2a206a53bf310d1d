"""Incremental recomputation of statement totals.

Any single-item change (field edit, add, delete) is applied, then every
sibling item is re-read and the summary fields rewritten, all in the session
of one transaction. Readers therefore never see a statement whose totals
disagree with its items.
"""

import math
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.orm import Session

from owner_statements.dates import parse_date
from owner_statements.db.models import (
    OwnerStatement,
    StatementAdjustment,
    StatementExpense,
    StatementIncome,
    utcnow,
)
from owner_statements.errors import NotFoundError, ValidationError
from owner_statements.money import StatementTotals, aggregate, to_item_amount
from owner_statements.schemas import FieldEdit, Section

logger = structlog.get_logger(__name__)


class FieldKind(str, Enum):
    """Acceptance rule for an editable item field."""

    TEXT = "text"
    DATE = "date"
    OPTIONAL_DATE = "optional_date"
    INTEGER = "integer"
    CURRENCY = "currency"


FIELD_KINDS: dict[tuple[Section, str], FieldKind] = {
    (Section.INCOMES, "check_in"): FieldKind.DATE,
    (Section.INCOMES, "check_out"): FieldKind.DATE,
    (Section.INCOMES, "days"): FieldKind.INTEGER,
    (Section.INCOMES, "platform"): FieldKind.TEXT,
    (Section.INCOMES, "guest"): FieldKind.TEXT,
    (Section.INCOMES, "gross_revenue"): FieldKind.CURRENCY,
    (Section.INCOMES, "host_fee"): FieldKind.CURRENCY,
    (Section.INCOMES, "platform_fee"): FieldKind.CURRENCY,
    (Section.INCOMES, "gross_income"): FieldKind.CURRENCY,
    (Section.EXPENSES, "date"): FieldKind.DATE,
    (Section.EXPENSES, "description"): FieldKind.TEXT,
    (Section.EXPENSES, "vendor"): FieldKind.TEXT,
    (Section.EXPENSES, "amount"): FieldKind.CURRENCY,
    (Section.ADJUSTMENTS, "check_in"): FieldKind.OPTIONAL_DATE,
    (Section.ADJUSTMENTS, "check_out"): FieldKind.OPTIONAL_DATE,
    (Section.ADJUSTMENTS, "description"): FieldKind.TEXT,
    (Section.ADJUSTMENTS, "amount"): FieldKind.CURRENCY,
}

ITEM_MODELS: dict[Section, type[StatementIncome | StatementExpense | StatementAdjustment]] = {
    Section.INCOMES: StatementIncome,
    Section.EXPENSES: StatementExpense,
    Section.ADJUSTMENTS: StatementAdjustment,
}


def coerce_field_value(section: Section, field: str, value: Any) -> Any:
    """Validate an edited value against the field type table.

    Raises:
        ValidationError: If the value has the wrong shape for the field.
    """
    kind = FIELD_KINDS.get((section, field))
    if kind is None:
        raise ValidationError(f"Field '{field}' cannot be edited on {section.value}")

    label = f"{section.value}.{field}"

    if kind is FieldKind.TEXT:
        if not isinstance(value, str):
            raise ValidationError(f"{label} must be text, got {type(value).__name__}")
        return value.strip()

    if kind is FieldKind.INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{label} must be a whole number, got {value!r}")
        if value < 0:
            raise ValidationError(f"{label} cannot be negative, got {value}")
        return value

    if kind is FieldKind.CURRENCY:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
            raise ValidationError(f"{label} must be a number, got {value!r}")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError(f"{label} must be a finite number, got {value!r}")
        try:
            return to_item_amount(value)
        except ValueError as e:
            raise ValidationError(f"{label}: {e}") from e

    if kind is FieldKind.OPTIONAL_DATE and (value is None or value == ""):
        return None

    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a date string, got {value!r}")
    try:
        return parse_date(value)
    except ValueError as e:
        raise ValidationError(f"{label}: {e}") from e


def recalculate_statement_totals(
    session: Session,
    statement: OwnerStatement,
    user_id: str,
) -> StatementTotals:
    """Re-read every item of a statement and rewrite its summary fields.

    Must run in the same session (transaction) as the item change it follows.
    """
    session.flush()

    incomes = (
        session.query(StatementIncome)
        .filter_by(statement_id=statement.id)
        .order_by(StatementIncome.id)
        .all()
    )
    expenses = (
        session.query(StatementExpense)
        .filter_by(statement_id=statement.id)
        .order_by(StatementExpense.id)
        .all()
    )
    adjustments = (
        session.query(StatementAdjustment)
        .filter_by(statement_id=statement.id)
        .order_by(StatementAdjustment.id)
        .all()
    )

    totals = aggregate(incomes, expenses, adjustments)
    statement.total_income = totals.total_income
    statement.total_expenses = totals.total_expenses
    statement.total_adjustments = totals.total_adjustments
    statement.grand_total = totals.grand_total
    statement.updated_at = utcnow()
    statement.updated_by = user_id
    session.flush()

    # Items may have been added or removed behind the relationship collections
    session.expire(statement, ["incomes", "expenses", "adjustments"])

    logger.debug(
        "statement_totals_recalculated",
        statement_id=statement.id,
        income_items=len(incomes),
        expense_items=len(expenses),
        adjustment_items=len(adjustments),
        grand_total=str(totals.grand_total),
    )
    return totals


def load_item(
    session: Session,
    section: Section,
    item_id: int,
) -> StatementIncome | StatementExpense | StatementAdjustment:
    """Load a line item by section and id.

    Raises:
        NotFoundError: If no such item exists.
    """
    model = ITEM_MODELS[section]
    item = session.get(model, item_id)
    if item is None:
        raise NotFoundError(f"{section.value[:-1].capitalize()} item {item_id} not found")
    return item


def apply_field_edit(
    session: Session,
    statement: OwnerStatement,
    item: StatementIncome | StatementExpense | StatementAdjustment,
    edit: FieldEdit,
    user_id: str,
) -> StatementTotals:
    """Apply a validated field edit to an item, then recompute its statement."""
    section = Section(edit.section)
    value = coerce_field_value(section, edit.field.value, edit.value)
    setattr(item, edit.field.value, value)

    logger.info(
        "item_field_updated",
        statement_id=statement.id,
        section=section.value,
        item_id=item.id,
        field=edit.field.value,
    )
    return recalculate_statement_totals(session, statement, user_id)
