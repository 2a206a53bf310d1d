"""Persistence layer: ORM models and the transactional store."""

from owner_statements.db.models import (
    Base,
    OwnerStatement,
    Property,
    StatementAdjustment,
    StatementExpense,
    StatementIncome,
    StatementState,
)
from owner_statements.db.store import Store, TransactionTimeoutError

__all__ = [
    "Base",
    "OwnerStatement",
    "Property",
    "StatementAdjustment",
    "StatementExpense",
    "StatementIncome",
    "StatementState",
    "Store",
    "TransactionTimeoutError",
]
