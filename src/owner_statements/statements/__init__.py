"""Statement writer, incremental recomputer, batch importer and invoice merger."""

from owner_statements.statements.batch import BatchImporter
from owner_statements.statements.invoice import (
    InvoiceExpenseMerger,
    default_expense_date,
    merge_into_drafts,
)
from owner_statements.statements.recompute import (
    FIELD_KINDS,
    FieldKind,
    coerce_field_value,
    recalculate_statement_totals,
)
from owner_statements.statements.writer import StatementWriter

__all__ = [
    "BatchImporter",
    "FIELD_KINDS",
    "FieldKind",
    "InvoiceExpenseMerger",
    "StatementWriter",
    "coerce_field_value",
    "default_expense_date",
    "merge_into_drafts",
    "recalculate_statement_totals",
]
