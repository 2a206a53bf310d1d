"""Owner Statements - reconciliation engine for property owner statements."""

__version__ = "0.1.0"

from owner_statements.api import StatementRouter
from owner_statements.clients import ExtractionError, GeminiInvoiceExtractor, InvoiceExtractor
from owner_statements.config import configure_logging, get_settings
from owner_statements.context import CallerContext
from owner_statements.db import Store, TransactionTimeoutError
from owner_statements.errors import (
    BadRequestError,
    ConsistencyError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    StateError,
    StatementError,
    UnauthorizedError,
    ValidationError,
)
from owner_statements.matching import PropertyDirectory, normalize_property_name
from owner_statements.money import StatementTotals, aggregate, round2
from owner_statements.spreadsheet import drafts_from_reservation_rows, vendor_expense_rows
from owner_statements.statements import (
    BatchImporter,
    InvoiceExpenseMerger,
    StatementWriter,
    merge_into_drafts,
)

__all__ = [
    # Version
    "__version__",
    # Operations
    "StatementRouter",
    "StatementWriter",
    "BatchImporter",
    "InvoiceExpenseMerger",
    "merge_into_drafts",
    # Money & matching
    "StatementTotals",
    "aggregate",
    "round2",
    "PropertyDirectory",
    "normalize_property_name",
    # Spreadsheet rows
    "drafts_from_reservation_rows",
    "vendor_expense_rows",
    # Extraction
    "ExtractionError",
    "GeminiInvoiceExtractor",
    "InvoiceExtractor",
    # Persistence & context
    "Store",
    "TransactionTimeoutError",
    "CallerContext",
    # Errors
    "StatementError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "BadRequestError",
    "ConsistencyError",
    "ValidationError",
    "StateError",
    "InternalError",
    # Config
    "get_settings",
    "configure_logging",
]
