"""Input models and result types for owner statement operations.

Inputs are pydantic models so that malformed requests are rejected before
any query runs. Field edits are a tagged union keyed on ``section``; each
section has its own field enum, so an edit naming a field of another section
fails to parse.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

from owner_statements.dates import parse_date, parse_month
from owner_statements.money import to_decimal, to_item_amount


def _optional_date(value: Any) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_date(value)


# Amounts echoed back to the caller before they are stored keep their precision
Amount = Annotated[Decimal, BeforeValidator(to_decimal)]
Money = Annotated[Decimal, BeforeValidator(to_item_amount)]
FlexibleDate = Annotated[date, BeforeValidator(parse_date)]
OptionalDate = Annotated[date | None, BeforeValidator(_optional_date)]
StatementMonth = Annotated[date, BeforeValidator(parse_month)]
Days = Annotated[int, Field(ge=0, strict=True)]


class Section(str, Enum):
    """Line item collections of a statement."""

    INCOMES = "incomes"
    EXPENSES = "expenses"
    ADJUSTMENTS = "adjustments"


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# =============================================================================
# LINE ITEMS
# =============================================================================


class IncomeInput(_Input):
    check_in: FlexibleDate
    check_out: FlexibleDate
    days: Days = 0
    platform: str = ""
    guest: str = ""
    gross_revenue: Money = Decimal("0")
    host_fee: Money = Decimal("0")
    platform_fee: Money = Decimal("0")
    gross_income: Money


class ExpenseInput(_Input):
    date: FlexibleDate
    description: str
    vendor: str
    amount: Money


class AdjustmentInput(_Input):
    check_in: OptionalDate = None
    check_out: OptionalDate = None
    description: str
    amount: Money


class TotalsInput(_Input):
    """Summary fields as computed by the caller; verified, never trusted."""

    total_income: Money
    total_expenses: Money
    total_adjustments: Money
    grand_total: Money


# =============================================================================
# STATEMENT OPERATIONS
# =============================================================================


class StatementIdInput(_Input):
    id: str


class GetManyInput(_Input):
    property_id: str | None = None
    month: StatementMonth | None = None


class CreateStatementInput(_Input):
    property_id: str
    statement_month: StatementMonth
    notes: str | None = None
    incomes: list[IncomeInput]
    expenses: list[ExpenseInput] = Field(default_factory=list)
    adjustments: list[AdjustmentInput] = Field(default_factory=list)
    totals: TotalsInput


class UpdateStatementInput(_Input):
    id: str
    notes: str | None = None
    incomes: list[IncomeInput]
    expenses: list[ExpenseInput]
    adjustments: list[AdjustmentInput]
    totals: TotalsInput


class IncomeField(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    DAYS = "days"
    PLATFORM = "platform"
    GUEST = "guest"
    GROSS_REVENUE = "gross_revenue"
    HOST_FEE = "host_fee"
    PLATFORM_FEE = "platform_fee"
    GROSS_INCOME = "gross_income"


class ExpenseField(str, Enum):
    DATE = "date"
    DESCRIPTION = "description"
    VENDOR = "vendor"
    AMOUNT = "amount"


class AdjustmentField(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    DESCRIPTION = "description"
    AMOUNT = "amount"


class IncomeFieldEdit(_Input):
    section: Literal["incomes"] = "incomes"
    item_id: int
    field: IncomeField
    value: Any = None


class ExpenseFieldEdit(_Input):
    section: Literal["expenses"] = "expenses"
    item_id: int
    field: ExpenseField
    value: Any = None


class AdjustmentFieldEdit(_Input):
    section: Literal["adjustments"] = "adjustments"
    item_id: int
    field: AdjustmentField
    value: Any = None


FieldEdit = Annotated[
    IncomeFieldEdit | ExpenseFieldEdit | AdjustmentFieldEdit,
    Field(discriminator="section"),
]
field_edit_adapter: TypeAdapter[FieldEdit] = TypeAdapter(FieldEdit)


class NewIncome(_Input):
    section: Literal["incomes"] = "incomes"
    statement_id: str
    item: IncomeInput


class NewExpense(_Input):
    section: Literal["expenses"] = "expenses"
    statement_id: str
    item: ExpenseInput


class NewAdjustment(_Input):
    section: Literal["adjustments"] = "adjustments"
    statement_id: str
    item: AdjustmentInput


NewItem = Annotated[NewIncome | NewExpense | NewAdjustment, Field(discriminator="section")]
new_item_adapter: TypeAdapter[NewItem] = TypeAdapter(NewItem)


class RemoveItemInput(_Input):
    statement_id: str
    section: Section
    item_id: int


# =============================================================================
# BATCH IMPORT
# =============================================================================


class DraftStatement(BaseModel):
    """An in-memory candidate statement under review before batch creation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    property_id: str
    property_name: str
    incomes: list[IncomeInput] = Field(default_factory=list)
    expenses: list[ExpenseInput] = Field(default_factory=list)
    adjustments: list[AdjustmentInput] = Field(default_factory=list)
    notes: str = ""
    dirty: bool = False


class CreateMonthlyBatchInput(_Input):
    statement_month: StatementMonth
    drafts: list[DraftStatement]
    skip_existing: bool = False


class VendorExpenseRow(_Input):
    """One row of a vendor expense spreadsheet; the date is validated by the importer."""

    property_name: str
    date: str
    description: str
    vendor: str
    amount: Money


class ImportVendorExpensesInput(_Input):
    statement_id: str
    expenses: list[VendorExpenseRow]


class ExtractedExpense(BaseModel):
    """One line item as returned by the invoice extractor."""

    date: str | None = None
    amount: Amount


class ParseInvoiceInput(_Input):
    pdf_base64: str
    property_names: list[str]


class ApplyVendorExpensesInput(_Input):
    statement_id: str
    pdf_base64: str
    vendor: str = Field(min_length=1)
    description: str = Field(min_length=1)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class ChunkOutcome:
    """What one chunk transaction did."""

    index: int
    property_ids: list[str]
    created_count: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class BatchResult:
    """Outcome of a monthly batch import."""

    created_count: int = 0
    existing_count: int = 0
    replaced_count: int = 0
    first_statement_id: str | None = None
    chunks: list[ChunkOutcome] = field(default_factory=list)

    @property
    def failed_property_ids(self) -> list[str]:
        return [pid for chunk in self.chunks if chunk.failed for pid in chunk.property_ids]


@dataclass
class VendorImportResult:
    """Outcome of a vendor expense spreadsheet import."""

    created_count: int = 0
    updated_properties: list[str] = field(default_factory=list)
    chunks: list[ChunkOutcome] = field(default_factory=list)


@dataclass
class MergeResult:
    """Outcome of merging extracted invoice expenses into drafts."""

    matched_properties: list[str] = field(default_factory=list)
    unmatched_names: list[str] = field(default_factory=list)
    added_count: int = 0
    default_date: date | None = None


@dataclass
class InvoiceApplyResult:
    """Outcome of applying extracted invoice expenses to a month's statements."""

    updated_count: int = 0
    updated_properties: list[str] = field(default_factory=list)
    unmatched_names: list[str] = field(default_factory=list)
    created_expense_count: int = 0
    chunks: list[ChunkOutcome] = field(default_factory=list)
