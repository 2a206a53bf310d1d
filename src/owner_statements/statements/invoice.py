"""Invoice expense merger.

Expenses extracted from a vendor's PDF invoice arrive as
``{property_name: [{"date": ..., "amount": ...}]}``. They can be merged into
in-memory drafts under review, or applied directly to the persisted
statements of a month. The extractor is always called outside any database
transaction.
"""

import base64
import binascii
from datetime import date

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from owner_statements.clients.gemini import ExtractionError, InvoiceExtractor
from owner_statements.config import Settings, get_settings
from owner_statements.context import CallerContext
from owner_statements.dates import format_month, try_parse_date
from owner_statements.db import OwnerStatement, StatementExpense, Store
from owner_statements.errors import InternalError, NotFoundError, ValidationError
from owner_statements.matching import PropertyDirectory, Unmatched
from owner_statements.money import to_item_amount
from owner_statements.schemas import (
    ApplyVendorExpensesInput,
    DraftStatement,
    ExpenseInput,
    ExtractedExpense,
    InvoiceApplyResult,
    MergeResult,
)
from owner_statements.statements.access import (
    StatementRef,
    load_statement,
    statement_refs_for_month,
)
from owner_statements.statements.chunks import partition, run_chunks
from owner_statements.statements.recompute import recalculate_statement_totals

logger = structlog.get_logger(__name__)

ExtractedExpenses = dict[str, list[ExtractedExpense]]

_extracted_adapter: TypeAdapter[ExtractedExpenses] = TypeAdapter(ExtractedExpenses)

# Number of affected properties named in a duplicate-invoice rejection
_DUPLICATE_PREVIEW = 3


def decode_pdf(pdf_base64: str) -> bytes:
    """Decode a base64 PDF payload, rejecting empty or malformed input."""
    try:
        data = base64.b64decode(pdf_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Invoice file is not valid base64") from e
    if not data:
        raise ValidationError("Invoice file is empty")
    return data


def default_expense_date(extracted: ExtractedExpenses, month: date) -> date:
    """Date used for extracted expenses whose own date is missing or unparseable.

    The median of all valid dates in the extraction (the upper one for an
    even count), or the 15th of the statement month if there are none.
    """
    valid: list[date] = []
    for expenses in extracted.values():
        for expense in expenses:
            parsed = try_parse_date(expense.date)
            if parsed is not None:
                valid.append(parsed)
    if not valid:
        return month.replace(day=15)
    valid.sort()
    return valid[len(valid) // 2]


def merge_into_drafts(
    drafts: list[DraftStatement],
    extracted: ExtractedExpenses,
    vendor: str,
    description: str,
    month: date,
) -> MergeResult:
    """Append extracted invoice expenses to matching drafts in place.

    Raises:
        ValidationError: If any draft already holds an expense with the same
            vendor and description; no draft is changed in that case.
    """
    already = [
        draft.property_name
        for draft in drafts
        if any(e.vendor == vendor and e.description == description for e in draft.expenses)
    ]
    if already:
        raise ValidationError(
            f'Expenses from "{vendor}" with description "{description}" already exist for: '
            f"{', '.join(already)}",
            {"properties": already},
        )

    directory = PropertyDirectory(drafts, name_of=lambda draft: draft.property_name)
    result = MergeResult(default_date=default_expense_date(extracted, month))

    for name, expenses in extracted.items():
        draft = directory.match(name)
        if isinstance(draft, Unmatched) or not expenses:
            continue
        for expense in expenses:
            draft.expenses.append(
                ExpenseInput(
                    date=try_parse_date(expense.date) or result.default_date,
                    description=description,
                    vendor=vendor,
                    amount=expense.amount,
                )
            )
        draft.dirty = True
        result.added_count += len(expenses)
        if draft.property_name not in result.matched_properties:
            result.matched_properties.append(draft.property_name)

    result.unmatched_names = list(directory.unmatched)
    logger.info(
        "invoice_merged_into_drafts",
        matched=len(result.matched_properties),
        unmatched=len(result.unmatched_names),
        added=result.added_count,
    )
    return result


class InvoiceExpenseMerger:
    """Reads vendor invoices and applies their expenses to owner statements."""

    def __init__(
        self,
        store: Store,
        context: CallerContext,
        extractor: InvoiceExtractor | None = None,
        settings: Settings | None = None,
    ):
        self._store = store
        self._context = context
        self._extractor = extractor
        self._settings = settings or get_settings()
        self._logger = logger.bind(component="invoice_merger")

    async def parse_invoice(self, pdf_bytes: bytes, property_names: list[str]) -> ExtractedExpenses:
        """Extract per-property expenses from a PDF invoice.

        Raises:
            InternalError: If no extractor is configured or extraction failed.
            NotFoundError: If the invoice yielded no expenses.
        """
        if self._extractor is None:
            raise InternalError("AI service unavailable")

        try:
            raw = await self._extractor.extract(pdf_bytes, property_names)
        except ExtractionError as e:
            self._logger.error("invoice_extraction_failed", error=str(e))
            raise InternalError(f"Failed to parse invoice with AI: {e}") from e

        try:
            extracted = _extracted_adapter.validate_python(raw)
        except PydanticValidationError as e:
            self._logger.error("invoice_extraction_unusable", error_count=e.error_count())
            raise InternalError("AI returned expenses in an unexpected format") from e

        extracted = {name: expenses for name, expenses in extracted.items() if expenses}
        if not extracted:
            raise NotFoundError("No property expenses found in invoice")
        return extracted

    async def merge_invoice_into_drafts(
        self,
        pdf_bytes: bytes,
        drafts: list[DraftStatement],
        vendor: str,
        description: str,
        month: date,
    ) -> MergeResult:
        """Extract an invoice against the drafts' property names and merge it in."""
        extracted = await self.parse_invoice(pdf_bytes, [d.property_name for d in drafts])
        return merge_into_drafts(drafts, extracted, vendor, description, month)

    def _check_not_applied(
        self, session: Session, refs: list[StatementRef], vendor: str, description: str
    ) -> None:
        rows = (
            session.query(OwnerStatement.property_id)
            .join(StatementExpense, StatementExpense.statement_id == OwnerStatement.id)
            .filter(
                OwnerStatement.id.in_([ref.statement_id for ref in refs]),
                StatementExpense.vendor == vendor,
                StatementExpense.description == description,
            )
            .distinct()
            .all()
        )
        if not rows:
            return

        affected_ids = {row[0] for row in rows}
        affected = list(
            dict.fromkeys(ref.property_name for ref in refs if ref.property_id in affected_ids)
        )
        preview = ", ".join(affected[:_DUPLICATE_PREVIEW])
        if len(affected) > _DUPLICATE_PREVIEW:
            preview += f" and {len(affected) - _DUPLICATE_PREVIEW} more"
        raise ValidationError(
            f'Expenses from "{vendor}" with description "{description}" '
            f"already exist for: {preview}",
            {"properties": affected},
        )

    async def apply_monthly_vendor_expenses(self, data: ApplyVendorExpensesInput) -> InvoiceApplyResult:
        """Extract an invoice and append its expenses to the month's statements.

        The statement identified by ``data.statement_id`` fixes the
        organization and month.

        Raises:
            ValidationError: If this vendor invoice was already applied, or no
                extracted property matches a statement of the month.
            InternalError: If extraction failed or every chunk failed.
            NotFoundError: If the invoice yielded no expenses.
        """
        org_id, user_id = self._context.require()
        pdf_bytes = decode_pdf(data.pdf_base64)

        with self._store.read() as session:
            month = load_statement(session, org_id, data.statement_id).statement_month
            refs = statement_refs_for_month(session, org_id, month)
            self._check_not_applied(session, refs, data.vendor, data.description)

        extracted = await self.parse_invoice(pdf_bytes, [ref.property_name for ref in refs])

        directory = PropertyDirectory(refs, name_of=lambda ref: ref.property_name)
        grouped: dict[StatementRef, list[ExtractedExpense]] = {}
        for name, expenses in extracted.items():
            ref = directory.match(name)
            if not isinstance(ref, Unmatched):
                grouped.setdefault(ref, []).extend(expenses)

        if not grouped:
            raise ValidationError(
                f"None of the invoice properties have a {format_month(month)} statement: "
                f"{', '.join(directory.unmatched)}",
                {"properties": directory.unmatched},
            )

        default_date = default_expense_date(extracted, month)

        def write_chunk(
            session: Session, chunk: list[tuple[StatementRef, list[ExtractedExpense]]]
        ) -> int:
            created = 0
            for ref, expenses in chunk:
                for expense in expenses:
                    session.add(
                        StatementExpense(
                            statement_id=ref.statement_id,
                            date=try_parse_date(expense.date) or default_date,
                            description=data.description,
                            vendor=data.vendor,
                            amount=to_item_amount(expense.amount),
                        )
                    )
                created += len(expenses)
                statement = session.get(OwnerStatement, ref.statement_id)
                recalculate_statement_totals(session, statement, user_id)
            return created

        self._logger.info(
            "invoice_apply_started",
            statement_month=format_month(month),
            properties=len(grouped),
            unmatched=len(directory.unmatched),
        )
        chunks = run_chunks(
            self._store,
            partition(list(grouped.items()), self._settings.invoice_property_chunk_size),
            lambda chunk: [ref.property_id for ref, _ in chunk],
            write_chunk,
            self._logger,
        )

        committed = {pid for chunk in chunks if not chunk.failed for pid in chunk.property_ids}
        updated = [ref.property_name for ref in grouped if ref.property_id in committed]
        result = InvoiceApplyResult(
            updated_count=len(updated),
            updated_properties=updated,
            unmatched_names=list(directory.unmatched),
            created_expense_count=sum(chunk.created_count for chunk in chunks),
            chunks=chunks,
        )
        self._logger.info(
            "invoice_apply_completed",
            updated=result.updated_count,
            created=result.created_expense_count,
        )
        return result
