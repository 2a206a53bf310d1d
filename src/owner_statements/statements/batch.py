"""Batch importer for monthly statements and vendor expense spreadsheets.

Both imports validate everything up front, then commit their work in
independent chunk transactions sized to fit the transaction budget.
"""

from collections.abc import Callable
from datetime import date
from typing import Any

import structlog
from sqlalchemy.orm import Session

from owner_statements.config import Settings, get_settings
from owner_statements.context import CallerContext
from owner_statements.dates import add_months, format_month, month_start, try_parse_date
from owner_statements.db import OwnerStatement, StatementExpense, Store
from owner_statements.db.models import utcnow
from owner_statements.errors import InternalError, ValidationError
from owner_statements.matching import PropertyDirectory, Unmatched
from owner_statements.money import aggregate
from owner_statements.schemas import (
    BatchResult,
    CreateMonthlyBatchInput,
    DraftStatement,
    ImportVendorExpensesInput,
    VendorImportResult,
)
from owner_statements.statements.access import (
    StatementRef,
    live_statements_for_month,
    load_org_properties,
    load_statement,
    statement_refs_for_month,
)
from owner_statements.statements.chunks import partition, run_chunks
from owner_statements.statements.recompute import recalculate_statement_totals
from owner_statements.statements.writer import build_line_items

logger = structlog.get_logger(__name__)


class BatchImporter:
    """Creates a month's statements in bulk and imports vendor expenses."""

    def __init__(
        self,
        store: Store,
        context: CallerContext,
        settings: Settings | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._store = store
        self._context = context
        self._settings = settings or get_settings()
        self._today = today
        self._logger = logger.bind(component="batch_importer")

    # === Monthly batch ===

    def check_batch_month(self, month: date) -> None:
        """Reject future months and months beyond the retention horizon."""
        current = month_start(self._today())
        if month > current:
            raise ValidationError(
                f"Cannot create statements for {format_month(month)}: "
                f"it is after the current month {format_month(current)}"
            )
        oldest = add_months(current, -self._settings.retention_months)
        if month < oldest:
            raise ValidationError(
                f"Cannot create statements for {format_month(month)}: "
                f"the oldest allowed month is {format_month(oldest)}"
            )

    def _check_drafts(self, drafts: list[DraftStatement]) -> None:
        if not drafts:
            raise ValidationError("No statements to create")
        limit = self._settings.batch_max_statements
        if len(drafts) > limit:
            raise ValidationError(
                f"Too many statements in one batch: {len(drafts)} (maximum {limit})"
            )

        seen: set[str] = set()
        repeated: list[str] = []
        for draft in drafts:
            if draft.property_id in seen and draft.property_name not in repeated:
                repeated.append(draft.property_name)
            seen.add(draft.property_id)
        if repeated:
            raise ValidationError(
                f"Properties appear more than once in the batch: {', '.join(repeated)}",
                {"properties": repeated},
            )

    def create_monthly_batch(self, data: CreateMonthlyBatchInput) -> BatchResult:
        """Create one statement per draft for a month.

        Existing live statements for the month are either kept (their drafts
        are dropped) or tombstoned, depending on ``skip_existing``.

        Raises:
            ValidationError: For a bad month, draft list or unknown property,
                or when nothing is left to create.
            InternalError: If every chunk failed to commit. Statements the
                batch already tombstoned are listed in the error details.
        """
        org_id, user_id = self._context.require()
        month = data.statement_month

        # Nothing below may run for a month outside the allowed window
        self.check_batch_month(month)
        self._check_drafts(data.drafts)

        property_ids = [draft.property_id for draft in data.drafts]
        with self._store.read() as session:
            owned = load_org_properties(session, org_id, property_ids)
            existing = {
                statement.property_id
                for statement in live_statements_for_month(session, org_id, month)
            }

        unknown = [
            draft.property_name or draft.property_id
            for draft in data.drafts
            if draft.property_id not in owned
        ]
        if unknown:
            raise ValidationError(
                f"Unknown properties for this organization: {', '.join(unknown)}",
                {"properties": unknown},
            )

        result = BatchResult()
        drafts = list(data.drafts)
        replaced_ids: list[str] = []

        if data.skip_existing:
            drafts = [draft for draft in drafts if draft.property_id not in existing]
            result.existing_count = len(data.drafts) - len(drafts)
            if not drafts:
                raise ValidationError(
                    f"All {len(data.drafts)} properties already have statements for {format_month(month)}"
                )
        elif existing:
            replaced_ids = self._tombstone_month(org_id, user_id, month)
            result.replaced_count = len(replaced_ids)

        # Statement ids created per chunk, keyed by the chunk's first property
        created_ids: dict[str, list[str]] = {}

        def write_chunk(session: Session, chunk: list[DraftStatement]) -> int:
            ids = created_ids.setdefault(chunk[0].property_id, [])
            for draft in chunk:
                statement = self._statement_from_draft(draft, org_id, user_id, month)
                session.add(statement)
                session.flush()
                ids.append(statement.id)
            return len(chunk)

        self._logger.info(
            "batch_started",
            statement_month=format_month(month),
            drafts=len(drafts),
            skip_existing=data.skip_existing,
            existing=result.existing_count,
            replaced=result.replaced_count,
        )
        try:
            result.chunks = run_chunks(
                self._store,
                partition(drafts, self._settings.batch_statement_chunk_size),
                lambda chunk: [draft.property_id for draft in chunk],
                write_chunk,
                self._logger,
            )
        except InternalError as e:
            # The tombstones are already committed and stay in place
            raise InternalError(
                e.message,
                {
                    **e.details,
                    "existing_count": result.existing_count,
                    "replaced_count": result.replaced_count,
                    "replaced_statement_ids": replaced_ids,
                },
            ) from e
        result.created_count = sum(outcome.created_count for outcome in result.chunks)
        result.first_statement_id = next(
            (
                created_ids[outcome.property_ids[0]][0]
                for outcome in result.chunks
                if not outcome.failed and created_ids.get(outcome.property_ids[0])
            ),
            None,
        )

        self._logger.info(
            "batch_completed",
            statement_month=format_month(month),
            created=result.created_count,
            failed_properties=len(result.failed_property_ids),
        )
        return result

    def _tombstone_month(self, org_id: str, user_id: str, month: date) -> list[str]:
        with self._store.transaction() as session:
            statements = live_statements_for_month(session, org_id, month)
            now = utcnow()
            for statement in statements:
                statement.deleted_at = now
                statement.updated_at = now
                statement.updated_by = user_id
            replaced_ids = [statement.id for statement in statements]
        self._logger.info(
            "month_statements_replaced",
            statement_month=format_month(month),
            count=len(replaced_ids),
        )
        return replaced_ids

    @staticmethod
    def _statement_from_draft(
        draft: DraftStatement, org_id: str, user_id: str, month: date
    ) -> OwnerStatement:
        totals = aggregate(draft.incomes, draft.expenses, draft.adjustments)
        incomes, expenses, adjustments = build_line_items(
            draft.incomes, draft.expenses, draft.adjustments
        )
        return OwnerStatement(
            organization_id=org_id,
            property_id=draft.property_id,
            statement_month=month,
            notes=draft.notes,
            created_by=user_id,
            updated_by=user_id,
            incomes=incomes,
            expenses=expenses,
            adjustments=adjustments,
            **totals.as_dict(),
        )

    # === Vendor expense spreadsheet ===

    def import_vendor_expenses(
        self,
        data: ImportVendorExpensesInput,
        chunk_size: int | None = None,
    ) -> VendorImportResult:
        """Append spreadsheet expense rows to the month's statements.

        The statement identified by ``data.statement_id`` fixes the
        organization and month; each row's property name is matched against
        the live statements of that month.

        Raises:
            ValidationError: For an empty or oversized import, a property name
                with no statement this month, or an unparseable date.
        """
        org_id, user_id = self._context.require()
        rows = data.expenses
        limit = self._settings.vendor_import_max_rows
        if not rows:
            raise ValidationError("No expenses to import")
        if len(rows) > limit:
            raise ValidationError(f"Too many expense rows: {len(rows)} (maximum {limit})")

        with self._store.read() as session:
            month = load_statement(session, org_id, data.statement_id).statement_month
            directory = PropertyDirectory(
                statement_refs_for_month(session, org_id, month),
                name_of=lambda ref: ref.property_name,
            )

        date_errors: list[str] = []
        resolved: list[tuple[StatementRef, dict[str, Any]]] = []
        for number, row in enumerate(rows, start=1):
            ref = directory.match(row.property_name)
            expense_date = try_parse_date(row.date)
            if expense_date is None:
                date_errors.append(f'Row {number}: invalid date "{row.date}" for {row.property_name}')
            if isinstance(ref, Unmatched) or expense_date is None:
                continue
            values = {
                "date": expense_date,
                "description": row.description,
                "vendor": row.vendor,
                "amount": row.amount,
            }
            resolved.append((ref, values))

        if directory.unmatched:
            raise ValidationError(
                f"No {format_month(month)} statement found for properties: "
                f"{', '.join(directory.unmatched)}",
                {"properties": directory.unmatched},
            )
        if date_errors:
            raise ValidationError(
                f"Invalid dates in vendor expenses: {'; '.join(date_errors)}",
                {"rows": date_errors},
            )

        def write_chunk(session: Session, chunk: list[tuple[StatementRef, dict[str, Any]]]) -> int:
            affected: dict[str, None] = {}
            for ref, values in chunk:
                session.add(StatementExpense(statement_id=ref.statement_id, **values))
                affected[ref.statement_id] = None
            for statement_id in affected:
                statement = session.get(OwnerStatement, statement_id)
                recalculate_statement_totals(session, statement, user_id)
            return len(chunk)

        self._logger.info(
            "vendor_import_started",
            statement_month=format_month(month),
            rows=len(resolved),
            properties=len({ref.statement_id for ref, _ in resolved}),
        )
        chunks = run_chunks(
            self._store,
            partition(resolved, chunk_size or self._settings.expense_chunk_size),
            lambda chunk: list(dict.fromkeys(ref.property_id for ref, _ in chunk)),
            write_chunk,
            self._logger,
        )

        committed = {pid for chunk in chunks if not chunk.failed for pid in chunk.property_ids}
        updated = list(
            dict.fromkeys(ref.property_name for ref, _ in resolved if ref.property_id in committed)
        )
        result = VendorImportResult(
            created_count=sum(chunk.created_count for chunk in chunks),
            updated_properties=updated,
            chunks=chunks,
        )
        self._logger.info(
            "vendor_import_completed",
            created=result.created_count,
            updated_properties=len(updated),
        )
        return result
