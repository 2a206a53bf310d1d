"""RPC-style dispatcher exposing owner statement operations by name."""

from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from owner_statements.clients.gemini import InvoiceExtractor
from owner_statements.config import Settings, caller_log_context
from owner_statements.context import CallerContext
from owner_statements.db import Store
from owner_statements.errors import NotFoundError, StatementError, ValidationError
from owner_statements.schemas import (
    ApplyVendorExpensesInput,
    CreateMonthlyBatchInput,
    CreateStatementInput,
    GetManyInput,
    ImportVendorExpensesInput,
    ParseInvoiceInput,
    RemoveItemInput,
    StatementIdInput,
    UpdateStatementInput,
    field_edit_adapter,
    new_item_adapter,
)
from owner_statements.statements import BatchImporter, InvoiceExpenseMerger, StatementWriter
from owner_statements.statements.invoice import decode_pdf

logger = structlog.get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class StatementRouter:
    """Validates operation arguments and dispatches them for one caller."""

    def __init__(
        self,
        store: Store,
        context: CallerContext,
        extractor: InvoiceExtractor | None = None,
        settings: Settings | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.writer = StatementWriter(store, context)
        self.batch = BatchImporter(store, context, settings=settings, today=today)
        self.invoices = InvoiceExpenseMerger(store, context, extractor=extractor, settings=settings)
        self._context = context
        self._handlers: dict[str, Handler] = {
            # Statements
            "get_many": self._get_many,
            "get_one": self._get_one,
            "create": self._create,
            "update": self._update,
            "delete": self._delete,
            # Line items
            "update_item_field": self._update_item_field,
            "add_item": self._add_item,
            "remove_item": self._remove_item,
            # Bulk imports
            "create_monthly_batch": self._create_monthly_batch,
            "import_vendor_expenses_from_excel": self._import_vendor_expenses,
            # Invoices
            "parse_invoice_expense_with_gemini": self._parse_invoice,
            "apply_monthly_vendor_expenses": self._apply_monthly_vendor_expenses,
        }

    @property
    def operations(self) -> list[str]:
        return list(self._handlers)

    async def execute(self, operation: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run an operation and return a JSON-ready envelope.

        Returns ``{"success": True, "result": ...}`` or
        ``{"success": False, "error": {"code", "message", ...}}``. Errors
        outside the statement error taxonomy propagate.
        """
        handler = self._handlers.get(operation)

        with caller_log_context(operation, self._context.org_id, self._context.user_id):
            try:
                if handler is None:
                    raise NotFoundError(f"Unknown operation: {operation}")
                logger.info("executing_operation")
                result = await handler(arguments or {})
            except PydanticValidationError as e:
                error: StatementError = ValidationError(
                    f"Invalid arguments for {operation}: {e.error_count()} error(s)",
                    e.errors(include_url=False, include_context=False, include_input=False),
                )
            except StatementError as e:
                error = e
            else:
                logger.info("operation_executed", success=True)
                return {"success": True, "result": to_jsonable_python(result)}

            logger.warning(
                "operation_failed",
                code=error.code.value,
                error=error.message,
            )
        return {"success": False, "error": to_jsonable_python(error.to_dict())}

    # === Statement Handlers ===

    async def _get_many(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        return self.writer.get_many(GetManyInput.model_validate(args))

    async def _get_one(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.get_one(StatementIdInput.model_validate(args).id)

    async def _create(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.create(CreateStatementInput.model_validate(args))

    async def _update(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.update(UpdateStatementInput.model_validate(args))

    async def _delete(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.delete(StatementIdInput.model_validate(args).id)

    # === Line Item Handlers ===

    async def _update_item_field(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.update_item_field(field_edit_adapter.validate_python(args))

    async def _add_item(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.add_item(new_item_adapter.validate_python(args))

    async def _remove_item(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.writer.remove_item(RemoveItemInput.model_validate(args))

    # === Bulk Import Handlers ===

    async def _create_monthly_batch(self, args: dict[str, Any]) -> Any:
        return self.batch.create_monthly_batch(CreateMonthlyBatchInput.model_validate(args))

    async def _import_vendor_expenses(self, args: dict[str, Any]) -> Any:
        return self.batch.import_vendor_expenses(ImportVendorExpensesInput.model_validate(args))

    # === Invoice Handlers ===

    async def _parse_invoice(self, args: dict[str, Any]) -> Any:
        data = ParseInvoiceInput.model_validate(args)
        self._context.require()
        return await self.invoices.parse_invoice(decode_pdf(data.pdf_base64), data.property_names)

    async def _apply_monthly_vendor_expenses(self, args: dict[str, Any]) -> Any:
        return await self.invoices.apply_monthly_vendor_expenses(
            ApplyVendorExpensesInput.model_validate(args)
        )
