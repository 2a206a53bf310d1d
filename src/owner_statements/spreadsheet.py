"""Interpretation of spreadsheet rows already decoded into dicts.

Two exports are understood: Hostaway reservation exports, which become one
draft statement per matched property, and vendor expense sheets, which
become ``VendorExpenseRow`` inputs for the vendor import.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from owner_statements.config import get_settings
from owner_statements.errors import ValidationError
from owner_statements.matching import PropertyDirectory, Unmatched
from owner_statements.money import parse_amount, parse_currency, round2, to_decimal
from owner_statements.schemas import AdjustmentInput, DraftStatement, IncomeInput, VendorExpenseRow

logger = structlog.get_logger(__name__)

VENDOR_COLUMNS = ("property", "date", "description", "vendor", "amount")

RESOLUTION_DESCRIPTION = "Airbnb Resolution"


def cell_text(cell: Any) -> str:
    """Render a spreadsheet cell as trimmed text."""
    if cell is None:
        return ""
    if isinstance(cell, datetime):
        return cell.date().isoformat()
    if isinstance(cell, date):
        return cell.isoformat()
    return str(cell).strip()


@dataclass
class ReservationImport:
    """Drafts built from a reservation export, plus what could not be placed."""

    drafts: list[DraftStatement] = field(default_factory=list)
    unmatched_names: list[str] = field(default_factory=list)
    skipped_rows: int = 0


def reservation_income(row: Mapping[str, Any], host_fee_rate: Decimal) -> IncomeInput:
    """Derive an income line from one Hostaway reservation row."""
    rental_revenue = parse_amount(row.get("Rental Revenue"))
    occupancy_tax = parse_amount(row.get("Airbnb Transient Occupancy Tax"))
    gross_revenue = rental_revenue - occupancy_tax if occupancy_tax > 0 else rental_revenue

    host_fee = round2(gross_revenue * host_fee_rate)
    channel = cell_text(row.get("Channel"))
    if channel.lower() == "vrbo":
        platform_fee = parse_amount(row.get("Payment Fees"))
    else:
        platform_fee = parse_amount(row.get("Host Channel Fee"))

    return IncomeInput(
        check_in=cell_text(row.get("Check-in Date")),
        check_out=cell_text(row.get("Check-out Date")),
        days=int(parse_amount(row.get("Nights"))),
        platform=channel,
        guest=cell_text(row.get("Guest")),
        gross_revenue=gross_revenue,
        host_fee=host_fee,
        platform_fee=platform_fee,
        gross_income=gross_revenue - host_fee - platform_fee,
    )


def drafts_from_reservation_rows(
    rows: Iterable[Mapping[str, Any]],
    directory: PropertyDirectory[Any],
    host_fee_rate: float | None = None,
) -> ReservationImport:
    """Group reservation rows into one draft per matched property.

    ``directory`` indexes the organization's properties; entries need ``id``
    and ``name``. Rows whose listing does not match are skipped and their
    names reported.

    Raises:
        ValidationError: If a matched row has unusable dates or numbers.
    """
    rate = to_decimal(host_fee_rate if host_fee_rate is not None else get_settings().host_fee_rate)
    result = ReservationImport()
    by_property: dict[str, DraftStatement] = {}

    for number, row in enumerate(rows, start=2):
        listing = cell_text(row.get("Listing"))
        prop = directory.match(listing)
        if isinstance(prop, Unmatched):
            result.skipped_rows += 1
            continue

        try:
            income = reservation_income(row, rate)
        except PydanticValidationError as e:
            raise ValidationError(
                f'Row {number}: invalid reservation data for property "{prop.name}"',
                {"row": number, "errors": e.errors(include_url=False)},
            ) from e

        draft = by_property.get(prop.id)
        if draft is None:
            draft = DraftStatement(property_id=prop.id, property_name=prop.name)
            by_property[prop.id] = draft
        draft.incomes.append(income)

        resolution = parse_amount(row.get("Airbnb Closed Resolutions Sum"))
        if resolution != 0:
            draft.adjustments.append(
                AdjustmentInput(
                    description=RESOLUTION_DESCRIPTION,
                    amount=resolution,
                    check_in=income.check_in,
                    check_out=income.check_out,
                )
            )

    result.drafts = list(by_property.values())
    result.unmatched_names = [name for name in directory.unmatched if name]

    logger.info(
        "reservation_rows_interpreted",
        drafts=len(result.drafts),
        skipped_rows=result.skipped_rows,
        unmatched=len(result.unmatched_names),
    )
    return result


def _vendor_column_keys(headers: Iterable[str]) -> dict[str, str]:
    keys: dict[str, str] = {}
    for column in VENDOR_COLUMNS:
        for header in headers:
            if column in str(header).lower().strip():
                keys[column] = header
                break
    return keys


def vendor_expense_rows(rows: Iterable[Mapping[str, Any]]) -> list[VendorExpenseRow]:
    """Interpret vendor expense sheet rows.

    Headers are matched case-insensitively by substring (``"Property Name"``
    satisfies ``property``). Blank rows are skipped. Rows are numbered as in
    the sheet, the header being row 1.

    Raises:
        ValidationError: If columns are missing, no rows remain, or any row is
            incomplete or has an invalid amount; every bad row is listed.
    """
    rows = list(rows)
    headers: dict[str, None] = {}
    for row in rows:
        headers.update(dict.fromkeys(row.keys()))

    keys = _vendor_column_keys(headers)
    missing = [column for column in VENDOR_COLUMNS if column not in keys]
    if missing:
        raise ValidationError(f"Missing columns: {', '.join(missing)}", {"columns": missing})

    expenses: list[VendorExpenseRow] = []
    errors: list[str] = []
    for number, row in enumerate(rows, start=2):
        cells = {column: cell_text(row.get(keys[column])) for column in VENDOR_COLUMNS}
        if not any(cells.values()):
            continue
        if not all(cells.values()):
            errors.append(f"Row {number}: Missing required information")
            continue
        try:
            amount = parse_currency(cells["amount"])
        except ValueError as e:
            errors.append(f"Row {number}: {e}")
            continue
        expenses.append(
            VendorExpenseRow(
                property_name=cells["property"],
                date=cells["date"],
                description=cells["description"],
                vendor=cells["vendor"],
                amount=amount,
            )
        )

    if errors:
        raise ValidationError(
            f"{len(errors)} invalid vendor expense rows: {'; '.join(errors)}", {"rows": errors}
        )
    if not expenses:
        raise ValidationError("No vendor expense rows found")
    return expenses
