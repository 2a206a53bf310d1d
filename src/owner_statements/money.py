"""Monetary aggregation for owner statements.

All arithmetic is done with ``Decimal``. Running sums are rounded to cents
(half away from zero) after every addition so long item lists cannot drift,
and floats are converted through ``str`` so ``1000.005`` stays ``1000.005``
instead of its binary approximation.
"""

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from owner_statements.errors import ConsistencyError

CENTS = Decimal("0.01")
ZERO = Decimal("0")

# Line items are stored with six decimal places and at most 14 integer digits
ITEM_SCALE = Decimal("0.000001")
MAX_AMOUNT = Decimal("1e14")

# Tolerance used when comparing caller-supplied totals against recomputed ones
TOLERANCE = Decimal("0.01")

_CURRENCY_NOISE = re.compile(r"[$£€¥₹,\s]")
_PLAIN_NUMBER = re.compile(r"^-?(\d+\.?\d*|\.\d+)$")


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Expected a finite number, got {value!r}")
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Expected a number, got {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Expected a finite number, got {value!r}")
    return result


def to_decimal(value: Any) -> Decimal:
    """Convert a caller-supplied numeric value to ``Decimal``.

    Raises:
        ValueError: If the value is not a finite number, or its magnitude
            does not fit a stored amount.
    """
    result = _as_decimal(value)
    if abs(result) >= MAX_AMOUNT:
        raise ValueError(f"Amount {value!r} is out of range (must be below {MAX_AMOUNT:,.0f})")
    return result


def to_item_amount(value: Any) -> Decimal:
    """Convert to ``Decimal`` at the precision line items are stored with."""
    return to_decimal(value).quantize(ITEM_SCALE, rounding=ROUND_HALF_UP)


def round2(value: Any) -> Decimal:
    """Round to cents, half away from zero."""
    return _as_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def sum_rounded(values: Iterable[Any]) -> Decimal:
    """Sum values, rounding the running total to cents after each addition."""
    total = round2(ZERO)
    for value in values:
        total = round2(total + _as_decimal(value))
    return total


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


@dataclass(frozen=True)
class StatementTotals:
    """The four summary fields of an owner statement."""

    total_income: Decimal
    total_expenses: Decimal
    total_adjustments: Decimal
    grand_total: Decimal

    FIELDS = ("total_income", "total_expenses", "total_adjustments", "grand_total")

    @classmethod
    def from_values(cls, values: Any) -> "StatementTotals":
        """Build from a mapping or an object exposing the four fields."""
        return cls(**{name: _as_decimal(_field(values, name)) for name in cls.FIELDS})

    def as_dict(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in self.FIELDS}


def aggregate(
    incomes: Iterable[Any],
    expenses: Iterable[Any],
    adjustments: Iterable[Any],
) -> StatementTotals:
    """Compute statement totals from line items.

    Incomes contribute ``gross_income``; expenses and adjustments contribute
    ``amount``. Adjustments are signed and added to the grand total.
    """
    total_income = sum_rounded(_field(i, "gross_income") for i in incomes)
    total_expenses = sum_rounded(_field(e, "amount") for e in expenses)
    total_adjustments = sum_rounded(_field(a, "amount") for a in adjustments)
    return StatementTotals(
        total_income=total_income,
        total_expenses=total_expenses,
        total_adjustments=total_adjustments,
        grand_total=round2(total_income - total_expenses + total_adjustments),
    )


def is_close(a: Any, b: Any) -> bool:
    """Return True if two amounts differ by less than one cent."""
    return abs(_as_decimal(a) - _as_decimal(b)) < TOLERANCE


def verify_totals(
    supplied: Any,
    incomes: Iterable[Any],
    expenses: Iterable[Any],
    adjustments: Iterable[Any],
) -> StatementTotals:
    """Check caller-supplied totals against the items and return the recomputed ones.

    Raises:
        ConsistencyError: If any of the four fields is off by a cent or more.
    """
    expected = aggregate(incomes, expenses, adjustments)
    claimed = StatementTotals.from_values(supplied)

    mismatches = {
        name: {"supplied": str(getattr(claimed, name)), "expected": str(getattr(expected, name))}
        for name in StatementTotals.FIELDS
        if not is_close(getattr(claimed, name), getattr(expected, name))
    }
    if mismatches:
        summary = ", ".join(
            f"{name} is {values['supplied']} but items sum to {values['expected']}"
            for name, values in mismatches.items()
        )
        raise ConsistencyError(f"Statement totals do not match line items: {summary}", mismatches)
    return expected


def parse_amount(value: Any) -> Decimal:
    """Leniently parse a spreadsheet cell, returning 0 for blank or invalid values."""
    if value is None or value == "" or isinstance(value, bool):
        return ZERO
    try:
        return to_decimal(value)
    except ValueError:
        return ZERO


def parse_currency(text: Any) -> Decimal:
    """Strictly parse a currency string such as ``"$1,234.50"`` or ``"(75.00)"``.

    Raises:
        ValueError: If the text is not a single signed decimal amount.
    """
    if isinstance(text, (int, float, Decimal)) and not isinstance(text, bool):
        return to_decimal(text)

    cleaned = _CURRENCY_NOISE.sub("", str(text or "").strip())
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]

    if not cleaned or not _PLAIN_NUMBER.match(cleaned):
        raise ValueError(f'Invalid amount format "{text}"')
    return to_decimal(cleaned)
