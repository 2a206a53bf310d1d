"""Pytest configuration and fixtures."""

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("TRANSACTION_TIMEOUT_SECONDS", "15")

from owner_statements.config import get_settings  # noqa: E402
from owner_statements.context import CallerContext  # noqa: E402
from owner_statements.db import Property, Store  # noqa: E402

ORG_ID = "org_test"
OTHER_ORG_ID = "org_other"
USER_ID = "user_test"

# Current date seen by the batch importer in tests
TODAY = date(2024, 7, 10)
JUNE_2024 = date(2024, 6, 1)

PROPERTY_NAMES = ["123 Main St", "456 Oak Ave", "789 Pine Rd"]


class StepClock:
    """Clock returning scripted readings, then repeating the last one."""

    def __init__(self, *readings: float):
        self._readings = list(readings)
        self.calls = 0

    def __call__(self) -> float:
        index = min(self.calls, len(self._readings) - 1)
        self.calls += 1
        return self._readings[index]


@dataclass
class FakeExtractor:
    """Invoice extractor returning a canned result."""

    result: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    error: Exception | None = None
    calls: list[tuple[bytes, list[str]]] = field(default_factory=list)

    async def extract(
        self, pdf_bytes: bytes, property_names: list[str]
    ) -> dict[str, list[dict[str, Any]]]:
        self.calls.append((pdf_bytes, list(property_names)))
        if self.error is not None:
            raise self.error
        return self.result


def make_store(clock: Any = None) -> Store:
    """Create an in-memory store with tables and seeded properties."""
    kwargs = {"clock": clock} if clock is not None else {}
    store = Store("sqlite://", **kwargs)
    store.create_all()
    with store.transaction() as session:
        for index, name in enumerate(PROPERTY_NAMES, start=1):
            session.add(Property(id=f"prop_{index}", organization_id=ORG_ID, name=name))
        session.add(Property(id="prop_foreign", organization_id=OTHER_ORG_ID, name="Other Org House"))
    return store


def income(gross_income: Any = "100.00", **overrides: Any) -> dict[str, Any]:
    """Income item payload."""
    payload = {
        "check_in": "2024-06-01",
        "check_out": "2024-06-04",
        "days": 3,
        "platform": "Airbnb",
        "guest": "Jane Guest",
        "gross_revenue": gross_income,
        "host_fee": "0",
        "platform_fee": "0",
        "gross_income": gross_income,
    }
    payload.update(overrides)
    return payload


def expense(amount: Any = "25.00", **overrides: Any) -> dict[str, Any]:
    """Expense item payload."""
    payload = {
        "date": "2024-06-10",
        "description": "Cleaning",
        "vendor": "Sparkle Co",
        "amount": amount,
    }
    payload.update(overrides)
    return payload


def adjustment(amount: Any = "10.00", **overrides: Any) -> dict[str, Any]:
    """Adjustment item payload."""
    payload = {"description": "Airbnb Resolution", "amount": amount}
    payload.update(overrides)
    return payload


def totals(
    income_total: Any,
    expense_total: Any = "0",
    adjustment_total: Any = "0",
    grand: Any = None,
) -> dict[str, Any]:
    """Totals payload; the grand total defaults to income - expenses + adjustments."""
    if grand is None:
        grand = Decimal(str(income_total)) - Decimal(str(expense_total)) + Decimal(str(adjustment_total))
    return {
        "total_income": income_total,
        "total_expenses": expense_total,
        "total_adjustments": adjustment_total,
        "grand_total": grand,
    }


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Clear cached settings around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store() -> Iterator[Store]:
    """In-memory store with seeded properties."""
    store = make_store()
    yield store
    store.engine.dispose()


@pytest.fixture
def context() -> CallerContext:
    return CallerContext(org_id=ORG_ID, user_id=USER_ID)


@pytest.fixture
def other_context() -> CallerContext:
    """Caller from a different organization."""
    return CallerContext(org_id=OTHER_ORG_ID, user_id="user_other")


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()
