"""Tests for monthly batch creation."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import PROPERTY_NAMES, TODAY, StepClock, expense, income, make_store, totals
from owner_statements.config import get_settings
from owner_statements.db import OwnerStatement, Store
from owner_statements.errors import InternalError, ValidationError
from owner_statements.schemas import CreateMonthlyBatchInput, CreateStatementInput, GetManyInput
from owner_statements.statements import BatchImporter, StatementWriter


def draft(index, **overrides):
    payload = {
        "property_id": f"prop_{index}",
        "property_name": PROPERTY_NAMES[index - 1] if index <= len(PROPERTY_NAMES) else f"#{index}",
        "incomes": [income("400.00"), income("100.125")],
        "expenses": [expense("50.00")],
    }
    payload.update(overrides)
    return payload


def batch_input(drafts, month="2024-06", skip_existing=False):
    return CreateMonthlyBatchInput.model_validate(
        {"statement_month": month, "drafts": drafts, "skip_existing": skip_existing}
    )


def importer_for(store, context, **settings_overrides):
    settings = get_settings().model_copy(update=settings_overrides) if settings_overrides else None
    return BatchImporter(store, context, settings=settings, today=lambda: TODAY)


@pytest.fixture
def importer(store, context):
    return importer_for(store, context)


@pytest.fixture
def existing_june(store, context):
    return StatementWriter(store, context).create(
        CreateStatementInput.model_validate(
            {
                "property_id": "prop_1",
                "statement_month": "2024-06",
                "incomes": [income("1.00")],
                "totals": totals("1.00"),
            }
        )
    )


class TestCreateMonthlyBatch:
    """Tests for BatchImporter.create_monthly_batch."""

    def test_creates_one_statement_per_draft(self, store, context, importer):
        result = importer.create_monthly_batch(batch_input([draft(1), draft(2), draft(3)]))

        assert result.created_count == 3
        assert result.failed_property_ids == []
        assert result.first_statement_id is not None

        statements = StatementWriter(store, context).get_many(GetManyInput(month="2024-06"))
        assert len(statements) == 3
        for statement in statements:
            assert Decimal(statement["total_income"]) == Decimal("500.13")
            assert Decimal(statement["total_expenses"]) == Decimal("50.00")
            assert Decimal(statement["grand_total"]) == Decimal("450.13")

    def test_first_statement_id_points_at_first_draft(self, store, context, importer):
        result = importer.create_monthly_batch(batch_input([draft(2), draft(3)]))

        first = StatementWriter(store, context).get_one(result.first_statement_id)
        assert first["property_id"] == "prop_2"

    def test_skip_existing_keeps_current_statements(
        self, store, context, importer, existing_june
    ):
        result = importer.create_monthly_batch(
            batch_input([draft(1), draft(2), draft(3)], skip_existing=True)
        )

        assert result.created_count == 2
        assert result.existing_count == 1
        assert result.replaced_count == 0
        kept = StatementWriter(store, context).get_one(existing_june["id"])
        assert Decimal(kept["grand_total"]) == Decimal("1.00")

    def test_skip_existing_with_nothing_left(self, importer, existing_june):
        with pytest.raises(ValidationError, match="All 1 properties already have statements"):
            importer.create_monthly_batch(batch_input([draft(1)], skip_existing=True))

    def test_replace_tombstones_existing(self, store, context, importer, existing_june):
        result = importer.create_monthly_batch(batch_input([draft(1), draft(2)]))

        assert result.created_count == 2
        assert result.replaced_count == 1
        with store.read() as session:
            old = session.get(OwnerStatement, existing_june["id"])
            assert old.deleted_at is not None
        live = StatementWriter(store, context).get_many(GetManyInput(month="2024-06"))
        assert sorted(s["property_id"] for s in live) == ["prop_1", "prop_2"]

    def test_current_month_is_allowed(self, importer):
        assert importer.create_monthly_batch(batch_input([draft(1)], month="2024-07")).created_count == 1

    def test_oldest_retained_month_is_allowed(self, importer):
        assert importer.create_monthly_batch(batch_input([draft(1)], month="2022-07")).created_count == 1

    def test_future_month_is_rejected(self, importer):
        with pytest.raises(ValidationError, match="after the current month 2024-07"):
            importer.create_monthly_batch(batch_input([draft(1)], month="2024-08"))

    def test_month_beyond_retention_rejected_before_any_query(self, context):
        store = MagicMock(spec=Store)
        importer = importer_for(store, context)

        with pytest.raises(ValidationError, match="oldest allowed month is 2022-07"):
            importer.create_monthly_batch(batch_input([draft(1)], month="2021-06"))

        store.read.assert_not_called()
        store.transaction.assert_not_called()

    def test_empty_batch(self, importer):
        with pytest.raises(ValidationError, match="No statements"):
            importer.create_monthly_batch(batch_input([]))

    def test_too_many_drafts(self, importer):
        drafts = [draft(1, property_id=f"prop_x{i}", property_name=f"House {i}") for i in range(101)]

        with pytest.raises(ValidationError, match="maximum 100"):
            importer.create_monthly_batch(batch_input(drafts))

    def test_duplicate_drafts(self, importer):
        with pytest.raises(ValidationError, match="more than once") as exc_info:
            importer.create_monthly_batch(batch_input([draft(1), draft(2), draft(1)]))

        assert exc_info.value.details == {"properties": ["123 Main St"]}

    def test_unknown_and_foreign_properties(self, store, importer):
        drafts = [
            draft(1),
            draft(1, property_id="prop_foreign", property_name="Other Org House"),
            draft(1, property_id="prop_missing", property_name="Nowhere"),
        ]

        with pytest.raises(ValidationError, match="Other Org House, Nowhere"):
            importer.create_monthly_batch(batch_input(drafts))

        with store.read() as session:
            assert session.query(OwnerStatement).count() == 0


class TestBatchChunks:
    """Tests for chunked commits of a batch."""

    def test_failed_chunk_is_reported_and_others_commit(self, context):
        # Seeding takes readings 0 and 1; the second chunk overruns its budget
        store = make_store(clock=StepClock(0, 1, 10, 11, 20, 60, 70, 71))
        importer = importer_for(store, context, batch_statement_chunk_size=1)

        result = importer.create_monthly_batch(batch_input([draft(1), draft(2), draft(3)]))

        assert result.created_count == 2
        assert result.failed_property_ids == ["prop_2"]
        assert [chunk.failed for chunk in result.chunks] == [False, True, False]
        assert "budget" in result.chunks[1].error

        live = StatementWriter(store, context).get_many(GetManyInput(month="2024-06"))
        assert sorted(s["property_id"] for s in live) == ["prop_1", "prop_3"]
        assert StatementWriter(store, context).get_one(result.first_statement_id)["property_id"] == "prop_1"

    def test_first_statement_id_skips_failed_chunk(self, context):
        store = make_store(clock=StepClock(0, 1, 10, 60, 70, 71))
        importer = importer_for(store, context, batch_statement_chunk_size=1)

        result = importer.create_monthly_batch(batch_input([draft(1), draft(2)]))

        assert result.failed_property_ids == ["prop_1"]
        assert StatementWriter(store, context).get_one(result.first_statement_id)["property_id"] == "prop_2"

    def test_all_chunks_failing_raises(self, context):
        store = make_store(clock=StepClock(0, 1, 10, 100, 200, 300))
        importer = importer_for(store, context, batch_statement_chunk_size=1)

        with pytest.raises(InternalError, match="All 2 chunks failed") as exc_info:
            importer.create_monthly_batch(batch_input([draft(1), draft(2)]))

        assert len(exc_info.value.details["chunks"]) == 2
        with store.read() as session:
            assert session.query(OwnerStatement).count() == 0

    def test_replace_with_all_chunks_failing_reports_tombstoned_statements(self, context):
        # Seeding, the existing statement and the tombstones take readings 0-5
        store = make_store(clock=StepClock(0, 1, 2, 3, 4, 5, 10, 100))
        writer = StatementWriter(store, context)
        existing = writer.create(
            CreateStatementInput.model_validate(
                {
                    "property_id": "prop_1",
                    "statement_month": "2024-06",
                    "incomes": [income("1.00")],
                    "totals": totals("1.00"),
                }
            )
        )

        with pytest.raises(InternalError, match="All 1 chunks failed") as exc_info:
            importer_for(store, context).create_monthly_batch(batch_input([draft(1)]))

        details = exc_info.value.details
        assert details["replaced_count"] == 1
        assert details["replaced_statement_ids"] == [existing["id"]]
        assert details["existing_count"] == 0
        assert "budget" in details["chunks"][0]["error"]
        assert writer.get_many(GetManyInput(month="2024-06")) == []
