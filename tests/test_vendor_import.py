"""Tests for vendor expense spreadsheet imports."""

from decimal import Decimal

import pytest

from conftest import PROPERTY_NAMES, TODAY, make_store, totals
from owner_statements.errors import ValidationError
from owner_statements.money import sum_rounded
from owner_statements.schemas import CreateStatementInput, GetManyInput, ImportVendorExpensesInput
from owner_statements.statements import BatchImporter, StatementWriter


def seed_june(store, context):
    """Create an empty June statement for every seeded property; return their ids."""
    writer = StatementWriter(store, context)
    return [
        writer.create(
            CreateStatementInput.model_validate(
                {
                    "property_id": f"prop_{index}",
                    "statement_month": "2024-06",
                    "incomes": [],
                    "totals": totals("0"),
                }
            )
        )["id"]
        for index in range(1, len(PROPERTY_NAMES) + 1)
    ]


def row(property_name="123 Main St", amount="19.99", **overrides):
    payload = {
        "property_name": property_name,
        "date": "2024-06-12",
        "description": "Pool service",
        "vendor": "Blue Water",
        "amount": amount,
    }
    payload.update(overrides)
    return payload


def import_input(statement_id, rows):
    return ImportVendorExpensesInput.model_validate({"statement_id": statement_id, "expenses": rows})


@pytest.fixture
def june_ids(store, context):
    return seed_june(store, context)


@pytest.fixture
def importer(store, context):
    return BatchImporter(store, context, today=lambda: TODAY)


def totals_by_property(store, context):
    return {
        s["property_id"]: (Decimal(s["total_expenses"]), Decimal(s["grand_total"]))
        for s in StatementWriter(store, context).get_many(GetManyInput(month="2024-06"))
    }


class TestImportVendorExpenses:
    """Tests for BatchImporter.import_vendor_expenses."""

    def test_appends_expenses_and_recomputes(self, store, context, importer, june_ids):
        result = importer.import_vendor_expenses(
            import_input(
                june_ids[0],
                [
                    row("123 Main St", "19.99"),
                    row("  456 oak ave (OLD)", "5.01"),
                    row("123mainst", "0.01", date="6/30/24"),
                ],
            )
        )

        assert result.created_count == 3
        assert result.updated_properties == ["123 Main St", "456 Oak Ave"]
        by_property = totals_by_property(store, context)
        assert by_property["prop_1"] == (Decimal("20.00"), Decimal("-20.00"))
        assert by_property["prop_2"] == (Decimal("5.01"), Decimal("-5.01"))
        assert by_property["prop_3"] == (Decimal("0.00"), Decimal("0.00"))

        expenses = StatementWriter(store, context).get_one(june_ids[0])["expenses"]
        assert [e["date"] for e in expenses] == ["2024-06-12", "2024-06-30"]

    def test_totals_do_not_depend_on_chunk_size(self, context):
        rows = [
            row(PROPERTY_NAMES[i % 3], f"{(i * 7) % 113}.{(i * 37) % 100:02d}")
            for i in range(450)
        ]
        outcomes = []
        for chunk_size in (150, 200):
            store = make_store()
            ids = seed_june(store, context)
            result = BatchImporter(store, context, today=lambda: TODAY).import_vendor_expenses(
                import_input(ids[0], rows), chunk_size=chunk_size
            )
            assert result.created_count == 450
            assert all(not chunk.failed for chunk in result.chunks)
            outcomes.append(totals_by_property(store, context))

        assert outcomes[0] == outcomes[1]
        expected = sum_rounded(r["amount"] for r in rows[0::3])
        assert outcomes[0]["prop_1"][0] == expected

    def test_chunks_report_property_ids(self, importer, june_ids):
        result = importer.import_vendor_expenses(
            import_input(june_ids[0], [row("123 Main St"), row("123 Main St"), row("789 Pine Rd")]),
            chunk_size=2,
        )

        assert [chunk.property_ids for chunk in result.chunks] == [["prop_1"], ["prop_3"]]

    def test_unknown_property_names(self, store, context, importer, june_ids):
        with pytest.raises(ValidationError, match="No 2024-06 statement found for properties: 1 Elm") as exc_info:
            importer.import_vendor_expenses(
                import_input(june_ids[0], [row(), row("1 Elm", date="garbage")])
            )

        assert exc_info.value.details == {"properties": ["1 Elm"]}
        assert totals_by_property(store, context)["prop_1"][0] == Decimal("0.00")

    def test_invalid_dates_name_rows(self, store, context, importer, june_ids):
        with pytest.raises(ValidationError) as exc_info:
            importer.import_vendor_expenses(
                import_input(june_ids[0], [row(), row("456 Oak Ave", date="June-ish")])
            )

        assert exc_info.value.details == {"rows": ['Row 2: invalid date "June-ish" for 456 Oak Ave']}
        assert totals_by_property(store, context)["prop_1"][0] == Decimal("0.00")

    def test_statement_of_other_month_is_not_matched(self, store, context, importer, june_ids):
        may = StatementWriter(store, context).create(
            CreateStatementInput.model_validate(
                {
                    "property_id": "prop_1",
                    "statement_month": "2024-05",
                    "incomes": [],
                    "totals": totals("0"),
                }
            )
        )

        importer.import_vendor_expenses(import_input(june_ids[0], [row()]))

        assert StatementWriter(store, context).get_one(may["id"])["expenses"] == []

    def test_empty_import(self, importer, june_ids):
        with pytest.raises(ValidationError, match="No expenses"):
            importer.import_vendor_expenses(import_input(june_ids[0], []))

    def test_too_many_rows(self, importer, june_ids):
        with pytest.raises(ValidationError, match="maximum 1000"):
            importer.import_vendor_expenses(import_input(june_ids[0], [row()] * 1001))
