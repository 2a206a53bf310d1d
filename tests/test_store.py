"""Tests for the budgeted transactional store."""

import pytest

from conftest import ORG_ID, StepClock, make_store
from owner_statements.db import Property, Store, TransactionTimeoutError


def count_properties(store: Store) -> int:
    with store.read() as session:
        return session.query(Property).count()


class TestTransaction:
    """Tests for Store.transaction."""

    def test_commits_on_success(self, store):
        with store.transaction() as session:
            session.add(Property(id="prop_new", organization_id=ORG_ID, name="1 New Rd"))

        assert count_properties(store) == 5

    def test_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.add(Property(id="prop_new", organization_id=ORG_ID, name="1 New Rd"))
                raise RuntimeError("boom")

        assert count_properties(store) == 4

    def test_rolls_back_when_budget_exceeded(self):
        # Seeding uses readings 0 and 1; the next transaction takes 20 seconds
        store = make_store(clock=StepClock(0, 1, 100, 120))

        with pytest.raises(TransactionTimeoutError) as exc_info:
            with store.transaction() as session:
                session.add(Property(id="prop_slow", organization_id=ORG_ID, name="Slow Rd"))

        assert exc_info.value.elapsed == 20
        assert exc_info.value.budget == 15
        assert count_properties(store) == 4

    def test_per_call_timeout_overrides_default(self):
        store = make_store(clock=StepClock(0, 1, 100, 103))

        with pytest.raises(TransactionTimeoutError):
            with store.transaction(timeout=2) as session:
                session.add(Property(id="prop_slow", organization_id=ORG_ID, name="Slow Rd"))
