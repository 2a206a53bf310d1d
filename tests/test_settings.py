"""Tests for configuration settings."""

import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from owner_statements.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.database_url == "sqlite://"
    assert settings.google_api_key is not None
    assert settings.google_api_key.get_secret_value() == "test-key"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from owner_statements.config.settings import get_settings

    settings = get_settings()

    assert settings.transaction_timeout_seconds == 15.0
    assert settings.batch_max_statements == 100
    assert settings.batch_statement_chunk_size == 25
    assert settings.expense_chunk_size == 200
    assert settings.vendor_import_max_rows == 1000
    assert settings.invoice_property_chunk_size == 10
    assert settings.retention_months == 24
    assert settings.host_fee_rate == 0.15
    assert settings.gemini_model == "gemini-2.5-flash"


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from owner_statements.config.settings import get_settings

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_settings_override_from_env(monkeypatch: pytest.MonkeyPatch):
    """Environment variables override defaults once the cache is cleared."""
    from owner_statements.config.settings import get_settings

    monkeypatch.setenv("EXPENSE_CHUNK_SIZE", "150")
    monkeypatch.setenv("LOG_FORMAT", "json")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.expense_chunk_size == 150
    assert settings.log_format == "json"


def test_configure_logging_accepts_both_formats():
    """configure_logging sets up structlog for console and json output."""
    import structlog

    from owner_statements.config import configure_logging

    configure_logging(level="DEBUG", format="json")
    configure_logging(level="INFO", format="console")

    assert structlog.is_configured()


def test_money_and_dates_rendered_as_strings():
    """Decimal and date event values become plain strings."""
    from datetime import date
    from decimal import Decimal

    from owner_statements.config.logging import render_money_and_dates

    event = render_money_and_dates(
        None, "info", {"event": "x", "grand_total": Decimal("12.50"), "month": date(2024, 6, 1), "n": 3}
    )

    assert event == {"event": "x", "grand_total": "12.50", "month": "2024-06-01", "n": 3}


def test_caller_log_context_binds_and_clears():
    """Caller fields are bound only inside the block."""
    import structlog

    from owner_statements.config import caller_log_context

    with caller_log_context("create", "org_test", "user_test"):
        bound = structlog.contextvars.get_contextvars()

    assert bound == {"operation": "create", "org_id": "org_test", "user_id": "user_test"}
    assert "operation" not in structlog.contextvars.get_contextvars()
