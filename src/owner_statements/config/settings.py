"""Configuration settings for the owner statement engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence
    database_url: str = Field(
        default="sqlite:///owner_statements.db", validation_alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, validation_alias="DATABASE_ECHO")
    transaction_timeout_seconds: float = Field(
        default=15.0,
        validation_alias="TRANSACTION_TIMEOUT_SECONDS",
        description="Wall-clock budget of a single database transaction",
    )

    # Import limits
    batch_max_statements: int = Field(default=100, validation_alias="BATCH_MAX_STATEMENTS")
    batch_statement_chunk_size: int = Field(
        default=25, validation_alias="BATCH_STATEMENT_CHUNK_SIZE"
    )
    expense_chunk_size: int = Field(default=200, validation_alias="EXPENSE_CHUNK_SIZE")
    vendor_import_max_rows: int = Field(default=1000, validation_alias="VENDOR_IMPORT_MAX_ROWS")
    invoice_property_chunk_size: int = Field(
        default=10, validation_alias="INVOICE_PROPERTY_CHUNK_SIZE"
    )
    retention_months: int = Field(
        default=24,
        validation_alias="RETENTION_MONTHS",
        description="Oldest statement month accepted by batch imports",
    )
    host_fee_rate: float = Field(default=0.15, validation_alias="HOST_FEE_RATE")

    # Gemini invoice extraction (optional: without a key the extractor is unavailable)
    google_api_key: SecretStr | None = Field(default=None, validation_alias="GOOGLE_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    llm_max_tokens: int = Field(default=8192, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.0, validation_alias="LLM_TEMPERATURE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
