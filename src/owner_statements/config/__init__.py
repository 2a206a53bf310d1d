"""Settings and logging setup."""

from owner_statements.config.logging import caller_log_context, configure_logging
from owner_statements.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging", "caller_log_context"]
