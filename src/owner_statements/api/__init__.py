"""Operation dispatch for the transport layer."""

from owner_statements.api.router import StatementRouter

__all__ = ["StatementRouter"]
