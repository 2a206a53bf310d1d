"""External model clients for invoice extraction."""

from owner_statements.clients.gemini import (
    ExtractionError,
    GeminiInvoiceExtractor,
    InvoiceExtractor,
)

__all__ = [
    "ExtractionError",
    "GeminiInvoiceExtractor",
    "InvoiceExtractor",
]
