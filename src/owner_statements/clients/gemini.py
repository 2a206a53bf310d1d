"""Google Gemini invoice extractor.

Uses the google-genai SDK (v1.0+) to read a PDF invoice and return expense
line items keyed by property name.
"""

import json
import re
from typing import Any, Protocol

import structlog
from google import genai
from google.genai import types

from owner_statements.config import get_settings

logger = structlog.get_logger(__name__)

# The model sometimes wraps its JSON in prose or code fences
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

EXTRACTION_PROMPT = """You are an expert data extraction assistant specializing in property management invoices.
You will receive a PDF invoice file. Invoices can vary significantly in format, including tables, lists, or less structured text.
You will also receive a list of known property names relevant to this invoice context:
KNOWN PROPERTY NAMES:
{property_list}

Your task is to extract expense line items from the PDF and associate them with the correct property from the KNOWN PROPERTY NAMES list.

For each expense line item you can confidently match to a property in the KNOWN list, extract ONLY the following details:
1. "date": The date the expense occurred or was invoiced. Format as YYYY-MM-DD if possible, otherwise use the exact format found. If no date is available, provide an empty string.
2. "amount": The cost of the specific line item as a number, removing any currency symbols.

Format your response STRICTLY as a JSON object where:
- Each key is a property name taken *exactly* from the provided KNOWN PROPERTY NAMES list.
- Each value is an array of expense objects: {{"date": "...", "amount": ...}}.

Respond ONLY with the raw JSON object."""


class ExtractionError(Exception):
    """The extraction model is unavailable or returned unusable output."""


class InvoiceExtractor(Protocol):
    """Reads a PDF invoice into ``{property_name: [{"date": ..., "amount": ...}]}``."""

    async def extract(
        self, pdf_bytes: bytes, property_names: list[str]
    ) -> dict[str, list[dict[str, Any]]]: ...


def build_prompt(property_names: list[str]) -> str:
    """Render the extraction prompt for a list of known property names."""
    return EXTRACTION_PROMPT.format(
        property_list="\n".join(f"- {name}" for name in property_names)
    )


def parse_extraction_text(text: str) -> dict[str, list[dict[str, Any]]]:
    """Pull the JSON object out of the model's reply.

    Raises:
        ExtractionError: If no JSON object is found or it has the wrong shape.
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        raise ExtractionError("Model response did not contain a JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Model response was not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionError("Model response was not a JSON object")
    for name, expenses in data.items():
        if not isinstance(expenses, list):
            raise ExtractionError(f"Expenses for {name!r} were not a list")
    return data


class GeminiInvoiceExtractor:
    """Invoice extractor backed by Google's Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.google_api_key is not None:
            api_key = settings.google_api_key.get_secret_value()
        self._api_key = api_key
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature

        self._client = genai.Client(api_key=self._api_key) if self._api_key else None

        self._logger = logger.bind(client="gemini", model=self._model_name)

    @property
    def available(self) -> bool:
        return self._client is not None

    async def extract(
        self, pdf_bytes: bytes, property_names: list[str]
    ) -> dict[str, list[dict[str, Any]]]:
        """Extract expense line items from a PDF invoice.

        Args:
            pdf_bytes: Raw PDF file contents.
            property_names: Canonical property names the model may use as keys.

        Returns:
            Mapping of property name to ``{"date", "amount"}`` dicts.

        Raises:
            ExtractionError: If the API key is missing, the call fails, or the
                reply cannot be parsed.
        """
        if self._client is None:
            raise ExtractionError("Gemini API key is not configured")

        self._logger.debug(
            "extracting_invoice",
            pdf_bytes=len(pdf_bytes),
            property_count=len(property_names),
        )

        config = types.GenerateContentConfig(
            max_output_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        contents: list[Any] = [
            build_prompt(property_names),
            types.Part.from_bytes(data=pdf_bytes, mime_type="application/pdf"),
        ]

        try:
            response = self._client.models.generate_content(
                model=self._model_name,
                contents=contents,
                config=config,
            )
        except Exception as e:
            self._logger.error("api_error", error=str(e))
            raise ExtractionError(f"Failed to parse invoice with AI: {e}") from e

        extracted = parse_extraction_text(response.text or "")

        self._logger.info(
            "invoice_extracted",
            properties=len(extracted),
            expenses=sum(len(items) for items in extracted.values()),
        )
        return extracted
