"""Tests for the Gemini invoice extractor."""

from unittest.mock import MagicMock, patch

import pytest

from owner_statements.clients import ExtractionError, GeminiInvoiceExtractor
from owner_statements.clients.gemini import build_prompt, parse_extraction_text


@pytest.fixture
def mock_client():
    with patch("owner_statements.clients.gemini.genai.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value = client
        yield client_cls, client


class TestParseExtractionText:
    """Tests for parse_extraction_text."""

    def test_plain_json(self):
        text = '{"123 Main St": [{"date": "2024-06-03", "amount": 45.5}]}'

        assert parse_extraction_text(text) == {"123 Main St": [{"date": "2024-06-03", "amount": 45.5}]}

    def test_json_wrapped_in_code_fence(self):
        text = 'Here you go:\n```json\n{"456 Oak Ave": []}\n```'

        assert parse_extraction_text(text) == {"456 Oak Ave": []}

    @pytest.mark.parametrize(
        "text",
        ["", "no json here", "{not json}", '{"123 Main St": {"amount": 1}}'],
    )
    def test_rejects_unusable_replies(self, text):
        with pytest.raises(ExtractionError):
            parse_extraction_text(text)


class TestBuildPrompt:
    """Tests for prompt rendering."""

    def test_lists_property_names(self):
        prompt = build_prompt(["123 Main St", "456 Oak Ave"])

        assert "- 123 Main St\n- 456 Oak Ave" in prompt
        assert '{"date": "...", "amount": ...}' in prompt


class TestGeminiInvoiceExtractor:
    """Tests for GeminiInvoiceExtractor."""

    def test_uses_api_key_from_settings(self, mock_client):
        client_cls, _ = mock_client

        extractor = GeminiInvoiceExtractor()

        assert extractor.available is True
        client_cls.assert_called_once_with(api_key="test-key")

    def test_unavailable_without_key(self, mock_client):
        client_cls, _ = mock_client

        extractor = GeminiInvoiceExtractor(api_key="")

        assert extractor.available is False
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_extract_without_key_raises(self):
        extractor = GeminiInvoiceExtractor(api_key="")

        with pytest.raises(ExtractionError, match="not configured"):
            await extractor.extract(b"%PDF", ["123 Main St"])

    @pytest.mark.asyncio
    async def test_extract_sends_prompt_and_pdf(self, mock_client):
        _, client = mock_client
        client.models.generate_content.return_value = MagicMock(
            text='```json\n{"123 Main St": [{"date": "2024-06-03", "amount": 45.5}]}\n```'
        )
        extractor = GeminiInvoiceExtractor(model="gemini-test", max_tokens=512, temperature=0.0)

        result = await extractor.extract(b"%PDF-1.4", ["123 Main St"])

        assert result == {"123 Main St": [{"date": "2024-06-03", "amount": 45.5}]}
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert "- 123 Main St" in kwargs["contents"][0]
        assert kwargs["contents"][1].inline_data.mime_type == "application/pdf"
        assert kwargs["contents"][1].inline_data.data == b"%PDF-1.4"
        assert kwargs["config"].max_output_tokens == 512

    @pytest.mark.asyncio
    async def test_api_error_becomes_extraction_error(self, mock_client):
        _, client = mock_client
        client.models.generate_content.side_effect = RuntimeError("503 unavailable")
        extractor = GeminiInvoiceExtractor()

        with pytest.raises(ExtractionError, match="503 unavailable"):
            await extractor.extract(b"%PDF", ["123 Main St"])

    @pytest.mark.asyncio
    async def test_empty_reply(self, mock_client):
        _, client = mock_client
        client.models.generate_content.return_value = MagicMock(text=None)
        extractor = GeminiInvoiceExtractor()

        with pytest.raises(ExtractionError, match="did not contain"):
            await extractor.extract(b"%PDF", ["123 Main St"])
