"""
Unit tests for the Azure OpenAI metadata generator.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from catalog.core.config import Settings
from catalog.core.exceptions import UpstreamFailureError
from catalog.models.dataset import DataType
from catalog.schemas.dataset import ColumnInfo
from catalog.services.ai_service import (
    METADATA_RESPONSE_SCHEMA,
    MetadataGenerator,
    build_prompt_content,
    create_metadata_generator,
)


def completion(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


@pytest.fixture
def mock_openai_client():
    """Create a mock AsyncAzureOpenAI client."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


class TestMetadataGenerator:
    """Structured output parsing and failure mapping."""

    @pytest.mark.asyncio
    async def test_valid_response(self, mock_openai_client, sample_metadata):
        mock_openai_client.chat.completions.create.return_value = completion(
            json.dumps(sample_metadata, ensure_ascii=False),
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=80),
        )
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini", timeout=30)

        metadata = await generator.generate("<filename>x.csv</filename>")

        assert metadata.title_ar == sample_metadata["title_ar"]
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["timeout"] == 30
        assert kwargs["messages"][0]["role"] == "system"
        assert "bilingual" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1] == {"role": "user", "content": "<filename>x.csv</filename>"}
        assert kwargs["response_format"]["json_schema"]["schema"] == METADATA_RESPONSE_SCHEMA

    @pytest.mark.asyncio
    async def test_too_few_tags_rejected(self, mock_openai_client, sample_metadata):
        sample_metadata["tags"] = ["one"]
        mock_openai_client.chat.completions.create.return_value = completion(json.dumps(sample_metadata))
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini")

        with pytest.raises(UpstreamFailureError, match="invalid metadata"):
            await generator.generate("content")

    @pytest.mark.asyncio
    async def test_short_description_rejected(self, mock_openai_client, sample_metadata):
        sample_metadata["description_en"] = "Short"
        mock_openai_client.chat.completions.create.return_value = completion(json.dumps(sample_metadata))
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini")

        with pytest.raises(UpstreamFailureError):
            await generator.generate("content")

    @pytest.mark.asyncio
    async def test_malformed_json_rejected(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = completion("{not json")
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini")

        with pytest.raises(UpstreamFailureError):
            await generator.generate("content")

    @pytest.mark.asyncio
    async def test_empty_response_rejected(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = completion(None)
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini")

        with pytest.raises(UpstreamFailureError, match="empty"):
            await generator.generate("content")

    @pytest.mark.asyncio
    async def test_api_error_mapped(self, mock_openai_client):
        request = httpx.Request("POST", "https://example.openai.azure.com/openai/deployments/x/chat/completions")
        mock_openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        generator = MetadataGenerator(mock_openai_client, deployment="gpt-4o-mini")

        with pytest.raises(UpstreamFailureError, match="request failed"):
            await generator.generate("content")


def test_prompt_content_format():
    columns = [
        ColumnInfo(name="year", data_type=DataType.NUMBER, sample_values=["2020", "2021"]),
        ColumnInfo(name="city", data_type=DataType.STRING, sample_values=["دبي"]),
    ]

    content = build_prompt_content("indicators.csv", columns)

    header, data = content.split("\n\n", 1)
    assert header == "<filename>indicators.csv</filename>"
    assert data.startswith("<data>") and data.endswith("</data>")
    assert json.loads(data[len("<data>"):-len("</data>")]) == [
        {"name": "year", "type": "number", "samples": ["2020", "2021"]},
        {"name": "city", "type": "string", "samples": ["دبي"]},
    ]


def test_factory_requires_credentials():
    with pytest.raises(UpstreamFailureError, match="not configured"):
        create_metadata_generator(Settings(azure_openai_api_key=None, azure_openai_endpoint=None))


def test_factory_builds_generator():
    config = Settings(
        azure_openai_api_key="key",
        azure_openai_endpoint="https://example.openai.azure.com",
        azure_openai_deployment="catalog-gpt",
        ai_timeout_seconds=12,
    )

    generator = create_metadata_generator(config)

    assert generator.deployment == "catalog-gpt"
    assert generator.timeout == 12
