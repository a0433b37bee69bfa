"""
Bilingual metadata generation through Azure OpenAI.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncAzureOpenAI
from pydantic import ValidationError

from catalog.core.config import Settings, settings as default_settings
from catalog.core.exceptions import UpstreamFailureError
from catalog.core.logging import get_logger
from catalog.schemas.dataset import ColumnInfo, GeneratedMetadata

logger = get_logger(__name__)


METADATA_SYSTEM_PROMPT = """
You are a bilingual (English and Arabic) metadata generator for datasets. Analyze the provided dataset content and generate comprehensive metadata in both languages.

The input will be provided in an XML-like format:
<filename>original file name of the dataset</filename>
<data>detailed column information including names, data types, and sample values</data>

Guidelines:
1. Use the file name and column data to generate natural, descriptive titles
2. Create detailed descriptions explaining the dataset's purpose, contents, and potential uses
3. Suggest relevant tags for easy discovery
4. Categorize the dataset appropriately
5. Ensure all text fields are provided in both English and Arabic
6. Keep tags in English only for consistency
7. Use proper Arabic grammar and vocabulary

Respond with a single JSON object. Example output:
{
  "title_en": "UAE Economic Indicators 2020-2023",
  "title_ar": "مؤشرات اقتصاد الإمارات 2020-2023",
  "description_en": "Comprehensive dataset covering key economic indicators of the UAE including GDP, inflation rates, and employment statistics from 2020 to 2023.",
  "description_ar": "مجموعة بيانات شاملة تغطي المؤشرات الاقتصادية الرئيسية لدولة الإمارات بما في ذلك الناتج المحلي الإجمالي ومعدلات التضخم وإحصاءات التوظيف من 2020 إلى 2023.",
  "tags": ["economics", "uae", "gdp", "employment", "financial-indicators"],
  "category_en": "Economics",
  "category_ar": "الاقتصاد",
  "subcategory_en": "Financial Indicators",
  "subcategory_ar": "المؤشرات المالية"
}
""".strip()

_TEXT_FIELDS = (
    "title_en",
    "title_ar",
    "description_en",
    "description_ar",
    "category_en",
    "category_ar",
    "subcategory_en",
    "subcategory_ar",
)

# Structural schema for the model; lengths are enforced by GeneratedMetadata
METADATA_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        **{name: {"type": "string"} for name in _TEXT_FIELDS},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": [*_TEXT_FIELDS, "tags"],
    "additionalProperties": False,
}


def build_prompt_content(original_filename: str, columns: List[ColumnInfo]) -> str:
    """Render the user prompt describing a dataset's name and columns."""
    sample_data = [
        {
            "name": column.name,
            "type": column.data_type.value,
            "samples": column.sample_values,
        }
        for column in columns
    ]
    return (
        f"<filename>{original_filename}</filename>\n\n"
        f"<data>{json.dumps(sample_data, indent=2, ensure_ascii=False)}</data>"
    )


class MetadataGenerator:
    """Calls the chat completions API and validates the returned metadata."""

    def __init__(
        self,
        client: AsyncAzureOpenAI,
        deployment: str,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.deployment = deployment
        self.timeout = timeout

    async def generate(self, content: str) -> GeneratedMetadata:
        """
        Generate bilingual metadata for a dataset description.

        Args:
            content: Prompt content built by ``build_prompt_content``

        Returns:
            Validated metadata

        Raises:
            UpstreamFailureError: If the call fails, times out or returns invalid metadata
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.deployment,
                messages=[
                    {"role": "system", "content": METADATA_SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "dataset_metadata",
                        "schema": METADATA_RESPONSE_SCHEMA,
                        "strict": True,
                    },
                },
                timeout=self.timeout,
            )
        except (openai.APIError, asyncio.TimeoutError) as e:
            logger.error("AI metadata request failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamFailureError(f"AI metadata request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise UpstreamFailureError("AI returned an empty response")

        try:
            metadata = GeneratedMetadata.model_validate_json(response.choices[0].message.content)
        except ValidationError as e:
            logger.warning("AI returned invalid metadata", errors=e.error_count())
            raise UpstreamFailureError(
                "AI returned invalid metadata",
                details={"errors": json.loads(e.json())},
            ) from e

        if response.usage is not None:
            logger.info(
                "AI metadata generated",
                model=self.deployment,
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        return metadata

    async def close(self) -> None:
        await self.client.close()


def create_metadata_generator(config: Settings = default_settings) -> MetadataGenerator:
    """
    Build a generator backed by an Azure OpenAI client from settings.

    Raises:
        UpstreamFailureError: If the Azure OpenAI credentials are missing
    """
    if not config.ai_configured:
        raise UpstreamFailureError("Azure OpenAI is not configured")

    client = AsyncAzureOpenAI(
        api_key=config.azure_openai_api_key,
        azure_endpoint=config.azure_openai_endpoint,
        api_version=config.azure_openai_api_version,
    )
    return MetadataGenerator(
        client=client,
        deployment=config.azure_openai_deployment,
        timeout=config.ai_timeout_seconds,
    )
