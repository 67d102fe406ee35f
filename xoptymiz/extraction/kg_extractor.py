"""
Primary entity inference through a hosted language model.

The annotator talks to an ``InferenceStrategy``; the production strategy
sends a schema prompt to a llama_index LLM and validates the JSON reply.
"""

import re
import json
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from llama_index.core.llms import LLM
from pydantic import BaseModel, Field, ValidationError, field_validator

from xoptymiz.config import config
from xoptymiz.errors import AnnotationParseError, ConfigurationError
from .data_models import Entity, EntityType

logger = logging.getLogger(__name__)

ENTITY_PROMPT = """
You are an expert content analyst. Extract named entities from this text and return ONLY valid JSON.

For each entity, determine:
- text: exact entity name
- type: PERSON, ORGANIZATION, LOCATION, CONCEPT, TECHNOLOGY, PRODUCT, EVENT, or OTHER
- importance: score 1-10 (10 = critical to understanding content)
- description: brief explanation of significance
- aliases: alternative names or variations
- confidence: 0.0-1.0 confidence in classification

Return format:
{{
  "entities": [
    {{
      "text": "Entity Name",
      "type": "ORGANIZATION",
      "importance": 8,
      "description": "Why this entity matters",
      "aliases": ["Alternative Name"],
      "confidence": 0.95
    }}
  ]
}}

Text to analyze:
{text}
"""

_CODE_FENCE = re.compile(r'^```(?:json)?\s*(.*?)\s*```$', re.DOTALL)


class InferredEntity(BaseModel):
    """One entity as returned by the inference service."""
    text: str = Field(min_length=1)
    type: EntityType
    importance: int = Field(ge=1, le=10)
    description: str = ""
    aliases: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value


class InferenceResponse(BaseModel):
    """Closed response schema: ``{"entities": [...]}``."""
    entities: List[InferredEntity] = Field(default_factory=list)


def parse_entities_response(raw: str) -> List[Entity]:
    """
    Parse an inference reply into entities.

    Args:
        raw: Text returned by the model; a surrounding markdown code fence is tolerated

    Returns:
        Entities tagged with source ``ai``

    Raises:
        AnnotationParseError: the reply is not JSON or does not match the schema
    """
    payload = (raw or "").strip()
    fenced = _CODE_FENCE.match(payload)
    if fenced:
        payload = fenced.group(1)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise AnnotationParseError(f"Inference response is not JSON: {e}", e) from e

    try:
        response = InferenceResponse.model_validate(data)
    except ValidationError as e:
        raise AnnotationParseError(f"Inference response does not match schema: {e}", e) from e

    return [
        Entity(
            text=item.text.strip(),
            type=item.type,
            importance=item.importance,
            description=item.description,
            aliases=item.aliases,
            confidence=item.confidence,
            source="ai",
        )
        for item in response.entities
    ]


class InferenceStrategy(ABC):
    """Narrow interface for the primary entity inference method."""

    @abstractmethod
    async def infer(self, text: str) -> List[Entity]:
        """Return entities for the text or raise on failure."""


class LLMInferenceStrategy(InferenceStrategy):
    """Extracts entities with one completion call to a llama_index LLM."""

    def __init__(self,
                 llm: LLM,
                 context_chars: Optional[int] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            llm: llama_index LLM
            context_chars: Maximum characters of text sent to the model
            timeout: Seconds before the call is abandoned
        """
        self.llm = llm
        self.context_chars = context_chars or config.LLM_CONTEXT_CHARS
        self.timeout = timeout or config.LLM_TIMEOUT

    def build_prompt(self, text: str) -> str:
        return ENTITY_PROMPT.format(text=text[:self.context_chars])

    async def infer(self, text: str) -> List[Entity]:
        prompt = self.build_prompt(text)
        logger.debug(f"Sending {len(prompt)} prompt characters to {self.llm}")

        response = await asyncio.wait_for(self.llm.acomplete(prompt), timeout=self.timeout)
        entities = parse_entities_response(response.text)

        logger.info(f"Extracted {len(entities)} entities using the language model")
        return entities


def build_llm(provider: Optional[str] = None,
              model: Optional[str] = None,
              temperature: Optional[float] = None,
              max_tokens: Optional[int] = None) -> LLM:
    """
    Construct the configured llama_index LLM.

    Raises:
        ConfigurationError: no API key, or an unknown provider
    """
    if not config.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY environment variable is required")

    provider = (provider or config.LLM_PROVIDER).lower()
    model_name = model or config.LLM_MODEL
    temperature = config.LLM_TEMPERATURE if temperature is None else temperature
    max_tokens = max_tokens or config.LLM_MAX_TOKENS

    kwargs = {
        "model": model_name,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "api_key": config.OPENAI_API_KEY,
        "max_retries": 0,
        "timeout": config.LLM_TIMEOUT,
    }
    if config.OPENAI_BASE_URL:
        kwargs["api_base"] = config.OPENAI_BASE_URL

    if provider == "deepseek":
        from llama_index.llms.deepseek import DeepSeek
        llm = DeepSeek(**kwargs)
    elif provider == "openai":
        from llama_index.llms.openai import OpenAI
        llm = OpenAI(**kwargs)
    else:
        raise ConfigurationError(f"Unknown LLM provider: {provider}")

    logger.info(f"Initialized {provider} LLM: {model_name} (base_url: {config.OPENAI_BASE_URL or 'default'})")
    return llm
