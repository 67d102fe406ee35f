"""
Extraction module for turning raw content into typed entities and relationships.

This module implements a hybrid annotation approach combining:
- HTML main-content extraction with BeautifulSoup
- LLM-based entity inference through llama_index
- Deterministic lexical and pattern extraction with proximity-based relationships
"""

from .metadata_extractor import MetadataExtractor
from .content_parser import ContentParser
from .extractor import ContentExtractor
from .entity_extractor import LexicalEntityExtractor, PatternEntityExtractor
from .relationship_analyzer import RelationshipAnalyzer
from .kg_extractor import InferenceStrategy, LLMInferenceStrategy, build_llm
from .kg_schema import KGSchemaValidator
from .annotator import Annotator
from .data_models import (
    AnnotationResult,
    ContentInput,
    Entity,
    EntityType,
    NormalizedContent,
    Relationship,
)

__all__ = [
    "MetadataExtractor",
    "ContentParser",
    "ContentExtractor",
    "LexicalEntityExtractor",
    "PatternEntityExtractor",
    "RelationshipAnalyzer",
    "InferenceStrategy",
    "LLMInferenceStrategy",
    "build_llm",
    "KGSchemaValidator",
    "Annotator",
    "AnnotationResult",
    "ContentInput",
    "Entity",
    "EntityType",
    "NormalizedContent",
    "Relationship",
]
