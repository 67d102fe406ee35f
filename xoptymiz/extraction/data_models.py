"""
Data models for the extraction module.

Defines the structure of normalized content, annotated entities and the
relationships inferred between them.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class EntityType(str, Enum):
    """Closed set of entity classifications."""
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"
    CONCEPT = "CONCEPT"
    TECHNOLOGY = "TECHNOLOGY"
    PRODUCT = "PRODUCT"
    EVENT = "EVENT"
    OTHER = "OTHER"


def identity_key(text: str) -> str:
    """Casefolded, trimmed entity text used to match repeated observations."""
    return text.strip().casefold()


def entity_id_for(text: str) -> str:
    """Stable entity id derived from the identity key."""
    return hashlib.md5(identity_key(text).encode("utf-8")).hexdigest()


class ContentInput(BaseModel):
    """Raw input handed to the extractor: a URL, an HTML document or plain text."""
    url: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    title: Optional[str] = None


class NormalizedContent(BaseModel):
    """Plain text body plus the structural metrics computed from it."""
    url: Optional[str] = None
    title: str = "Untitled"
    text: str = ""
    cleaned: str = ""
    excerpt: str = ""
    word_count: int = 0
    sentence_count: int = 0
    readability: float = 0.0
    extracted_at: datetime = Field(default_factory=datetime.now)


class Entity(BaseModel):
    """A named thing recognized in content."""
    id: str = ""
    text: str
    type: EntityType = EntityType.OTHER
    importance: int = Field(default=5, ge=1, le=10)
    description: str = ""
    aliases: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    mention_count: int = 1
    page_count: int = 1
    source: str = "ai"

    @model_validator(mode="after")
    def _derive_id(self) -> "Entity":
        if not self.id:
            self.id = entity_id_for(self.text)
        return self

    @property
    def key(self) -> str:
        return identity_key(self.text)


class Relationship(BaseModel):
    """Typed, directed, weighted edge between two entities."""
    from_entity_id: str
    to_entity_id: str
    type: str = "RELATED_TO"
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    description: str = ""
    evidence: List[str] = Field(default_factory=list)
    from_text: str = ""
    to_text: str = ""


class AnnotationResult(BaseModel):
    """Entities and relationships derived from one piece of text."""
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    method: str = "local"
