"""
Relationship analyzer for entities that appear close together in text.

Mentions of all entities are merged into one position-sorted list and swept
with a fixed character window, so only pairs that actually co-occur are ever
scored. Each scored pair gets a deterministic type from the schema table.
"""

import re
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from xoptymiz.config import config
from .data_models import Entity, Relationship
from .kg_schema import KGSchemaValidator

logger = logging.getLogger(__name__)


class RelationshipAnalyzer:
    """Infers typed, weighted relationships from entity co-occurrence."""

    # Mentions further apart than this many characters never interact
    PROXIMITY_WINDOW = 100

    # Proximity at which strength reaches 1.0. Dividing by 10 instead would keep any single pair at or below MIN_STRENGTH
    STRENGTH_SATURATION = 0.5

    # Pairs at or below this strength are discarded
    MIN_STRENGTH = 0.1

    MAX_EVIDENCE = 3

    SENTENCE_PATTERN = re.compile(r'[^.!?]+[.!?]*')

    def __init__(self,
                 schema: Optional[KGSchemaValidator] = None,
                 max_relationships: Optional[int] = None):
        self.schema = schema or KGSchemaValidator()
        self.max_relationships = max_relationships if max_relationships is not None else config.MAX_RELATIONSHIPS

    @staticmethod
    def find_mentions(text: str, entity_text: str) -> List[int]:
        """Start offsets of every case-insensitive occurrence of ``entity_text``."""
        needle = entity_text.lower()
        if not needle:
            return []
        haystack = text.lower()

        positions = []
        index = haystack.find(needle)
        while index != -1:
            positions.append(index)
            index = haystack.find(needle, index + len(needle))
        return positions

    @classmethod
    def proximity_scores(cls, entities: List[Entity], text: str) -> Dict[Tuple[int, int], float]:
        """
        Sum ``1 / (1 + distance)`` over co-occurring mention pairs.

        Args:
            entities: Entities whose mentions are located in the text
            text: Source text

        Returns:
            Mapping of (lower entity index, higher entity index) to proximity
        """
        spans: List[Tuple[int, int, int]] = []
        for index, entity in enumerate(entities):
            for position in cls.find_mentions(text, entity.text):
                spans.append((position, position + len(entity.text), index))

        # "Acme" inside "Acme Corp" is part of the longer name, not a separate mention
        mentions = sorted(
            (start, index) for start, end, index in spans
            if not any(
                other_start <= start and end <= other_end and other_end - other_start > end - start
                for other_start, other_end, _ in spans
            )
        )

        scores: Dict[Tuple[int, int], float] = defaultdict(float)
        for i, (position, first) in enumerate(mentions):
            for other_position, second in mentions[i + 1:]:
                distance = other_position - position
                if distance >= cls.PROXIMITY_WINDOW:
                    break
                if first == second:
                    continue
                pair = (min(first, second), max(first, second))
                scores[pair] += 1.0 / (1.0 + distance)

        return dict(scores)

    @classmethod
    def strength_for(cls, proximity: float) -> float:
        return min(proximity / cls.STRENGTH_SATURATION, 1.0)

    def analyze(self, entities: List[Entity], text: str) -> List[Relationship]:
        """
        Infer relationships between entities mentioned near each other.

        Args:
            entities: Retained entities for the text
            text: Source text

        Returns:
            Relationships sorted by strength (strongest first), capped
        """
        if len(entities) < 2 or not text:
            return []

        sentences = [s.strip() for s in self.SENTENCE_PATTERN.findall(text) if s.strip()]
        relationships = []

        for (first, second), proximity in self.proximity_scores(entities, text).items():
            strength = self.strength_for(proximity)
            if strength <= self.MIN_STRENGTH:
                continue

            source, target = entities[first], entities[second]
            rel_type, reversed_direction = self.schema.resolve(source.type, target.type)
            if reversed_direction:
                source, target = target, source

            relationships.append(Relationship(
                from_entity_id=source.id,
                to_entity_id=target.id,
                type=rel_type,
                strength=strength,
                confidence=min(source.confidence * target.confidence * strength, 1.0),
                description=f"{source.text} {rel_type.lower().replace('_', ' ')} {target.text}",
                evidence=self._find_evidence(sentences, source.text, target.text),
                from_text=source.text,
                to_text=target.text,
            ))

        relationships.sort(key=lambda r: r.strength, reverse=True)
        if len(relationships) > self.max_relationships:
            logger.debug(f"Capping {len(relationships)} relationships at {self.max_relationships}")
            relationships = relationships[:self.max_relationships]

        logger.info(f"Found {len(relationships)} relationships between {len(entities)} entities")
        return relationships

    def _find_evidence(self, sentences: List[str], first: str, second: str) -> List[str]:
        """Sentences that mention both entity texts."""
        first, second = first.lower(), second.lower()
        evidence = []
        for sentence in sentences:
            lowered = sentence.lower()
            if first in lowered and second in lowered:
                evidence.append(sentence)
                if len(evidence) >= self.MAX_EVIDENCE:
                    break
        return evidence
