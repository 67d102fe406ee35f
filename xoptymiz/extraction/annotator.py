"""
Annotator: derives entities and relationships from normalized text.

Combines the pluggable primary inference strategy with the local lexical
and pattern extractors, merges the results by identity key and infers
co-occurrence relationships between the retained entities.
"""

import logging
from typing import Dict, Iterable, List, Optional

from xoptymiz.config import config
from .data_models import AnnotationResult, Entity
from .entity_extractor import LexicalEntityExtractor, PatternEntityExtractor
from .kg_extractor import InferenceStrategy
from .relationship_analyzer import RelationshipAnalyzer

logger = logging.getLogger(__name__)


class Annotator:
    """Second pipeline stage: text -> AnnotationResult."""

    def __init__(self,
                 inference: Optional[InferenceStrategy] = None,
                 relationship_analyzer: Optional[RelationshipAnalyzer] = None):
        """
        Args:
            inference: Primary inference strategy; local methods only when omitted
            relationship_analyzer: Analyzer used for relationship inference
        """
        self.inference = inference
        self.relationship_analyzer = relationship_analyzer or RelationshipAnalyzer()

    async def annotate(self,
                       text: str,
                       max_entities: Optional[int] = None,
                       min_importance: Optional[int] = None) -> AnnotationResult:
        """
        Annotate a text.

        Args:
            text: Normalized plain text
            max_entities: Number of entities kept after filtering
            min_importance: Entities below this importance are dropped

        Returns:
            AnnotationResult with ``method`` set to ``ai+local`` when the
            primary inference succeeded and ``local`` otherwise
        """
        max_entities = config.MAX_ENTITIES if max_entities is None else max_entities
        min_importance = config.MIN_ENTITY_IMPORTANCE if min_importance is None else min_importance

        ai_entities = await self._infer(text)
        method = "local" if ai_entities is None else "ai+local"

        nlp_entities = LexicalEntityExtractor.extract(text)
        pattern_entities = PatternEntityExtractor.extract(text)
        logger.debug(
            f"Local methods found {len(nlp_entities)} lexical and {len(pattern_entities)} pattern entities"
        )

        merged = self.merge_entities([ai_entities or [], nlp_entities, pattern_entities])
        entities = self.select_entities(merged, max_entities, min_importance)
        relationships = self.relationship_analyzer.analyze(entities, text)

        logger.info(
            f"Annotated text with {len(entities)} entities and {len(relationships)} relationships ({method})"
        )
        return AnnotationResult(entities=entities, relationships=relationships, method=method)

    async def _infer(self, text: str) -> Optional[List[Entity]]:
        """Primary inference; None when it is unavailable or failed."""
        if self.inference is None:
            return None
        if not text.strip():
            logger.debug("Skipping primary inference for empty text")
            return None

        try:
            return await self.inference.infer(text)
        except Exception as e:
            logger.warning(f"Primary inference failed, continuing with local methods: {type(e).__name__}: {e}")
            return None

    @staticmethod
    def merge_entities(sources: Iterable[List[Entity]]) -> List[Entity]:
        """
        Merge entity lists by identity key.

        Sources are given in priority order; for duplicate keys the record
        with strictly higher confidence replaces the earlier one, so ties keep
        the earlier source. Order of first appearance is preserved.
        """
        merged: Dict[str, Entity] = {}
        for entities in sources:
            for entity in entities:
                current = merged.get(entity.key)
                if current is None or entity.confidence > current.confidence:
                    merged[entity.key] = entity
        return list(merged.values())

    @staticmethod
    def select_entities(entities: List[Entity], max_entities: int, min_importance: int) -> List[Entity]:
        """Drop entities below ``min_importance`` and keep the ``max_entities`` most important."""
        retained = [e for e in entities if e.importance >= min_importance]
        retained.sort(key=lambda e: e.importance, reverse=True)
        return retained[:max(max_entities, 0)]
