"""
Knowledge graph schema: the closed entity type set and the deterministic
relationship type table keyed by ordered entity type pairs.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from .data_models import EntityType

DEFAULT_RELATIONSHIP_TYPE = "RELATED_TO"

ENTITY_TYPES: Sequence[Tuple[EntityType, str]] = (
    (EntityType.PERSON, "A named individual"),
    (EntityType.ORGANIZATION, "A company, institution or website"),
    (EntityType.LOCATION, "A city, country, region or address"),
    (EntityType.CONCEPT, "An idea, topic or field"),
    (EntityType.TECHNOLOGY, "A language, framework, protocol or tool"),
    (EntityType.PRODUCT, "A named product or service"),
    (EntityType.EVENT, "A named occurrence"),
    (EntityType.OTHER, "Anything else, including contact details"),
)

# Ordered (from, to) type pairs in priority order. Only the first match applies.
RELATIONSHIP_TYPES: Sequence[Tuple[EntityType, EntityType, str]] = (
    (EntityType.PERSON, EntityType.ORGANIZATION, "WORKS_FOR"),
    (EntityType.ORGANIZATION, EntityType.LOCATION, "LOCATED_IN"),
    (EntityType.PERSON, EntityType.PERSON, "ASSOCIATED_WITH"),
    (EntityType.CONCEPT, EntityType.TECHNOLOGY, "IMPLEMENTS"),
    (EntityType.ORGANIZATION, EntityType.PRODUCT, "DEVELOPS"),
    (EntityType.ORGANIZATION, EntityType.TECHNOLOGY, "USES"),
    (EntityType.PRODUCT, EntityType.TECHNOLOGY, "USES"),
    (EntityType.TECHNOLOGY, EntityType.PRODUCT, "POWERS"),
    (EntityType.PERSON, EntityType.LOCATION, "LOCATED_IN"),
    (EntityType.EVENT, EntityType.LOCATION, "LOCATED_IN"),
    (EntityType.PERSON, EntityType.EVENT, "PARTICIPATED_IN"),
    (EntityType.ORGANIZATION, EntityType.EVENT, "PARTICIPATED_IN"),
)


class KGSchemaValidator:
    """Validates and queries the knowledge graph schema definitions."""

    def __init__(self,
                 entities: Sequence[Tuple[EntityType, str]] = ENTITY_TYPES,
                 relations: Sequence[Tuple[EntityType, EntityType, str]] = RELATIONSHIP_TYPES):
        self.entities = entities
        self.relations = relations
        self._lookup: Dict[Tuple[EntityType, EntityType], str] = {}
        for source, target, rel_type in relations:
            self._lookup.setdefault((source, target), rel_type)

    def validate(self) -> bool:
        """Validate the schema structure."""
        if not all(isinstance(e, tuple) and len(e) == 2 for e in self.entities):
            raise ValueError("Entities must be tuples of (type, description)")

        if not all(isinstance(r, tuple) and len(r) == 3 for r in self.relations):
            raise ValueError("Relations must be tuples of (source type, target type, relation)")

        known = set(self.get_entity_types())
        for source, target, rel_type in self.relations:
            if source not in known or target not in known:
                raise ValueError(f"Relation {rel_type} references an unknown entity type")
            if normalize_relationship_type(rel_type) != rel_type:
                raise ValueError(f"Relation type {rel_type!r} is not a valid graph label")

        return True

    def get_entity_types(self) -> List[EntityType]:
        """Get list of entity types."""
        return [e[0] for e in self.entities]

    def lookup(self, source: EntityType, target: EntityType) -> Optional[str]:
        """Relationship type for an ordered type pair, or None when the table has no entry."""
        return self._lookup.get((source, target))

    def resolve(self, source: EntityType, target: EntityType) -> Tuple[str, bool]:
        """
        Pick the relationship type for two entities.

        Returns:
            (relationship type, reversed) where ``reversed`` means the edge
            should point from ``target`` to ``source``
        """
        forward = self.lookup(source, target)
        if forward:
            return forward, False
        backward = self.lookup(target, source)
        if backward:
            return backward, True
        return DEFAULT_RELATIONSHIP_TYPE, False


def normalize_relationship_type(rel_type: str) -> str:
    """Uppercase and replace anything that is not a valid label character."""
    return re.sub(r'[^A-Z0-9_]', '_', rel_type.upper())
