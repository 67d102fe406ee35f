"""
Process-local graph store with the same merge rules as the Neo4j store.
"""

import copy
import time
import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from xoptymiz.errors import StoreError
from xoptymiz.extraction.data_models import Entity, Relationship
from .models import (
    ContentGap,
    Domain,
    EntityStat,
    ExportOptions,
    GraphEdge,
    GraphNode,
    GraphVisualization,
    IngestReceipt,
    OverviewStats,
    Page,
    PageSummary,
    TypeCount,
)
from .store import GraphStore, edge_width, fold_entities, fold_relationships, node_size

logger = logging.getLogger(__name__)


class GraphState:
    """Everything the in-memory store holds; copied wholesale per transaction."""

    def __init__(self):
        self.pages: Dict[str, Page] = {}
        self.entities: Dict[str, Entity] = {}
        # (page url, entity id) -> containment importance
        self.contains: Dict[Tuple[str, str], int] = {}
        self.relationships: Dict[Tuple[str, str, str], Relationship] = {}
        self.domains: Dict[str, Domain] = {}

    def domain_page_urls(self, domain: str) -> Set[str]:
        return {url for url, page in self.pages.items() if page.domain == domain}

    def pages_containing(self, entity_id: str, urls: Optional[Set[str]] = None) -> List[str]:
        return sorted(
            url for (url, eid) in self.contains
            if eid == entity_id and (urls is None or url in urls)
        )

    def domain_entity_ids(self, domain: str) -> Set[str]:
        urls = self.domain_page_urls(domain)
        return {eid for (url, eid) in self.contains if url in urls}


class InMemoryGraphStore(GraphStore):
    """
    Dictionary-backed graph store.

    Ingests are serialized with an ``asyncio.Lock``. Each ingest works on a
    deep copy of the state that replaces the live state only once every step
    succeeded, so a failure leaves the store exactly as it was.
    """

    def __init__(self):
        self._state = GraphState()
        self._lock = asyncio.Lock()

    async def ingest(self,
                     page: Page,
                     entities: List[Entity],
                     relationships: List[Relationship]) -> IngestReceipt:
        start_time = time.perf_counter()

        async with self._lock:
            staged = copy.deepcopy(self._state)
            try:
                receipt = self._apply(staged, page, entities, relationships)
            except Exception as e:
                logger.error(f"Graph transaction for {page.url} failed, rolled back: {e}")
                raise StoreError(f"Graph transaction failed: {e}", e) from e
            self._state = staged

        receipt.processing_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Stored page {receipt.page_url} v{receipt.page_version}: "
            f"{receipt.entities_stored} entities, {receipt.relationships_stored} relationships"
        )
        return receipt

    def _apply(self,
               state: GraphState,
               page: Page,
               entities: List[Entity],
               relationships: List[Relationship]) -> IngestReceipt:
        stored_page = self._upsert_page(state, page)
        if stored_page.domain:
            self._upsert_domain(state, stored_page.domain)

        entity_ids = set()
        for entity in fold_entities(entities):
            self._upsert_entity(state, entity)
            self._link_entity(state, stored_page.url, entity)
            entity_ids.add(entity.id)

        stored = skipped = 0
        for relationship in fold_relationships(relationships):
            if relationship.from_entity_id not in entity_ids or relationship.to_entity_id not in entity_ids:
                logger.warning(
                    f"Skipping relationship: entities not found "
                    f"({relationship.from_text or relationship.from_entity_id} -> "
                    f"{relationship.to_text or relationship.to_entity_id})"
                )
                skipped += 1
                continue
            self._upsert_relationship(state, relationship)
            stored += 1

        self._recompute_page_counts(state, entity_ids)
        if stored_page.domain:
            self._recompute_domain(state, stored_page.domain)

        return IngestReceipt(
            page_id=stored_page.id,
            page_url=stored_page.url,
            page_version=stored_page.version,
            domain=stored_page.domain,
            entities_stored=len(entity_ids),
            relationships_stored=stored,
            relationships_skipped=skipped,
        )

    def _upsert_page(self, state: GraphState, page: Page) -> Page:
        existing = state.pages.get(page.url)
        stored = page.model_copy(update={
            "id": existing.id if existing else page.id,
            "version": existing.version + 1 if existing else 1,
            "processed_at": datetime.now(),
        })
        state.pages[page.url] = stored
        return stored

    def _upsert_domain(self, state: GraphState, name: str) -> None:
        domain = state.domains.setdefault(name, Domain(name=name))
        domain.last_processed = datetime.now()

    def _upsert_entity(self, state: GraphState, entity: Entity) -> None:
        existing = state.entities.get(entity.id)
        if existing is None:
            state.entities[entity.id] = entity.model_copy(update={"mention_count": 1, "page_count": 1}, deep=True)
            return
        existing.importance = max(existing.importance, entity.importance)
        existing.confidence = (existing.confidence + entity.confidence) / 2
        existing.mention_count += 1

    def _link_entity(self, state: GraphState, page_url: str, entity: Entity) -> None:
        key = (page_url, entity.id)
        state.contains[key] = max(state.contains.get(key, 0), entity.importance)

    def _upsert_relationship(self, state: GraphState, relationship: Relationship) -> None:
        key = (relationship.from_entity_id, relationship.to_entity_id, relationship.type)
        existing = state.relationships.get(key)
        if existing is None:
            state.relationships[key] = relationship.model_copy(deep=True)
            return
        existing.strength = (existing.strength + relationship.strength) / 2
        existing.confidence = (existing.confidence + relationship.confidence) / 2

    def _recompute_page_counts(self, state: GraphState, entity_ids: Set[str]) -> None:
        for entity_id in entity_ids:
            state.entities[entity_id].page_count = len(state.pages_containing(entity_id))

    def _recompute_domain(self, state: GraphState, name: str) -> None:
        domain = state.domains[name]
        domain.page_count = len(state.domain_page_urls(name))
        domain.entity_count = len(state.domain_entity_ids(name))

    async def export_pages(self, domain: str, options: ExportOptions) -> List[PageSummary]:
        state = self._state
        summaries = []
        for url in state.domain_page_urls(domain):
            importances = {eid: imp for (page_url, eid), imp in state.contains.items() if page_url == url}
            summaries.append(PageSummary(
                page=state.pages[url].model_copy(),
                entities=[state.entities[eid].model_copy(deep=True) for eid in importances],
                entity_count=len(importances),
                avg_importance=sum(importances.values()) / len(importances) if importances else 0.0,
            ))

        sort_keys = {
            "importance": lambda s: s.avg_importance,
            "entities": lambda s: s.entity_count,
            "date": lambda s: s.page.processed_at.timestamp(),
        }
        primary = sort_keys[options.sort_by]
        summaries.sort(key=lambda s: s.page.url)
        summaries.sort(key=primary, reverse=True)
        return summaries[:options.max_pages]

    async def overview(self, domain: str) -> OverviewStats:
        state = self._state
        stored = state.domains.get(domain)
        if stored is None:
            return OverviewStats()

        entity_ids = state.domain_entity_ids(domain)
        relationship_count = sum(
            1 for (source, target, _) in state.relationships
            if source in entity_ids and target in entity_ids
        )
        return OverviewStats(
            page_count=stored.page_count,
            entity_count=stored.entity_count,
            relationship_count=relationship_count,
            last_processed=stored.last_processed,
        )

    def _domain_entities(self, domain: str) -> List[Entity]:
        state = self._state
        return [state.entities[eid] for eid in state.domain_entity_ids(domain)]

    async def top_entities(self, domain: str, limit: int) -> List[EntityStat]:
        ranked = sorted(
            self._domain_entities(domain),
            key=lambda e: (-e.importance, -e.mention_count, e.text),
        )
        return [
            EntityStat(
                id=e.id,
                text=e.text,
                type=e.type,
                importance=e.importance,
                mention_count=e.mention_count,
                page_count=e.page_count,
                confidence=e.confidence,
            )
            for e in ranked[:limit]
        ]

    async def entity_types(self, domain: str) -> List[TypeCount]:
        counts = Counter(e.type for e in self._domain_entities(domain))
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0].value))
        return [TypeCount(type=entity_type, count=count) for entity_type, count in ordered]

    async def content_gaps(self, domain: str, min_importance: int, limit: int) -> List[ContentGap]:
        state = self._state
        urls = state.domain_page_urls(domain)
        gaps = []
        for entity in self._domain_entities(domain):
            if entity.importance < min_importance:
                continue
            pages = state.pages_containing(entity.id, urls)
            if len(pages) == 1:
                gaps.append(ContentGap(
                    id=entity.id,
                    text=entity.text,
                    type=entity.type,
                    importance=entity.importance,
                    page_url=pages[0],
                ))
        gaps.sort(key=lambda g: (-g.importance, g.text))
        return gaps[:limit]

    async def visualize(self, domain: str, max_nodes: int = 50, min_importance: int = 5) -> GraphVisualization:
        state = self._state
        urls = state.domain_page_urls(domain)

        candidates = [
            (entity, len(state.pages_containing(entity.id, urls)))
            for entity in self._domain_entities(domain)
            if entity.importance >= min_importance
        ]
        candidates.sort(key=lambda item: (-item[0].importance, -item[1], item[0].text))

        nodes = [
            GraphNode(
                id=entity.id,
                label=entity.text,
                type=entity.type,
                importance=entity.importance,
                page_count=page_count,
                size=node_size(entity.importance),
            )
            for entity, page_count in candidates[:max_nodes]
        ]
        node_ids = {node.id for node in nodes}

        relationships = sorted(
            (r for r in state.relationships.values()
             if r.from_entity_id in node_ids and r.to_entity_id in node_ids),
            key=lambda r: r.strength,
            reverse=True,
        )
        edges = [
            GraphEdge(
                source=r.from_entity_id,
                target=r.to_entity_id,
                type=r.type,
                strength=r.strength,
                width=edge_width(r.strength),
            )
            for r in relationships
        ]
        return GraphVisualization(nodes=nodes, edges=edges)

    async def get_page(self, url: str) -> Optional[Page]:
        page = self._state.pages.get(url)
        return page.model_copy() if page else None

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        entity = self._state.entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    async def get_domain(self, name: str) -> Optional[Domain]:
        domain = self._state.domains.get(name)
        return domain.model_copy() if domain else None

    async def list_relationships(self) -> List[Relationship]:
        return [r.model_copy(deep=True) for r in self._state.relationships.values()]

    async def health_check(self) -> bool:
        return True
