"""
Neo4j-backed graph store.

The store is handed an already-open async driver; connection management
and schema bootstrap (see ``schema.py``) stay with the caller. Each ingest
runs in one explicit transaction that is rolled back on any failure.
"""

import time
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from neo4j import AsyncDriver
from neo4j.exceptions import DriverError, Neo4jError

from xoptymiz.errors import StoreError
from xoptymiz.extraction.data_models import Entity, EntityType, Relationship
from xoptymiz.extraction.kg_schema import normalize_relationship_type
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


UPSERT_PAGE = """
MERGE (p:Page {url: $url})
ON CREATE SET
    p.id = $pageId,
    p.title = $title,
    p.wordCount = $wordCount,
    p.readability = $readability,
    p.contentHash = $contentHash,
    p.domain = $domain,
    p.createdAt = datetime(),
    p.version = 1
ON MATCH SET
    p.title = $title,
    p.wordCount = $wordCount,
    p.readability = $readability,
    p.contentHash = $contentHash,
    p.domain = $domain,
    p.updatedAt = datetime(),
    p.version = p.version + 1
SET p.processedAt = datetime()
RETURN p.id AS id, p.version AS version
"""

UPSERT_DOMAIN = """
MERGE (d:Domain {name: $domain})
ON CREATE SET
    d.createdAt = datetime(),
    d.pageCount = 0,
    d.entityCount = 0
SET d.lastProcessed = datetime()
WITH d
MATCH (p:Page {url: $url})
MERGE (d)-[:CONTAINS]->(p)
"""

UPSERT_ENTITY = """
MERGE (e:Entity {id: $entityId})
ON CREATE SET
    e.text = $text,
    e.type = $type,
    e.importance = $importance,
    e.description = $description,
    e.aliases = $aliases,
    e.confidence = $confidence,
    e.createdAt = datetime(),
    e.mentionCount = 1,
    e.pageCount = 1
ON MATCH SET
    e.importance = CASE
        WHEN $importance > e.importance THEN $importance
        ELSE e.importance
    END,
    e.confidence = ($confidence + e.confidence) / 2,
    e.mentionCount = e.mentionCount + 1,
    e.updatedAt = datetime()
"""

LINK_ENTITY = """
MATCH (p:Page {url: $url}), (e:Entity {id: $entityId})
MERGE (p)-[r:CONTAINS]->(e)
ON CREATE SET
    r.createdAt = datetime(),
    r.importance = $importance,
    r.confidence = $confidence
ON MATCH SET
    r.importance = CASE
        WHEN $importance > r.importance THEN $importance
        ELSE r.importance
    END,
    r.updatedAt = datetime()
"""

# Relationship types cannot be parameters; the type is normalized before formatting
UPSERT_RELATIONSHIP = """
MATCH (e1:Entity {{id: $fromId}}), (e2:Entity {{id: $toId}})
MERGE (e1)-[r:{rel_type}]->(e2)
ON CREATE SET
    r.strength = $strength,
    r.confidence = $confidence,
    r.description = $description,
    r.evidence = $evidence,
    r.createdAt = datetime()
ON MATCH SET
    r.strength = (r.strength + $strength) / 2,
    r.confidence = (r.confidence + $confidence) / 2,
    r.updatedAt = datetime()
"""

RECOMPUTE_PAGE_COUNTS = """
UNWIND $entityIds AS entityId
MATCH (e:Entity {id: entityId})
OPTIONAL MATCH (p:Page)-[:CONTAINS]->(e)
WITH e, count(DISTINCT p) AS pageCount
SET e.pageCount = pageCount
"""

RECOMPUTE_DOMAIN = """
MATCH (d:Domain {name: $domain})
OPTIONAL MATCH (d)-[:CONTAINS]->(p:Page)
OPTIONAL MATCH (p)-[:CONTAINS]->(e:Entity)
WITH d, count(DISTINCT p) AS pageCount, count(DISTINCT e) AS entityCount
SET d.pageCount = pageCount,
    d.entityCount = entityCount,
    d.lastUpdated = datetime()
"""

EXPORT_ORDER = {
    "importance": "avgImportance DESC",
    "entities": "entityCount DESC",
    "date": "page.processedAt DESC",
}

EXPORT_PAGES = """
MATCH (:Domain {{name: $domain}})-[:CONTAINS]->(p:Page)
OPTIONAL MATCH (p)-[pc:CONTAINS]->(e:Entity)
WITH p {{.*}} AS page,
     collect(e {{.id, .text, .type, .importance, .confidence, .mentionCount, .pageCount}}) AS entities,
     coalesce(avg(pc.importance), 0.0) AS avgImportance,
     count(e) AS entityCount
RETURN page, entities, avgImportance, entityCount
ORDER BY {order}, page.url ASC
LIMIT $maxPages
"""

OVERVIEW = """
MATCH (d:Domain {name: $domain})
OPTIONAL MATCH (d)-[:CONTAINS]->(:Page)-[:CONTAINS]->(e:Entity)
WITH d, collect(DISTINCT e) AS entities
OPTIONAL MATCH (a:Entity)-[r]->(b:Entity)
WHERE a IN entities AND b IN entities
RETURN d.pageCount AS pageCount,
       size(entities) AS entityCount,
       count(r) AS relationshipCount,
       d.lastProcessed AS lastProcessed
"""

TOP_ENTITIES = """
MATCH (:Domain {name: $domain})-[:CONTAINS]->(:Page)-[:CONTAINS]->(e:Entity)
WITH DISTINCT e
RETURN e.id AS id, e.text AS text, e.type AS type, e.importance AS importance,
       e.mentionCount AS mentionCount, e.pageCount AS pageCount, e.confidence AS confidence
ORDER BY importance DESC, mentionCount DESC, text ASC
LIMIT $limit
"""

ENTITY_TYPES = """
MATCH (:Domain {name: $domain})-[:CONTAINS]->(:Page)-[:CONTAINS]->(e:Entity)
WITH DISTINCT e
RETURN e.type AS type, count(e) AS count
ORDER BY count DESC, type ASC
"""

CONTENT_GAPS = """
MATCH (:Domain {name: $domain})-[:CONTAINS]->(p:Page)-[:CONTAINS]->(e:Entity)
WHERE e.importance >= $minImportance
WITH e, collect(DISTINCT p.url) AS urls
WHERE size(urls) = 1
RETURN e.id AS id, e.text AS text, e.type AS type, e.importance AS importance, urls[0] AS pageUrl
ORDER BY importance DESC, text ASC
LIMIT $limit
"""

VISUALIZATION_NODES = """
MATCH (:Domain {name: $domain})-[:CONTAINS]->(p:Page)-[:CONTAINS]->(e:Entity)
WHERE e.importance >= $minImportance
WITH e, count(DISTINCT p) AS pageCount
RETURN e.id AS id, e.text AS text, e.type AS type, e.importance AS importance, pageCount
ORDER BY importance DESC, pageCount DESC, text ASC
LIMIT $maxNodes
"""

VISUALIZATION_EDGES = """
MATCH (e1:Entity)-[r]->(e2:Entity)
WHERE e1.id IN $ids AND e2.id IN $ids
RETURN e1.id AS source, e2.id AS target, type(r) AS type, r.strength AS strength
ORDER BY strength DESC
"""

GET_PAGE = "MATCH (p:Page {url: $url}) RETURN p {.*} AS page"
GET_ENTITY = "MATCH (e:Entity {id: $entityId}) RETURN e {.*} AS entity"
GET_DOMAIN = "MATCH (d:Domain {name: $name}) RETURN d {.*} AS domain"
LIST_RELATIONSHIPS = """
MATCH (a:Entity)-[r]->(b:Entity)
RETURN a.id AS fromId, b.id AS toId, a.text AS fromText, b.text AS toText,
       type(r) AS type, r.strength AS strength, r.confidence AS confidence,
       r.description AS description, r.evidence AS evidence
"""


def _to_datetime(value: Any) -> Optional[datetime]:
    """Convert neo4j temporal values to ``datetime``."""
    if value is None:
        return None
    if hasattr(value, "to_native"):
        return value.to_native()
    return value


def _page_from_props(props: Dict[str, Any]) -> Page:
    return Page(
        id=props.get("id", ""),
        url=props["url"],
        title=props.get("title") or "Untitled",
        word_count=props.get("wordCount") or 0,
        readability=props.get("readability") or 0.0,
        content_hash=props.get("contentHash") or "",
        version=props.get("version") or 1,
        processed_at=_to_datetime(props.get("processedAt")) or datetime.now(),
        domain=props.get("domain"),
    )


def _entity_from_props(props: Dict[str, Any]) -> Entity:
    return Entity(
        id=props["id"],
        text=props["text"],
        type=EntityType(props.get("type") or EntityType.OTHER.value),
        importance=props.get("importance") or 5,
        description=props.get("description") or "",
        aliases=list(props.get("aliases") or []),
        confidence=props.get("confidence") if props.get("confidence") is not None else 0.8,
        mention_count=props.get("mentionCount") or 1,
        page_count=props.get("pageCount") or 1,
    )


class Neo4jGraphStore(GraphStore):
    """Graph store on a Neo4j database via the async driver."""

    def __init__(self, driver: AsyncDriver, database: Optional[str] = None):
        """
        Args:
            driver: Open async driver; the store never closes it
            database: Target database, server default when omitted
        """
        self.driver = driver
        self.database = database

    async def ingest(self,
                     page: Page,
                     entities: List[Entity],
                     relationships: List[Relationship]) -> IngestReceipt:
        start_time = time.perf_counter()

        async with self.driver.session(database=self.database) as session:
            tx = await session.begin_transaction()
            try:
                receipt = await self._write(tx, page, entities, relationships)
                await tx.commit()
            except Exception as e:
                if not tx.closed():
                    await tx.rollback()
                logger.error(f"Graph transaction for {page.url} failed, rolled back: {e}")
                raise StoreError(f"Graph transaction failed: {e}", e) from e

        receipt.processing_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Stored page {receipt.page_url} v{receipt.page_version}: "
            f"{receipt.entities_stored} entities, {receipt.relationships_stored} relationships"
        )
        return receipt

    async def _write(self, tx, page: Page, entities: List[Entity], relationships: List[Relationship]) -> IngestReceipt:
        result = await tx.run(UPSERT_PAGE, {
            "url": page.url,
            "pageId": page.id,
            "title": page.title,
            "wordCount": page.word_count,
            "readability": page.readability,
            "contentHash": page.content_hash,
            "domain": page.domain,
        })
        record = await result.single()
        page_id = record["id"] if record else page.id
        version = record["version"] if record else 1

        if page.domain:
            await tx.run(UPSERT_DOMAIN, {"domain": page.domain, "url": page.url})

        entity_ids = []
        for entity in fold_entities(entities):
            await tx.run(UPSERT_ENTITY, {
                "entityId": entity.id,
                "text": entity.text,
                "type": entity.type.value,
                "importance": entity.importance,
                "description": entity.description,
                "aliases": entity.aliases,
                "confidence": entity.confidence,
            })
            await tx.run(LINK_ENTITY, {
                "url": page.url,
                "entityId": entity.id,
                "importance": entity.importance,
                "confidence": entity.confidence,
            })
            entity_ids.append(entity.id)

        stored = skipped = 0
        known = set(entity_ids)
        for relationship in fold_relationships(relationships):
            if relationship.from_entity_id not in known or relationship.to_entity_id not in known:
                logger.warning(
                    f"Skipping relationship: entities not found "
                    f"({relationship.from_text or relationship.from_entity_id} -> "
                    f"{relationship.to_text or relationship.to_entity_id})"
                )
                skipped += 1
                continue

            rel_type = normalize_relationship_type(relationship.type)
            await tx.run(UPSERT_RELATIONSHIP.format(rel_type=rel_type), {
                "fromId": relationship.from_entity_id,
                "toId": relationship.to_entity_id,
                "strength": relationship.strength,
                "confidence": relationship.confidence,
                "description": relationship.description,
                "evidence": relationship.evidence,
            })
            stored += 1

        if entity_ids:
            await tx.run(RECOMPUTE_PAGE_COUNTS, {"entityIds": entity_ids})
        if page.domain:
            await tx.run(RECOMPUTE_DOMAIN, {"domain": page.domain})

        return IngestReceipt(
            page_id=page_id,
            page_url=page.url,
            page_version=version,
            domain=page.domain,
            entities_stored=len(entity_ids),
            relationships_stored=stored,
            relationships_skipped=skipped,
        )

    async def _read(self, query: str, parameters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute a read query and return its records as dictionaries."""
        try:
            async with self.driver.session(database=self.database) as session:
                result = await session.run(query, parameters or {})
                return await result.data()
        except (Neo4jError, DriverError) as e:
            raise StoreError(f"Graph query failed: {e}", e) from e

    async def export_pages(self, domain: str, options: ExportOptions) -> List[PageSummary]:
        query = EXPORT_PAGES.format(order=EXPORT_ORDER[options.sort_by])
        records = await self._read(query, {"domain": domain, "maxPages": options.max_pages})
        return [
            PageSummary(
                page=_page_from_props(record["page"]),
                entities=[_entity_from_props(props) for props in record["entities"]],
                entity_count=record["entityCount"],
                avg_importance=record["avgImportance"] or 0.0,
            )
            for record in records
        ]

    async def overview(self, domain: str) -> OverviewStats:
        records = await self._read(OVERVIEW, {"domain": domain})
        if not records:
            return OverviewStats()
        record = records[0]
        return OverviewStats(
            page_count=record["pageCount"] or 0,
            entity_count=record["entityCount"] or 0,
            relationship_count=record["relationshipCount"] or 0,
            last_processed=_to_datetime(record["lastProcessed"]),
        )

    async def top_entities(self, domain: str, limit: int) -> List[EntityStat]:
        records = await self._read(TOP_ENTITIES, {"domain": domain, "limit": limit})
        return [
            EntityStat(
                id=r["id"],
                text=r["text"],
                type=EntityType(r["type"]),
                importance=r["importance"],
                mention_count=r["mentionCount"],
                page_count=r["pageCount"],
                confidence=r["confidence"],
            )
            for r in records
        ]

    async def entity_types(self, domain: str) -> List[TypeCount]:
        records = await self._read(ENTITY_TYPES, {"domain": domain})
        return [TypeCount(type=EntityType(r["type"]), count=r["count"]) for r in records]

    async def content_gaps(self, domain: str, min_importance: int, limit: int) -> List[ContentGap]:
        records = await self._read(CONTENT_GAPS, {
            "domain": domain,
            "minImportance": min_importance,
            "limit": limit,
        })
        return [
            ContentGap(
                id=r["id"],
                text=r["text"],
                type=EntityType(r["type"]),
                importance=r["importance"],
                page_url=r["pageUrl"],
            )
            for r in records
        ]

    async def visualize(self, domain: str, max_nodes: int = 50, min_importance: int = 5) -> GraphVisualization:
        node_records = await self._read(VISUALIZATION_NODES, {
            "domain": domain,
            "minImportance": min_importance,
            "maxNodes": max_nodes,
        })
        nodes = [
            GraphNode(
                id=r["id"],
                label=r["text"],
                type=EntityType(r["type"]),
                importance=r["importance"],
                page_count=r["pageCount"],
                size=node_size(r["importance"]),
            )
            for r in node_records
        ]
        if not nodes:
            return GraphVisualization()

        edge_records = await self._read(VISUALIZATION_EDGES, {"ids": [node.id for node in nodes]})
        edges = [
            GraphEdge(
                source=r["source"],
                target=r["target"],
                type=r["type"],
                strength=r["strength"],
                width=edge_width(r["strength"]),
            )
            for r in edge_records
        ]
        return GraphVisualization(nodes=nodes, edges=edges)

    async def get_page(self, url: str) -> Optional[Page]:
        records = await self._read(GET_PAGE, {"url": url})
        return _page_from_props(records[0]["page"]) if records else None

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        records = await self._read(GET_ENTITY, {"entityId": entity_id})
        return _entity_from_props(records[0]["entity"]) if records else None

    async def get_domain(self, name: str) -> Optional[Domain]:
        records = await self._read(GET_DOMAIN, {"name": name})
        if not records:
            return None
        props = records[0]["domain"]
        return Domain(
            name=props["name"],
            page_count=props.get("pageCount") or 0,
            entity_count=props.get("entityCount") or 0,
            last_processed=_to_datetime(props.get("lastProcessed")),
        )

    async def list_relationships(self) -> List[Relationship]:
        records = await self._read(LIST_RELATIONSHIPS)
        return [
            Relationship(
                from_entity_id=r["fromId"],
                to_entity_id=r["toId"],
                type=r["type"],
                strength=r["strength"],
                confidence=r["confidence"],
                description=r["description"] or "",
                evidence=list(r["evidence"] or []),
                from_text=r["fromText"],
                to_text=r["toText"],
            )
            for r in records
        ]

    async def health_check(self) -> bool:
        try:
            await self._read("RETURN 1 AS ok")
        except StoreError as e:
            logger.error(f"Neo4j health check failed: {e}")
            return False
        return True
