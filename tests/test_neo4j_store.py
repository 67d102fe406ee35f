"""Tests for the Neo4j graph store against a recording fake driver."""

from datetime import datetime

import pytest

from xoptymiz.errors import StoreError
from xoptymiz.extraction.data_models import Entity, EntityType, NormalizedContent, Relationship, entity_id_for
from xoptymiz.graph.models import AnalyticsRequest
from xoptymiz.graph.neo4j_store import Neo4jGraphStore
from xoptymiz.graph.schema import CONSTRAINTS, INDEXES, bootstrap_schema
from xoptymiz.graph.store import build_page

from tests.conftest import FakeDriver


PAGE = build_page(NormalizedContent(url="https://www.acme.com/a", title="Acme", text="Alice works at Acme."))
ALICE = Entity(text="Alice", type=EntityType.PERSON, importance=7, confidence=0.8)
ACME = Entity(text="Acme", type=EntityType.ORGANIZATION, importance=7, confidence=0.8)


def relationship(rel_type="works for"):
    return Relationship(
        from_entity_id=ALICE.id,
        to_entity_id=ACME.id,
        type=rel_type,
        strength=0.5,
        confidence=0.3,
    )


def statements(tx):
    return [query for query, _ in tx.queries]


class TestIngest:

    @pytest.mark.asyncio
    async def test_single_committed_transaction(self):
        driver = FakeDriver()
        store = Neo4jGraphStore(driver, database="graph")

        receipt = await store.ingest(PAGE, [ALICE, ACME], [relationship()])

        assert len(driver.transactions) == 1
        tx = driver.transactions[0]
        assert tx.committed
        assert not tx.rolled_back
        assert driver.databases == ["graph"]

        queries = statements(tx)
        assert "MERGE (p:Page {url: $url})" in queries[0]
        assert any("MERGE (d:Domain {name: $domain})" in q for q in queries)
        assert sum("MERGE (e:Entity {id: $entityId})" in q for q in queries) == 2
        assert any("MERGE (e1)-[r:WORKS_FOR]->(e2)" in q for q in queries)
        assert any("SET d.pageCount = pageCount" in q for q in queries)

        assert receipt.page_id == "page-id"
        assert receipt.page_version == 1
        assert receipt.domain == "acme.com"
        assert receipt.entities_stored == 2
        assert receipt.relationships_stored == 1

    @pytest.mark.asyncio
    async def test_page_version_comes_from_database(self):
        driver = FakeDriver({"RETURN p.id AS id, p.version AS version": [{"id": "existing", "version": 2}]})
        receipt = await Neo4jGraphStore(driver).ingest(PAGE, [ALICE], [])

        assert receipt.page_version == 2
        assert receipt.page_id == "existing"

    @pytest.mark.asyncio
    async def test_entity_parameters(self):
        driver = FakeDriver()
        await Neo4jGraphStore(driver).ingest(PAGE, [ALICE, Entity(text="alice", importance=9)], [])

        entity_params = [p for q, p in driver.transactions[0].queries if "MERGE (e:Entity" in q]
        assert len(entity_params) == 1
        assert entity_params[0]["entityId"] == entity_id_for("Alice")
        assert entity_params[0]["importance"] == 9
        assert entity_params[0]["type"] == "PERSON"

    @pytest.mark.asyncio
    async def test_unknown_endpoint_skipped(self):
        driver = FakeDriver()
        receipt = await Neo4jGraphStore(driver).ingest(PAGE, [ALICE], [relationship()])

        assert receipt.relationships_skipped == 1
        assert not any("MERGE (e1)" in q for q in statements(driver.transactions[0]))

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self):
        driver = FakeDriver(fail_on="MERGE (e1)")
        store = Neo4jGraphStore(driver)

        with pytest.raises(StoreError) as excinfo:
            await store.ingest(PAGE, [ALICE, ACME], [relationship()])

        tx = driver.transactions[0]
        assert tx.rolled_back
        assert not tx.committed
        assert isinstance(excinfo.value.original_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_content_page_has_no_domain_statements(self):
        driver = FakeDriver()
        page = build_page(NormalizedContent(title="Notes", text="Plain notes."))

        await Neo4jGraphStore(driver).ingest(page, [], [])

        queries = statements(driver.transactions[0])
        assert not any("Domain" in q for q in queries)


class TestReads:

    @pytest.mark.asyncio
    async def test_export_placeholder_when_no_pages(self):
        document = await Neo4jGraphStore(FakeDriver()).export("acme.com")
        assert document.is_placeholder

    @pytest.mark.asyncio
    async def test_export_renders_records(self):
        driver = FakeDriver({
            "RETURN page, entities, avgImportance, entityCount": [{
                "page": {
                    "id": "p1",
                    "url": "https://acme.com/a",
                    "title": "About Acme",
                    "wordCount": 120,
                    "version": 3,
                    "processedAt": datetime(2026, 1, 1),
                    "domain": "acme.com",
                },
                "entities": [{"id": ACME.id, "text": "Acme", "type": "ORGANIZATION", "importance": 8, "confidence": 0.9}],
                "avgImportance": 8.0,
                "entityCount": 1,
            }],
        })

        document = await Neo4jGraphStore(driver).export("acme.com")

        assert not document.is_placeholder
        assert "### Page 1: About Acme {#page-1}" in document.content
        assert "- **Acme** (ORGANIZATION) - Importance: 8, Confidence: 0.90" in document.content
        assert "ORDER BY avgImportance DESC, page.url ASC" in driver.reads[0][0]

    @pytest.mark.asyncio
    async def test_query_maps_records(self):
        driver = FakeDriver({
            "RETURN d.pageCount AS pageCount": [{
                "pageCount": 2, "entityCount": 3, "relationshipCount": 1, "lastProcessed": None,
            }],
            "RETURN e.type AS type, count(e) AS count": [{"type": "PERSON", "count": 2}],
            "e.mentionCount AS mentionCount, e.pageCount AS pageCount": [{
                "id": ALICE.id, "text": "Alice", "type": "PERSON", "importance": 7,
                "mentionCount": 2, "pageCount": 1, "confidence": 0.8,
            }],
        })

        report = await Neo4jGraphStore(driver).query(AnalyticsRequest(domain="acme.com"))

        assert report.overview.page_count == 2
        assert report.overview.relationship_count == 1
        assert report.top_entities[0].text == "Alice"
        assert report.entity_types[0].type == EntityType.PERSON
        assert report.content_gaps == []

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await Neo4jGraphStore(FakeDriver()).health_check()


class TestBootstrap:

    @pytest.mark.asyncio
    async def test_statements_are_idempotent(self):
        driver = FakeDriver()

        executed = await bootstrap_schema(driver)
        await bootstrap_schema(driver)

        assert executed == CONSTRAINTS + INDEXES
        assert all("IF NOT EXISTS" in statement for statement in executed)
        assert len(driver.reads) == 2 * len(executed)
