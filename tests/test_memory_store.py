"""Tests for the in-memory graph store merge rules and read paths."""

import pytest

from xoptymiz.errors import StoreError
from xoptymiz.extraction.data_models import Entity, EntityType, NormalizedContent, Relationship, entity_id_for
from xoptymiz.graph.memory_store import InMemoryGraphStore
from xoptymiz.graph.models import AnalyticsRequest, ExportOptions
from xoptymiz.graph.store import build_page, extract_domain


def page_for(url=None, title="Widget News", text="Alice works at Acme."):
    return build_page(NormalizedContent(url=url, title=title, text=text, word_count=len(text.split())))


def alice(importance=7, confidence=0.8):
    return Entity(text="Alice", type=EntityType.PERSON, importance=importance, confidence=confidence)


def acme(importance=7, confidence=0.8):
    return Entity(text="Acme", type=EntityType.ORGANIZATION, importance=importance, confidence=confidence)


def works_for(strength=0.4, confidence=0.3):
    return Relationship(
        from_entity_id=entity_id_for("Alice"),
        to_entity_id=entity_id_for("Acme"),
        type="WORKS_FOR",
        strength=strength,
        confidence=confidence,
        from_text="Alice",
        to_text="Acme",
    )


class TestIdentityHelpers:

    def test_extract_domain(self):
        assert extract_domain("https://www.Acme.com/about") == "acme.com"
        assert extract_domain("http://blog.acme.com") == "blog.acme.com"
        assert extract_domain("content://abc") is None
        assert extract_domain(None) is None

    def test_content_page_identity(self):
        page = page_for(url=None, title="Notes")
        assert page.url == f"content://{page.id}"
        assert page.domain is None
        assert len(page.content_hash) == 64


class TestIngest:

    @pytest.mark.asyncio
    async def test_first_ingest(self, store):
        receipt = await store.ingest(page_for("https://acme.com/a"), [alice(), acme()], [works_for()])

        assert receipt.page_version == 1
        assert receipt.domain == "acme.com"
        assert receipt.entities_stored == 2
        assert receipt.relationships_stored == 1
        assert receipt.relationships_skipped == 0

        domain = await store.get_domain("acme.com")
        assert domain.page_count == 1
        assert domain.entity_count == 2

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent_apart_from_counters(self, store):
        url = "https://acme.com/a"
        await store.ingest(page_for(url), [alice(), acme()], [works_for()])
        receipt = await store.ingest(page_for(url), [alice(), acme()], [works_for()])

        assert receipt.page_version == 2
        assert (await store.get_page(url)).version == 2
        assert len(await store.list_relationships()) == 1

        entity = await store.get_entity(entity_id_for("Alice"))
        assert entity.mention_count == 2
        assert entity.page_count == 1

        domain = await store.get_domain("acme.com")
        assert domain.page_count == 1
        assert domain.entity_count == 2

    @pytest.mark.asyncio
    async def test_entity_merge(self, store):
        await store.ingest(page_for("https://acme.com/a"), [alice(importance=5, confidence=0.6)], [])
        await store.ingest(page_for("https://acme.com/b"), [alice(importance=9, confidence=1.0)], [])
        await store.ingest(page_for("https://acme.com/c"), [alice(importance=6, confidence=0.4)], [])

        entity = await store.get_entity(entity_id_for("alice"))
        assert entity.importance == 9
        assert entity.confidence == pytest.approx(((0.6 + 1.0) / 2 + 0.4) / 2)
        assert entity.mention_count == 3
        assert entity.page_count == 3

    @pytest.mark.asyncio
    async def test_duplicate_keys_in_one_call_count_once(self, store):
        await store.ingest(page_for("https://acme.com/a"), [alice(), Entity(text="ALICE", type=EntityType.PERSON)], [])

        entity = await store.get_entity(entity_id_for("Alice"))
        assert entity.mention_count == 1

    @pytest.mark.asyncio
    async def test_relationship_weights_average(self, store):
        await store.ingest(page_for("https://acme.com/a"), [alice(), acme()], [works_for(0.4, 0.2)])
        await store.ingest(page_for("https://acme.com/b"), [alice(), acme()], [works_for(0.8, 0.6)])

        relationships = await store.list_relationships()
        assert len(relationships) == 1
        assert relationships[0].strength == pytest.approx(0.6)
        assert relationships[0].confidence == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_relationship_with_unknown_endpoint_is_skipped(self, store):
        receipt = await store.ingest(page_for("https://acme.com/a"), [alice()], [works_for()])

        assert receipt.relationships_stored == 0
        assert receipt.relationships_skipped == 1
        assert await store.list_relationships() == []

    @pytest.mark.asyncio
    async def test_containment_keeps_max_importance(self, store):
        url = "https://acme.com/a"
        await store.ingest(page_for(url), [acme(importance=8)], [])
        await store.ingest(page_for(url), [acme(importance=6)], [])

        document = await store.export("acme.com")
        assert "importance 8.00" in document.content

    @pytest.mark.asyncio
    async def test_content_pages_have_no_domain(self, store):
        receipt = await store.ingest(page_for(None, title="Notes"), [alice()], [])

        assert receipt.domain is None
        assert receipt.page_url.startswith("content://")
        assert await store.get_domain("") is None

    @pytest.mark.asyncio
    async def test_failed_ingest_rolls_back(self):
        class FailingStore(InMemoryGraphStore):
            def _upsert_relationship(self, state, relationship):
                raise RuntimeError("disk full")

        store = FailingStore()
        await store.ingest(page_for("https://acme.com/a"), [alice()], [])

        with pytest.raises(StoreError):
            await store.ingest(page_for("https://acme.com/a"), [alice(), acme()], [works_for()])

        assert (await store.get_page("https://acme.com/a")).version == 1
        assert await store.get_entity(entity_id_for("Acme")) is None
        assert (await store.get_entity(entity_id_for("Alice"))).mention_count == 1
        assert (await store.get_domain("acme.com")).entity_count == 1


class TestExport:

    @pytest.mark.asyncio
    async def test_empty_domain_gives_placeholder(self, store):
        document = await store.export("nothing.example")

        assert document.is_placeholder
        assert document.page_count == 0
        assert "nothing.example" in document.content
        assert "### Page" not in document.content

    @pytest.mark.asyncio
    async def test_sort_by_entities(self, store):
        await store.ingest(page_for("https://acme.com/one", title="One"), [alice()], [])
        await store.ingest(page_for("https://acme.com/two", title="Two"), [alice(), acme()], [])

        document = await store.export("acme.com", ExportOptions(sort_by="entities"))

        assert document.page_count == 2
        assert document.content.index("1. [Two](#page-1)") < document.content.index("2. [One](#page-2)")

    @pytest.mark.asyncio
    async def test_max_pages(self, store):
        for name in ("a", "b", "c"):
            await store.ingest(page_for(f"https://acme.com/{name}", title=name.upper()), [alice()], [])

        document = await store.export("acme.com", ExportOptions(max_pages=2))
        assert document.page_count == 2
        assert "### Page 3" not in document.content


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_query(self, store):
        important = Entity(text="Widgets", type=EntityType.PRODUCT, importance=9, confidence=0.9)
        await store.ingest(page_for("https://acme.com/a"), [alice(), acme(), important], [works_for()])
        await store.ingest(page_for("https://acme.com/b"), [acme(importance=8)], [])

        report = await store.query(AnalyticsRequest(domain="acme.com", include_visualization=True))

        assert report.overview.page_count == 2
        assert report.overview.entity_count == 3
        assert report.overview.relationship_count == 1
        assert [e.text for e in report.top_entities] == ["Widgets", "Acme", "Alice"]
        assert {t.type: t.count for t in report.entity_types} == {
            EntityType.PRODUCT: 1,
            EntityType.ORGANIZATION: 1,
            EntityType.PERSON: 1,
        }
        assert [g.text for g in report.content_gaps] == ["Widgets"]
        assert report.content_gaps[0].page_url == "https://acme.com/a"
        assert report.visualization is not None

    @pytest.mark.asyncio
    async def test_unknown_domain(self, store):
        report = await store.query(AnalyticsRequest(domain="nothing.example"))

        assert report.overview.page_count == 0
        assert report.top_entities == []
        assert report.visualization is None

    @pytest.mark.asyncio
    async def test_visualize(self, store):
        low = Entity(text="Footnote", type=EntityType.CONCEPT, importance=3)
        await store.ingest(page_for("https://acme.com/a"), [alice(), acme(importance=9), low], [works_for(0.1)])

        graph = await store.visualize("acme.com", max_nodes=10, min_importance=5)

        assert [n.label for n in graph.nodes] == ["Acme", "Alice"]
        assert graph.nodes[0].size == 27
        assert len(graph.edges) == 1
        assert graph.edges[0].width == 1

    @pytest.mark.asyncio
    async def test_visualize_edges_only_between_returned_nodes(self, store):
        await store.ingest(page_for("https://acme.com/a"), [alice(), acme(importance=9)], [works_for(0.9)])

        graph = await store.visualize("acme.com", max_nodes=1, min_importance=1)

        assert [n.label for n in graph.nodes] == ["Acme"]
        assert graph.edges == []
