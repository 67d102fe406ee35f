"""Tests for the annotator: source merging, caps and primary inference fallback."""

import asyncio

import pytest

from xoptymiz.errors import AnnotationParseError
from xoptymiz.extraction.annotator import Annotator
from xoptymiz.extraction.data_models import Entity, EntityType

from tests.conftest import ALICE_TEXT, StubInference


def entity(text, entity_type=EntityType.CONCEPT, importance=6, confidence=0.7, source="nlp"):
    return Entity(text=text, type=entity_type, importance=importance, confidence=confidence, source=source)


class TestMergeEntities:

    def test_highest_confidence_wins(self):
        merged = Annotator.merge_entities([
            [entity("Python", confidence=0.6, source="ai")],
            [entity("python", confidence=0.7, source="nlp")],
            [entity("Python", EntityType.TECHNOLOGY, confidence=0.8, source="pattern")],
        ])

        assert len(merged) == 1
        assert merged[0].source == "pattern"
        assert merged[0].type == EntityType.TECHNOLOGY

    def test_ties_keep_earlier_source(self):
        merged = Annotator.merge_entities([
            [entity("Acme", EntityType.ORGANIZATION, confidence=0.8, source="ai")],
            [entity("ACME", EntityType.PERSON, confidence=0.8, source="nlp")],
        ])

        assert merged[0].source == "ai"
        assert merged[0].type == EntityType.ORGANIZATION

    def test_first_appearance_order(self):
        merged = Annotator.merge_entities([[entity("B"), entity("A")], [entity("b", confidence=0.9)]])
        assert [e.key for e in merged] == ["b", "a"]


class TestSelectEntities:

    def test_min_importance_filter(self):
        selected = Annotator.select_entities([entity("Low", importance=4), entity("High", importance=8)], 10, 5)
        assert [e.text for e in selected] == ["High"]

    def test_max_entities_keeps_most_important_stably(self):
        entities = [
            entity("First", importance=6),
            entity("Top", importance=9),
            entity("Second", importance=6),
            entity("Third", importance=6),
        ]
        selected = Annotator.select_entities(entities, 3, 1)
        assert [e.text for e in selected] == ["Top", "First", "Second"]


class TestAnnotate:

    @pytest.mark.asyncio
    async def test_local_methods_alone(self):
        result = await Annotator().annotate(ALICE_TEXT, max_entities=25, min_importance=5)

        types = {e.text: e.type for e in result.entities}
        assert types["Alice"] == EntityType.PERSON
        assert types["Acme"] == EntityType.ORGANIZATION
        assert result.method == "local"

        works_for = [r for r in result.relationships if r.type == "WORKS_FOR"]
        assert len(works_for) == 1
        assert works_for[0].from_text == "Alice"
        assert works_for[0].to_text == "Acme"
        assert works_for[0].strength > 0.1

    @pytest.mark.asyncio
    async def test_primary_inference_contributes(self):
        inference = StubInference([
            Entity(text="Widgets", type=EntityType.PRODUCT, importance=8, confidence=0.95, source="ai"),
        ])
        result = await Annotator(inference=inference).annotate(ALICE_TEXT, max_entities=25, min_importance=5)

        assert result.method == "ai+local"
        assert inference.calls == 1
        assert {"Alice", "Acme", "Widgets"} <= {e.text for e in result.entities}
        develops = [r for r in result.relationships if r.type == "DEVELOPS"]
        assert develops and develops[0].from_text == "Acme"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        AnnotationParseError("bad json"),
        asyncio.TimeoutError(),
        ConnectionError("connection reset"),
    ])
    async def test_inference_failure_falls_back_to_local(self, error):
        inference = StubInference(error=error)
        result = await Annotator(inference=inference).annotate(ALICE_TEXT, max_entities=25, min_importance=5)

        assert result.method == "local"
        assert inference.calls == 1
        assert {"Alice", "Acme"} <= {e.text for e in result.entities}

    @pytest.mark.asyncio
    async def test_sentence_openers_do_not_outrank_real_relationships(self):
        text = "Alice works at Acme. Widgets are built there. Customers love them."
        result = await Annotator().annotate(text, max_entities=25, min_importance=5)

        assert {e.text for e in result.entities} == {"Alice", "Acme"}
        assert [(r.from_text, r.to_text, r.type) for r in result.relationships] == [("Alice", "Acme", "WORKS_FOR")]

    @pytest.mark.asyncio
    async def test_entity_cap(self):
        text = " ".join(f"Topic{i} Name." for i in range(40))
        result = await Annotator().annotate(text, max_entities=5, min_importance=1)
        assert len(result.entities) == 5

    @pytest.mark.asyncio
    async def test_relationship_cap(self):
        text = "Ann, Ben, Cal, Dee, Eve, Fay, Gus, Hal, Ian, Jo, Kim, Lee, Max, Ned, Oli, Pam, Rob, Sam, Tom."
        annotator = Annotator()
        annotator.relationship_analyzer.max_relationships = 4

        result = await annotator.annotate(text, max_entities=50, min_importance=1)
        assert len(result.relationships) == 4

    @pytest.mark.asyncio
    async def test_empty_text(self):
        inference = StubInference()
        result = await Annotator(inference=inference).annotate("", max_entities=25, min_importance=5)

        assert result.entities == []
        assert result.relationships == []
        assert inference.calls == 0
