"""
Graph store interface and the identity helpers shared by its implementations.

A store merges one page with its entities and relationships per ``ingest``
call, atomically, and serves the export and analytics read paths.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from xoptymiz.errors import NotFoundError
from xoptymiz.extraction.data_models import Entity, NormalizedContent, Relationship
from xoptymiz.extraction.kg_schema import normalize_relationship_type
from .llms_txt import CONTENT_URL_PREFIX, render_llms_txt, render_placeholder
from .models import (
    AnalyticsReport,
    AnalyticsRequest,
    ContentGap,
    Domain,
    EntityStat,
    ExportOptions,
    GraphVisualization,
    IngestReceipt,
    OverviewStats,
    Page,
    PageSummary,
    TextDocument,
    TypeCount,
)

logger = logging.getLogger(__name__)


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of an http(s) url without a leading ``www.``; None for anything else."""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    hostname = parsed.hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def page_id_for(url_or_title: str) -> str:
    return hashlib.md5(url_or_title.encode("utf-8")).hexdigest()


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_page(content: NormalizedContent) -> Page:
    """
    Page record for normalized content.

    Pages without a url are identified by ``content://<md5 of title>``.
    """
    page_id = page_id_for(content.url or content.title)
    return Page(
        id=page_id,
        url=content.url or f"{CONTENT_URL_PREFIX}{page_id}",
        title=content.title or "Untitled",
        word_count=content.word_count,
        readability=content.readability,
        content_hash=content_hash(content.text),
        processed_at=content.extracted_at,
        domain=extract_domain(content.url),
    )


def fold_entities(entities: List[Entity]) -> List[Entity]:
    """Collapse entities sharing an identity key so one call counts one mention each."""
    folded: Dict[str, Entity] = {}
    for entity in entities:
        current = folded.get(entity.key)
        if current is None:
            folded[entity.key] = entity.model_copy(deep=True)
            continue
        current.importance = max(current.importance, entity.importance)
        current.confidence = max(current.confidence, entity.confidence)
        current.description = current.description or entity.description
        for alias in entity.aliases:
            if alias not in current.aliases:
                current.aliases.append(alias)
    return list(folded.values())


def fold_relationships(relationships: List[Relationship]) -> List[Relationship]:
    """Collapse relationships sharing (from, to, type), averaging their weights."""
    folded: Dict[Tuple[str, str, str], Relationship] = {}
    for relationship in relationships:
        rel_type = normalize_relationship_type(relationship.type)
        key = (relationship.from_entity_id, relationship.to_entity_id, rel_type)
        current = folded.get(key)
        if current is None:
            folded[key] = relationship.model_copy(update={"type": rel_type}, deep=True)
            continue
        current.strength = (current.strength + relationship.strength) / 2
        current.confidence = (current.confidence + relationship.confidence) / 2
    return list(folded.values())


def node_size(importance: int) -> float:
    return max(10, importance * 3)


def edge_width(strength: float) -> float:
    return max(1, strength * 5)


class GraphStore(ABC):
    """Persistent property graph of pages, domains, entities and relationships."""

    @abstractmethod
    async def ingest(self,
                     page: Page,
                     entities: List[Entity],
                     relationships: List[Relationship]) -> IngestReceipt:
        """
        Merge one page and its annotations in a single transaction.

        Raises:
            StoreError: the transaction failed and nothing from this call was kept
        """

    @abstractmethod
    async def export_pages(self, domain: str, options: ExportOptions) -> List[PageSummary]:
        """Domain pages in export order, at most ``options.max_pages``."""

    @abstractmethod
    async def overview(self, domain: str) -> OverviewStats:
        pass

    @abstractmethod
    async def top_entities(self, domain: str, limit: int) -> List[EntityStat]:
        pass

    @abstractmethod
    async def entity_types(self, domain: str) -> List[TypeCount]:
        pass

    @abstractmethod
    async def content_gaps(self, domain: str, min_importance: int, limit: int) -> List[ContentGap]:
        pass

    @abstractmethod
    async def visualize(self, domain: str, max_nodes: int = 50, min_importance: int = 5) -> GraphVisualization:
        """Nodes and edges of the domain's entity graph for display."""

    @abstractmethod
    async def get_page(self, url: str) -> Optional[Page]:
        pass

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        pass

    @abstractmethod
    async def get_domain(self, name: str) -> Optional[Domain]:
        pass

    @abstractmethod
    async def list_relationships(self) -> List[Relationship]:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def _collect_export(self, domain: str, options: ExportOptions) -> List[PageSummary]:
        pages = await self.export_pages(domain, options)
        if not pages:
            raise NotFoundError(f"No content found for domain: {domain}")
        return pages

    async def export(self, domain: str, options: Optional[ExportOptions] = None) -> TextDocument:
        """
        Render the domain as an LLMs.txt document.

        A domain without pages yields a placeholder document instead of an error.
        """
        options = options or ExportOptions()
        try:
            pages = await self._collect_export(domain, options)
        except NotFoundError as e:
            logger.warning(f"{e} - returning placeholder document")
            return render_placeholder(domain)

        document = render_llms_txt(domain, pages, options)
        logger.info(f"Generated LLMs.txt for {domain} with {document.page_count} pages")
        return document

    async def query(self, request: AnalyticsRequest) -> AnalyticsReport:
        """Domain analytics: overview, top entities, type histogram, content gaps."""
        overview = await self.overview(request.domain)
        top_entities = await self.top_entities(request.domain, request.top_entities_limit)
        entity_types = await self.entity_types(request.domain)
        content_gaps = await self.content_gaps(
            request.domain, request.content_gap_min_importance, request.content_gap_limit
        )

        visualization = None
        if request.include_visualization:
            visualization = await self.visualize(request.domain, request.max_nodes, request.min_importance)

        return AnalyticsReport(
            domain=request.domain,
            overview=overview,
            top_entities=top_entities,
            entity_types=entity_types,
            content_gaps=content_gaps,
            visualization=visualization,
        )
