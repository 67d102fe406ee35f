"""
Ingestion pipeline: Extractor -> Annotator -> Graph Store.

Composes the three stages for single inputs, single URLs and batches of
URLs. Each ingest is one logical flow with at most one outstanding
inference call and one graph transaction.
"""

import time
import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from xoptymiz.config import config
from xoptymiz.errors import DeadlineExceededError, InvalidInputError
from xoptymiz.extraction.annotator import Annotator
from xoptymiz.extraction.data_models import ContentInput, Entity, NormalizedContent, Relationship
from xoptymiz.extraction.extractor import ContentExtractor
from xoptymiz.extraction.kg_extractor import InferenceStrategy, LLMInferenceStrategy, build_llm
from xoptymiz.graph.models import IngestReceipt, Page
from xoptymiz.graph.store import GraphStore, build_page, extract_domain

logger = logging.getLogger(__name__)


class ProcessOptions(BaseModel):
    """Per-call annotation limits and an optional deadline in seconds."""
    max_entities: int = Field(default_factory=lambda: config.MAX_ENTITIES)
    min_importance: int = Field(default_factory=lambda: config.MIN_ENTITY_IMPORTANCE)
    deadline: Optional[float] = Field(default_factory=lambda: config.INGEST_DEADLINE)


class GraphMetrics(BaseModel):
    node_count: int = 0
    edge_count: int = 0
    density: float = 0.0
    avg_importance: float = 0.0


class ProcessedContent(BaseModel):
    """Everything produced by one ingest."""
    page: Page
    content: NormalizedContent
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    annotation_method: str = "local"
    receipt: IngestReceipt
    graph_metrics: GraphMetrics
    confidence: float = 0.0
    processing_time_ms: float = 0.0


class BatchItemResult(BaseModel):
    url: str
    success: bool
    result: Optional[ProcessedContent] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: List[BatchItemResult] = Field(default_factory=list)


def compute_graph_metrics(entities: List[Entity], relationships: List[Relationship]) -> GraphMetrics:
    """Node/edge counts, undirected density and mean importance of one annotation."""
    node_count = len(entities)
    edge_count = len(relationships)
    max_edges = node_count * (node_count - 1) / 2
    return GraphMetrics(
        node_count=node_count,
        edge_count=edge_count,
        density=edge_count / max_edges if max_edges > 0 else 0.0,
        avg_importance=sum(e.importance for e in entities) / node_count if node_count else 0.0,
    )


def overall_confidence(entities: List[Entity], relationships: List[Relationship]) -> float:
    """Mean of the average entity confidence and the average relationship confidence."""
    if not entities:
        return 0.0
    entity_confidence = sum(e.confidence for e in entities) / len(entities)
    relationship_confidence = (
        sum(r.confidence for r in relationships) / len(relationships) if relationships else 0.0
    )
    return (entity_confidence + relationship_confidence) / 2


class IngestionPipeline:
    """Runs content through extraction, annotation and graph storage."""

    def __init__(self,
                 extractor: ContentExtractor,
                 annotator: Annotator,
                 store: GraphStore,
                 batch_size: Optional[int] = None,
                 batch_delay_ms: Optional[int] = None):
        self.extractor = extractor
        self.annotator = annotator
        self.store = store
        self.batch_size = batch_size or config.BATCH_SIZE
        self.batch_delay_ms = config.BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms

    async def process_url(self, url: str, options: Optional[ProcessOptions] = None) -> ProcessedContent:
        """
        Fetch and ingest one URL.

        Raises:
            InvalidInputError: the url is empty or not http(s)
        """
        if not url or not extract_domain(url):
            raise InvalidInputError(f"Invalid URL: {url!r}")
        return await self.process_content(ContentInput(url=url), options)

    async def process_content(self,
                              content_input: ContentInput,
                              options: Optional[ProcessOptions] = None) -> ProcessedContent:
        """
        Ingest one piece of content.

        Args:
            content_input: url, html or text
            options: Annotation limits and optional deadline

        Returns:
            ProcessedContent with the stored page and the annotation

        Raises:
            ExtractionError: the input could not be extracted
            StoreError: the graph transaction failed
            DeadlineExceededError: the deadline expired first
        """
        options = options or ProcessOptions()
        if options.deadline is None:
            return await self._process(content_input, options)

        try:
            return await asyncio.wait_for(self._process(content_input, options), timeout=options.deadline)
        except asyncio.TimeoutError as e:
            logger.error(f"Ingest exceeded deadline of {options.deadline}s")
            raise DeadlineExceededError(f"Ingest exceeded deadline of {options.deadline}s", e) from e

    async def _process(self, content_input: ContentInput, options: ProcessOptions) -> ProcessedContent:
        start_time = time.perf_counter()

        content = await self.extractor.extract(content_input)
        logger.info(f"Extracted '{content.title}': {content.word_count} words, {content.sentence_count} sentences")

        annotation = await self.annotator.annotate(content.text, options.max_entities, options.min_importance)

        page = build_page(content)
        receipt = await self.store.ingest(page, annotation.entities, annotation.relationships)
        page = page.model_copy(update={"id": receipt.page_id, "version": receipt.page_version})

        processing_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Processed {page.url} in {processing_time_ms:.0f}ms")

        return ProcessedContent(
            page=page,
            content=content,
            entities=annotation.entities,
            relationships=annotation.relationships,
            annotation_method=annotation.method,
            receipt=receipt,
            graph_metrics=compute_graph_metrics(annotation.entities, annotation.relationships),
            confidence=overall_confidence(annotation.entities, annotation.relationships),
            processing_time_ms=processing_time_ms,
        )

    async def process_batch(self,
                            urls: List[str],
                            options: Optional[ProcessOptions] = None,
                            batch_size: Optional[int] = None,
                            delay_ms: Optional[int] = None) -> BatchResult:
        """
        Ingest URLs in groups, pausing between groups.

        A failing URL is recorded in its BatchItemResult and never aborts the batch.
        """
        batch_size = batch_size or self.batch_size
        delay_ms = self.batch_delay_ms if delay_ms is None else delay_ms
        logger.info(f"Processing batch of {len(urls)} URLs in groups of {batch_size}")

        results: List[BatchItemResult] = []
        for start in range(0, len(urls), batch_size):
            group = urls[start:start + batch_size]
            results.extend(await asyncio.gather(*(self._process_batch_item(url, options) for url in group)))

            if start + batch_size < len(urls) and delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)

        successful = sum(1 for r in results if r.success)
        logger.info(f"Batch complete: {successful}/{len(results)} succeeded")
        return BatchResult(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )

    async def _process_batch_item(self, url: str, options: Optional[ProcessOptions]) -> BatchItemResult:
        try:
            result = await self.process_url(url, options)
        except Exception as e:
            logger.error(f"Failed to process {url}: {e}")
            return BatchItemResult(url=url, success=False, error=str(e))
        return BatchItemResult(url=url, success=True, result=result)


def build_inference(use_llm: bool = True) -> Optional[InferenceStrategy]:
    """Configured LLM inference strategy, or None when disabled or no API key is set."""
    if not use_llm:
        return None
    if not config.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set - annotating with local methods only")
        return None
    return LLMInferenceStrategy(build_llm())


def build_pipeline(store: GraphStore, use_llm: bool = True) -> IngestionPipeline:
    """Pipeline with the production extractor and annotator around the given store."""
    return IngestionPipeline(
        extractor=ContentExtractor(),
        annotator=Annotator(inference=build_inference(use_llm)),
        store=store,
    )
