"""
Data models for the graph store: persisted nodes, ingest receipts and the
shapes returned by the export, analytics and visualization read paths.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from xoptymiz.extraction.data_models import Entity, EntityType


class Page(BaseModel):
    """A processed content page, identified by url."""
    id: str
    url: str
    title: str = "Untitled"
    word_count: int = 0
    readability: float = 0.0
    content_hash: str = ""
    version: int = 1
    processed_at: datetime = Field(default_factory=datetime.now)
    domain: Optional[str] = None


class Domain(BaseModel):
    """Hostname grouping of pages."""
    name: str
    page_count: int = 0
    entity_count: int = 0
    last_processed: Optional[datetime] = None


class IngestReceipt(BaseModel):
    """What one ingest call wrote."""
    page_id: str
    page_url: str
    page_version: int
    domain: Optional[str] = None
    entities_stored: int = 0
    relationships_stored: int = 0
    relationships_skipped: int = 0
    processing_time_ms: float = 0.0


class PageSummary(BaseModel):
    """A page with the entities it contains, as used by the export."""
    page: Page
    entities: List[Entity] = Field(default_factory=list)
    entity_count: int = 0
    avg_importance: float = 0.0


class ExportOptions(BaseModel):
    max_pages: int = Field(default=50, ge=1)
    include_metadata: bool = True
    sort_by: Literal["importance", "entities", "date"] = "importance"
    max_entities_per_page: int = Field(default=10, ge=0)


class TextDocument(BaseModel):
    """Rendered LLMs.txt export."""
    domain: str
    content: str
    page_count: int = 0
    generated_at: datetime = Field(default_factory=datetime.now)
    estimated_tokens: int = 0
    is_placeholder: bool = False


class AnalyticsRequest(BaseModel):
    domain: str
    top_entities_limit: int = Field(default=20, ge=0)
    content_gap_limit: int = Field(default=10, ge=0)
    content_gap_min_importance: int = Field(default=8, ge=1, le=10)
    include_visualization: bool = False
    max_nodes: int = Field(default=50, ge=0)
    min_importance: int = Field(default=5, ge=1, le=10)


class OverviewStats(BaseModel):
    page_count: int = 0
    entity_count: int = 0
    relationship_count: int = 0
    last_processed: Optional[datetime] = None


class EntityStat(BaseModel):
    id: str
    text: str
    type: EntityType
    importance: int
    mention_count: int
    page_count: int
    confidence: float


class TypeCount(BaseModel):
    type: EntityType
    count: int


class ContentGap(BaseModel):
    """An important entity covered by exactly one page of the domain."""
    id: str
    text: str
    type: EntityType
    importance: int
    page_url: str


class GraphNode(BaseModel):
    id: str
    label: str
    type: EntityType
    importance: int
    page_count: int
    size: float


class GraphEdge(BaseModel):
    source: str
    target: str
    type: str
    strength: float
    width: float


class GraphVisualization(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class AnalyticsReport(BaseModel):
    domain: str
    overview: OverviewStats
    top_entities: List[EntityStat] = Field(default_factory=list)
    entity_types: List[TypeCount] = Field(default_factory=list)
    content_gaps: List[ContentGap] = Field(default_factory=list)
    visualization: Optional[GraphVisualization] = None
    generated_at: datetime = Field(default_factory=datetime.now)
