"""
Graph module: persistent property graph of pages, domains, entities and
relationships, with LLMs.txt export and analytics read paths.
"""

from .models import (
    AnalyticsReport,
    AnalyticsRequest,
    Domain,
    ExportOptions,
    GraphVisualization,
    IngestReceipt,
    Page,
    TextDocument,
)
from .store import GraphStore, build_page, extract_domain
from .memory_store import InMemoryGraphStore
from .neo4j_store import Neo4jGraphStore
from .schema import bootstrap_schema

__all__ = [
    "AnalyticsReport",
    "AnalyticsRequest",
    "Domain",
    "ExportOptions",
    "GraphVisualization",
    "IngestReceipt",
    "Page",
    "TextDocument",
    "GraphStore",
    "build_page",
    "extract_domain",
    "InMemoryGraphStore",
    "Neo4jGraphStore",
    "bootstrap_schema",
]
