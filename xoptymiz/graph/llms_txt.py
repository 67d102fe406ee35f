"""
LLMs.txt rendering for a domain's pages and their key entities.
"""

import math
from datetime import datetime
from typing import List, Optional

from .models import ExportOptions, PageSummary, TextDocument

CONTENT_URL_PREFIX = "content://"

FOOTER = (
    "---\n\n"
    "*Generated by XoptYmiZ - Optimization in Every Dimension*\n"
    "*Learn more at https://xoptymiz.com*\n"
)


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text) / 4)


def _header(domain: str) -> str:
    return (
        f"# {domain}\n\n"
        f"> AI-optimized knowledge graph for {domain}. Generated by XoptYmiZ.\n\n"
    )


def render_llms_txt(domain: str,
                    pages: List[PageSummary],
                    options: Optional[ExportOptions] = None,
                    generated_at: Optional[datetime] = None) -> TextDocument:
    """
    Render the LLMs.txt document.

    Args:
        domain: Domain name used in the header
        pages: Pages in display order
        options: Export options (metadata toggle, entities per page)
        generated_at: Timestamp written to the metadata block

    Returns:
        TextDocument with token estimate
    """
    options = options or ExportOptions()
    generated_at = generated_at or datetime.now()

    parts = [_header(domain)]

    if options.include_metadata:
        parts.append(
            "## Metadata\n\n"
            f"- Domain: {domain}\n"
            f"- Pages: {len(pages)}\n"
            f"- Generated: {generated_at.isoformat()}\n"
            "- Optimization: Three-dimensional (SEO + AI + Knowledge Graph)\n\n"
        )

    parts.append("## Navigation\n\n")
    for index, summary in enumerate(pages, start=1):
        parts.append(f"{index}. [{summary.page.title or 'Untitled'}](#page-{index})\n")

    parts.append("\n## Content\n\n")
    for index, summary in enumerate(pages, start=1):
        parts.append(_render_page(index, summary, options))

    parts.append(FOOTER)
    content = "".join(parts)

    return TextDocument(
        domain=domain,
        content=content,
        page_count=len(pages),
        generated_at=generated_at,
        estimated_tokens=estimate_tokens(content),
    )


def _render_page(index: int, summary: PageSummary, options: ExportOptions) -> str:
    page = summary.page
    lines = [f"### Page {index}: {page.title or 'Untitled'} {{#page-{index}}}\n\n"]

    if page.url and not page.url.startswith(CONTENT_URL_PREFIX):
        lines.append(f"**URL:** {page.url}\n\n")

    if options.include_metadata:
        lines.append(
            f"**Statistics:** {page.word_count} words, {summary.entity_count} entities, "
            f"importance {summary.avg_importance:.2f}\n\n"
        )

    entities = sorted(summary.entities, key=lambda e: e.importance, reverse=True)
    entities = entities[:options.max_entities_per_page]
    if entities:
        lines.append("**Key Entities:**\n")
        for entity in entities:
            line = f"- **{entity.text}** ({entity.type.value})"
            if options.include_metadata:
                line += f" - Importance: {entity.importance}, Confidence: {entity.confidence:.2f}"
            lines.append(line + "\n")
        lines.append("\n")

    return "".join(lines)


def render_placeholder(domain: str, generated_at: Optional[datetime] = None) -> TextDocument:
    """Document returned for a domain with no ingested pages."""
    generated_at = generated_at or datetime.now()
    content = (
        _header(domain)
        + f"No content has been processed for {domain} yet.\n\n"
        + FOOTER
    )
    return TextDocument(
        domain=domain,
        content=content,
        page_count=0,
        generated_at=generated_at,
        estimated_tokens=estimate_tokens(content),
        is_placeholder=True,
    )
