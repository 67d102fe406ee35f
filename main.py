import sys
import json
import asyncio
import logging
import argparse
from typing import List, Optional

import aiofiles
from neo4j import AsyncGraphDatabase

from xoptymiz.config import config
from xoptymiz.errors import XoptymizError
from xoptymiz.extraction.data_models import ContentInput
from xoptymiz.graph import (
    AnalyticsRequest,
    ExportOptions,
    InMemoryGraphStore,
    Neo4jGraphStore,
    bootstrap_schema,
)
from xoptymiz.pipeline import ProcessOptions, build_pipeline

logger = logging.getLogger("xoptymiz")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="XoptYmiZ content-to-knowledge-graph ingestion")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--memory", action="store_true",
                        help="Use a process-local graph store instead of Neo4j")
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Ingest one URL, HTML file or text")
    source = process.add_mutually_exclusive_group(required=True)
    source.add_argument("--url")
    source.add_argument("--html-file")
    source.add_argument("--text")
    process.add_argument("--title")
    process.add_argument("--no-llm", action="store_true", help="Annotate with local methods only")
    process.add_argument("--max-entities", type=int, default=config.MAX_ENTITIES)
    process.add_argument("--min-importance", type=int, default=config.MIN_ENTITY_IMPORTANCE)
    process.add_argument("--deadline", type=float, default=config.INGEST_DEADLINE,
                         help="Seconds before the ingest is abandoned")

    batch = subparsers.add_parser("batch", help="Ingest several URLs")
    batch.add_argument("urls", nargs="+")
    batch.add_argument("--no-llm", action="store_true")
    batch.add_argument("--batch-size", type=int, default=config.BATCH_SIZE)
    batch.add_argument("--delay-ms", type=int, default=config.BATCH_DELAY_MS)

    export = subparsers.add_parser("export", help="Write the LLMs.txt document for a domain")
    export.add_argument("domain")
    export.add_argument("--output", default="llms.txt")
    export.add_argument("--max-pages", type=int, default=50)
    export.add_argument("--sort-by", choices=["importance", "entities", "date"], default="importance")
    export.add_argument("--no-metadata", action="store_true")

    analytics = subparsers.add_parser("analytics", help="Print domain analytics as JSON")
    analytics.add_argument("domain")
    analytics.add_argument("--visualize", action="store_true")

    subparsers.add_parser("bootstrap", help="Create graph constraints and indexes")

    return parser.parse_args(argv)


async def run_process(args, store) -> None:
    pipeline = build_pipeline(store, use_llm=not args.no_llm)
    options = ProcessOptions(
        max_entities=args.max_entities,
        min_importance=args.min_importance,
        deadline=args.deadline,
    )

    if args.url:
        result = await pipeline.process_url(args.url, options)
    elif args.html_file:
        async with aiofiles.open(args.html_file, "r", encoding="utf-8") as f:
            html = await f.read()
        result = await pipeline.process_content(ContentInput(html=html), options)
    else:
        result = await pipeline.process_content(ContentInput(text=args.text, title=args.title), options)
    print(result.model_dump_json(indent=2, exclude={"content": {"text", "cleaned"}}))


async def run_batch(args, store) -> None:
    pipeline = build_pipeline(store, use_llm=not args.no_llm)
    result = await pipeline.process_batch(args.urls, batch_size=args.batch_size, delay_ms=args.delay_ms)
    summary = {
        "total": result.total,
        "successful": result.successful,
        "failed": result.failed,
        "results": [
            {"url": item.url, "success": item.success, "error": item.error}
            for item in result.results
        ],
    }
    print(json.dumps(summary, indent=2))


async def run_export(args, store) -> None:
    options = ExportOptions(
        max_pages=args.max_pages,
        include_metadata=not args.no_metadata,
        sort_by=args.sort_by,
    )
    document = await store.export(args.domain, options)
    async with aiofiles.open(args.output, "w", encoding="utf-8") as f:
        await f.write(document.content)
    logger.info(
        f"Wrote {args.output}: {document.page_count} pages, ~{document.estimated_tokens} tokens"
        + (" (placeholder)" if document.is_placeholder else "")
    )


async def run_analytics(args, store) -> None:
    report = await store.query(AnalyticsRequest(domain=args.domain, include_visualization=args.visualize))
    print(report.model_dump_json(indent=2))


COMMANDS = {
    "process": run_process,
    "batch": run_batch,
    "export": run_export,
    "analytics": run_analytics,
}


async def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the XoptYmiZ command line."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    logger.info(f"Configuration: {config.to_dict()}")

    if args.memory:
        if args.command == "bootstrap":
            logger.info("Process-local store needs no schema")
            return 0
        store = InMemoryGraphStore()
        driver = None
    else:
        driver = AsyncGraphDatabase.driver(config.NEO4J_URI, auth=(config.NEO4J_USER, config.NEO4J_PASSWORD))
        store = Neo4jGraphStore(driver, config.NEO4J_DATABASE)

    try:
        if args.command == "bootstrap":
            await bootstrap_schema(driver, config.NEO4J_DATABASE)
        else:
            await COMMANDS[args.command](args, store)
    except XoptymizError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        if driver is not None:
            await driver.close()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
