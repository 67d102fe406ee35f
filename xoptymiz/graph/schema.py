"""
Idempotent Neo4j schema bootstrap: uniqueness constraints and lookup indexes.
"""

import logging
from typing import List, Optional

from neo4j import AsyncDriver
from neo4j.exceptions import DriverError, Neo4jError

from xoptymiz.errors import StoreError

logger = logging.getLogger(__name__)

CONSTRAINTS = [
    "CREATE CONSTRAINT entity_id_unique IF NOT EXISTS FOR (e:Entity) REQUIRE e.id IS UNIQUE",
    "CREATE CONSTRAINT page_url_unique IF NOT EXISTS FOR (p:Page) REQUIRE p.url IS UNIQUE",
    "CREATE CONSTRAINT domain_name_unique IF NOT EXISTS FOR (d:Domain) REQUIRE d.name IS UNIQUE",
]

INDEXES = [
    "CREATE INDEX entity_text_index IF NOT EXISTS FOR (e:Entity) ON (e.text)",
    "CREATE INDEX entity_type_index IF NOT EXISTS FOR (e:Entity) ON (e.type)",
    "CREATE INDEX entity_importance_index IF NOT EXISTS FOR (e:Entity) ON (e.importance)",
    "CREATE INDEX page_title_index IF NOT EXISTS FOR (p:Page) ON (p.title)",
    "CREATE INDEX page_processed_index IF NOT EXISTS FOR (p:Page) ON (p.processedAt)",
]


async def bootstrap_schema(driver: AsyncDriver, database: Optional[str] = None) -> List[str]:
    """
    Create constraints and indexes if they do not exist yet.

    Safe to run any number of times.

    Returns:
        The statements that were executed

    Raises:
        StoreError: a statement was rejected by the server
    """
    statements = CONSTRAINTS + INDEXES
    async with driver.session(database=database) as session:
        for statement in statements:
            try:
                result = await session.run(statement)
                await result.consume()
            except (Neo4jError, DriverError) as e:
                raise StoreError(f"Schema bootstrap failed on '{statement}': {e}", e) from e
            logger.debug(f"Applied: {statement}")

    logger.info(f"Graph schema ready ({len(CONSTRAINTS)} constraints, {len(INDEXES)} indexes)")
    return statements
