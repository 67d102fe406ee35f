import os
from dotenv import load_dotenv
from typing import Dict, Any, Optional

# Load environment variables from .env file
load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


class Config:
    """Central configuration management for the XoptYmiZ ingestion pipeline."""

    # Neo4j connection
    NEO4J_URI: str = os.getenv("NEO4J_URI", "bolt://localhost:7687")
    NEO4J_USER: str = os.getenv("NEO4J_USER", "neo4j")
    NEO4J_PASSWORD: str = os.getenv("NEO4J_PASSWORD", "password")
    NEO4J_DATABASE: str = os.getenv("NEO4J_DATABASE", "neo4j")

    # LLM settings
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "")
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai").lower()
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-3.5-turbo")
    LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.1"))
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "2000"))
    LLM_TIMEOUT: float = float(os.getenv("LLM_TIMEOUT", "30"))
    LLM_CONTEXT_CHARS: int = int(os.getenv("LLM_CONTEXT_CHARS", "4000"))

    # Fetch settings
    FETCH_TIMEOUT: int = int(os.getenv("FETCH_TIMEOUT", "30000"))
    FETCH_USER_AGENT: str = os.getenv(
        "FETCH_USER_AGENT", "XoptYmiZ Content Processor 1.0 (AI Optimization Bot)"
    )

    # Annotation limits
    MIN_ENTITY_IMPORTANCE: int = int(os.getenv("MIN_ENTITY_IMPORTANCE", "6"))
    MAX_ENTITIES: int = int(os.getenv("MAX_ENTITIES", "25"))
    MAX_RELATIONSHIPS: int = int(os.getenv("MAX_RELATIONSHIPS", "50"))

    # Batch processing
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "5"))
    BATCH_DELAY_MS: int = int(os.getenv("BATCH_DELAY_MS", "1000"))
    INGEST_DEADLINE: Optional[float] = _optional_float("INGEST_DEADLINE")

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Return configuration as a dictionary for logging/debugging."""
        return {
            "NEO4J_URI": cls.NEO4J_URI,
            "NEO4J_USER": cls.NEO4J_USER,
            "NEO4J_PASSWORD": "[REDACTED]" if cls.NEO4J_PASSWORD else "",
            "NEO4J_DATABASE": cls.NEO4J_DATABASE,
            "OPENAI_API_KEY": "[REDACTED]" if cls.OPENAI_API_KEY else "",
            "OPENAI_BASE_URL": cls.OPENAI_BASE_URL,
            "LLM_PROVIDER": cls.LLM_PROVIDER,
            "LLM_MODEL": cls.LLM_MODEL,
            "LLM_TEMPERATURE": cls.LLM_TEMPERATURE,
            "LLM_MAX_TOKENS": cls.LLM_MAX_TOKENS,
            "LLM_TIMEOUT": cls.LLM_TIMEOUT,
            "LLM_CONTEXT_CHARS": cls.LLM_CONTEXT_CHARS,
            "FETCH_TIMEOUT": cls.FETCH_TIMEOUT,
            "FETCH_USER_AGENT": cls.FETCH_USER_AGENT,
            "MIN_ENTITY_IMPORTANCE": cls.MIN_ENTITY_IMPORTANCE,
            "MAX_ENTITIES": cls.MAX_ENTITIES,
            "MAX_RELATIONSHIPS": cls.MAX_RELATIONSHIPS,
            "BATCH_SIZE": cls.BATCH_SIZE,
            "BATCH_DELAY_MS": cls.BATCH_DELAY_MS,
            "INGEST_DEADLINE": cls.INGEST_DEADLINE,
        }

# Initialize on import
config = Config()
