"""Shared fakes for the pipeline tests: fetcher, inference, LLM and neo4j driver."""

from typing import Any, Dict, List, Optional

import pytest

from llama_index.core.llms import CompletionResponse

from xoptymiz.extraction.annotator import Annotator
from xoptymiz.extraction.data_models import Entity
from xoptymiz.extraction.extractor import ContentExtractor
from xoptymiz.extraction.kg_extractor import InferenceStrategy
from xoptymiz.graph.memory_store import InMemoryGraphStore
from xoptymiz.pipeline import IngestionPipeline


ALICE_TEXT = "Alice works at Acme. Acme builds widgets."


class FakeFetcher:
    """Serves canned HTML per url; values that are exceptions are raised."""

    def __init__(self, pages: Optional[Dict[str, Any]] = None):
        self.pages = pages or {}
        self.calls: List[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        page = self.pages[url]
        if isinstance(page, BaseException):
            raise page
        return page


class StubInference(InferenceStrategy):
    """Returns fixed entities, or raises the configured error."""

    def __init__(self, entities: Optional[List[Entity]] = None, error: Optional[BaseException] = None):
        self.entities = entities or []
        self.error = error
        self.calls = 0

    async def infer(self, text: str) -> List[Entity]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [e.model_copy(deep=True) for e in self.entities]


class FakeLLM:
    """Minimal stand-in for a llama_index LLM's async completion."""

    def __init__(self, reply: str):
        self.reply = reply
        self.prompts: List[str] = []

    async def acomplete(self, prompt: str, **kwargs) -> CompletionResponse:
        self.prompts.append(prompt)
        return CompletionResponse(text=self.reply)


class FakeResult:
    def __init__(self, records: List[Dict[str, Any]]):
        self._records = records

    async def single(self):
        return self._records[0] if self._records else None

    async def data(self):
        return list(self._records)

    async def consume(self):
        return None


class FakeTransaction:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver
        self.queries: List[tuple] = []
        self.committed = False
        self.rolled_back = False
        self._closed = False

    async def run(self, query: str, parameters: Optional[Dict[str, Any]] = None):
        if self.driver.fail_on and self.driver.fail_on in query:
            raise RuntimeError(f"statement failed: {self.driver.fail_on}")
        self.queries.append((query, parameters or {}))
        return FakeResult(self.driver.respond(query))

    async def commit(self):
        self.committed = True
        self._closed = True

    async def rollback(self):
        self.rolled_back = True
        self._closed = True

    def closed(self) -> bool:
        return self._closed


class FakeSession:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def begin_transaction(self) -> FakeTransaction:
        tx = FakeTransaction(self.driver)
        self.driver.transactions.append(tx)
        return tx

    async def run(self, query: str, parameters: Optional[Dict[str, Any]] = None):
        self.driver.reads.append((query, parameters or {}))
        return FakeResult(self.driver.respond(query))


class FakeDriver:
    """
    Records every statement; replies with the records registered for the
    first matching query substring.
    """

    def __init__(self, responses: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 fail_on: Optional[str] = None):
        self.responses = {"RETURN p.id AS id, p.version AS version": [{"id": "page-id", "version": 1}]}
        self.responses.update(responses or {})
        self.fail_on = fail_on
        self.transactions: List[FakeTransaction] = []
        self.reads: List[tuple] = []
        self.databases: List[Optional[str]] = []

    def session(self, database: Optional[str] = None) -> FakeSession:
        self.databases.append(database)
        return FakeSession(self)

    def respond(self, query: str) -> List[Dict[str, Any]]:
        for fragment, records in self.responses.items():
            if fragment in query:
                return records
        return []


@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def local_pipeline(store, fetcher):
    """Pipeline with local annotation only, an in-memory store and no delay between batch groups."""
    return IngestionPipeline(
        extractor=ContentExtractor(fetcher=fetcher),
        annotator=Annotator(),
        store=store,
        batch_size=2,
        batch_delay_ms=0,
    )
