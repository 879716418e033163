"""Shared fixtures for pdf_recognizer tests."""

from __future__ import annotations

import copy
import logging
from typing import Any

import pytest

from pdf_recognizer import (
    Attachment,
    CandidateRecord,
    InMemoryItemStore,
    JobRow,
    RecognitionObserver,
    SearchQuery,
)


@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def make_candidate():
    """Factory fixture for creating candidate records."""

    def _make_candidate(**kwargs: Any) -> CandidateRecord:
        data: dict[str, Any] = {
            "title": "A Study of Cats",
            "authors": [{"firstName": "Jane", "lastName": "Doe"}],
            "year": "2020",
            "publication_title": "Journal of Feline Research",
            "library_catalog": "Crossref",
        }
        data.update(kwargs)
        return CandidateRecord(**data)

    return _make_candidate


@pytest.fixture
def pdf_file(tmp_path):
    """A file standing in for a PDF (content only matters for hashing)."""
    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF-1.4 test document")
    return str(path)


@pytest.fixture
def attachment(pdf_file):
    """A top-level PDF attachment in two collections."""
    return Attachment(id="A1", title="paper.pdf", path=pdf_file, collections=["C1", "C2"])


@pytest.fixture
def store(attachment):
    """An in-memory store holding the attachment."""
    return InMemoryItemStore([attachment])


class FakeSearch:
    """Structured search returning canned results keyed by the query value."""

    def __init__(self, results: dict[str, list[CandidateRecord]] | None = None, error: Exception | None = None):
        self.results = results or {}
        self.error = error
        self.queries: list[SearchQuery] = []

    async def search(self, query: SearchQuery) -> list[CandidateRecord]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        key = query.doi or query.isbn or query.title or query.fulltext or ""
        return [copy.deepcopy(c) for c in self.results.get(key, [])]


class FakeExtractor:
    """Extractor returning fixed lines without running pdftotext."""

    def __init__(self, lines: list[str] | None = None, error: Exception | None = None):
        self.lines = lines or []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def extract_lines(self, pdf_path: str, max_pages: int = 15) -> list[str]:
        self.calls.append((pdf_path, max_pages))
        if self.error is not None:
            raise self.error
        return list(self.lines)

    def cleanup(self) -> None:
        pass


class FakeRemote:
    """Remote recognition client returning a fixed response."""

    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def recognize(self, content_hash: str, text: str):
        self.calls.append((content_hash, text))
        if self.error is not None:
            raise self.error
        return self.response


class RecordingObserver(RecognitionObserver):
    """Observer that records every notification."""

    def __init__(self):
        self.events: list[tuple] = []

    def on_row_added(self, row: JobRow) -> None:
        self.events.append(("added", row.id, row.status))

    def on_row_updated(self, row: JobRow) -> None:
        self.events.append(("updated", row.id, row.status, row.message))

    def on_row_deleted(self, item_id: str) -> None:
        self.events.append(("deleted", item_id))

    def on_empty(self) -> None:
        self.events.append(("empty",))

    def on_non_empty(self) -> None:
        self.events.append(("non_empty",))

    def of_kind(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def recording_observer():
    return RecordingObserver()


@pytest.fixture
def doi_lines():
    """Extracted text of a journal article carrying a DOI."""
    return [
        "Journal of Feline Research 12 (2020) 1-10",
        "A Study of Cats",
        "Jane Doe and John Smith",
        "doi:10.1000/xyz123",
        "Abstract",
        "We study cats in their natural habitat.",
    ]


@pytest.fixture
def fake_search():
    """Factory fixture for creating fake structured searches."""

    def _create(results=None, error=None) -> FakeSearch:
        return FakeSearch(results, error)

    return _create


@pytest.fixture
def fake_extractor():
    """Factory fixture for creating fake extractors."""

    def _create(lines=None, error=None) -> FakeExtractor:
        return FakeExtractor(lines, error)

    return _create


@pytest.fixture
def fake_remote():
    """Factory fixture for creating fake remote recognition clients."""

    def _create(response=None, error=None) -> FakeRemote:
        return FakeRemote(response, error)

    return _create
