"""Client for the remote metadata recognition service.

The service receives the PDF's content hash and the beginning of its text
and answers with whatever it could identify: DOIs/ISBNs, or a title and
author list together with other descriptive fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pdf_recognizer.errors import RemoteServiceError
from pdf_recognizer.utils import (
    MACHINE_RESOLVED_CATALOG,
    AsyncHttpClient,
    CandidateRecord,
    RequestPacer,
    clean_doi,
    clean_isbn,
)

logger = logging.getLogger(__name__)

# The service only looks at the beginning of the document
MAX_TEXT_LENGTH = 16384


@dataclass
class RemoteRecognition:
    """Response of the recognition service."""

    identifiers: list[tuple[str, str]] = field(default_factory=list)
    title: str | None = None
    authors: list[dict[str, str]] = field(default_factory=list)
    abstract: str | None = None
    year: str | None = None
    pages: str | None = None
    volume: str | None = None
    issue: str | None = None
    issn: str | None = None
    container: str | None = None
    publisher: str | None = None
    url: str | None = None
    type: str | None = None

    def author_query(self, limit: int = 2) -> str:
        """Names to search for: last names of the first authors, else first names."""
        names = []
        for author in self.authors[:limit]:
            name = author.get("lastName") or author.get("firstName")
            if name:
                names.append(name)
        return " ".join(names)

    def to_candidate(self) -> CandidateRecord:
        """Synthesize a record directly from the response fields."""
        document_type = "bookSection" if self.type in ("book-chapter", "bookSection") else "journalArticle"
        return CandidateRecord(
            title=self.title,
            identifiers=list(self.identifiers),
            authors=[dict(a) for a in self.authors],
            abstract=self.abstract,
            year=self.year,
            publication_title=self.container if document_type == "journalArticle" else None,
            book_title=self.container if document_type == "bookSection" else None,
            publisher=self.publisher,
            pages=self.pages,
            volume=self.volume,
            issue=self.issue,
            issn=self.issn,
            url=self.url,
            document_type=document_type,
            library_catalog=MACHINE_RESOLVED_CATALOG,
            source="remote",
        )


def _parse_identifiers(data: dict[str, Any]) -> list[tuple[str, str]]:
    identifiers: list[tuple[str, str]] = []
    for raw in data.get("identifiers") or []:
        if not isinstance(raw, str) or ":" not in raw:
            continue
        typ, value = raw.split(":", 1)
        identifiers.append((typ.strip().lower(), value.strip()))
    if data.get("doi"):
        identifiers.append(("doi", str(data["doi"])))
    if data.get("isbn"):
        identifiers.append(("isbn", str(data["isbn"])))

    cleaned: list[tuple[str, str]] = []
    for typ, value in identifiers:
        if typ == "doi":
            value = clean_doi(value)
        elif typ == "isbn":
            value = clean_isbn(value)
        else:
            continue
        if value and (typ, value) not in cleaned:
            cleaned.append((typ, value))
    return cleaned


def parse_response(data: dict[str, Any]) -> RemoteRecognition | None:
    """Build a RemoteRecognition from the service's JSON, or None for no match."""
    identifiers = _parse_identifiers(data)
    title = data.get("title") or None
    if not title and not identifiers:
        return None

    authors = []
    for a in data.get("authors") or []:
        if isinstance(a, dict):
            authors.append({"firstName": a.get("firstName") or "", "lastName": a.get("lastName") or ""})

    def text(name: str) -> str | None:
        value = data.get(name)
        return str(value) if value not in (None, "") else None

    return RemoteRecognition(
        identifiers=identifiers,
        title=title,
        authors=authors,
        abstract=text("abstract"),
        year=text("year"),
        pages=text("pages"),
        volume=text("volume"),
        issue=text("issue"),
        issn=text("issn"),
        container=text("container"),
        publisher=text("publisher"),
        url=text("url"),
        type=text("type"),
    )


class RemoteRecognitionClient:
    """Submits a content hash and text to the recognition service."""

    def __init__(self, http: AsyncHttpClient, url: str, min_interval: float = 0.0) -> None:
        """Initialize the client.

        Args:
            http: Async HTTP client
            url: Recognition endpoint
            min_interval: Minimum seconds between two requests (0 disables pacing)
        """
        self.http = http
        self.url = url
        self.pacer = RequestPacer(min_interval)

    async def recognize(self, content_hash: str, text: str) -> RemoteRecognition | None:
        """Ask the service to identify a document.

        Raises:
            RemoteServiceError: If the service answers with a non-200 status
        """
        await self.pacer.wait()
        body = {"hash": content_hash, "text": text[:MAX_TEXT_LENGTH]}
        resp = await self.http.post(self.url, service="recognizer", json_body=body)
        if resp.status_code != 200:
            raise RemoteServiceError(resp.status_code, self.url)
        result = parse_response(resp.json())
        if result is None:
            logger.debug("Recognition service found no match for %s", content_hash)
        return result
