"""Structured bibliographic search.

The resolver asks for candidates by DOI, by ISBN, by title and author, or by
free full-text phrases. ``CrossrefSearch`` answers these from public APIs:

- DOI: Crossref ``/works/{doi}``
- ISBN: Open Library books API
- title/author and full-text phrases: Crossref bibliographic query, ranked by
  title and author similarity
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

from rapidfuzz.fuzz import token_sort_ratio

from pdf_recognizer.errors import RateLimitedError
from pdf_recognizer.utils import (
    CROSSREF_API,
    OPENLIBRARY_BOOKS_API,
    AsyncHttpClient,
    CandidateRecord,
    crossref_message_to_candidate,
    jaccard_similarity,
    normalize_title_for_match,
    openlibrary_book_to_candidate,
    strip_diacritics,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchQuery:
    """One structured search request.

    Exactly one of the identifier, title or full-text forms is used.
    """

    item_type: str | None = None
    doi: str | None = None
    isbn: str | None = None
    title: str | None = None
    author: str | None = None
    fulltext: str | None = None

    @classmethod
    def by_doi(cls, doi: str) -> SearchQuery:
        return cls(item_type="journalArticle", doi=doi)

    @classmethod
    def by_isbn(cls, isbn: str) -> SearchQuery:
        return cls(item_type="book", isbn=isbn)

    @classmethod
    def by_title(cls, title: str, author: str = "") -> SearchQuery:
        return cls(title=title, author=author)

    @classmethod
    def by_fulltext(cls, phrases: str) -> SearchQuery:
        return cls(fulltext=phrases)


class StructuredSearch(Protocol):
    async def search(self, query: SearchQuery) -> list[CandidateRecord]: ...


class CrossrefSearch:
    """Structured search backed by Crossref and Open Library."""

    def __init__(self, http: AsyncHttpClient, mailto: str | None = None, rows: int = 10) -> None:
        """Initialize the search client.

        Args:
            http: Async HTTP client
            mailto: Contact address, which puts requests in Crossref's polite pool
            rows: Maximum number of results for bibliographic queries
        """
        self.http = http
        self.mailto = mailto
        self.rows = rows

    async def search(self, query: SearchQuery) -> list[CandidateRecord]:
        if query.doi:
            return await self.search_doi(query.doi)
        if query.isbn:
            return await self.search_isbn(query.isbn)
        if query.title:
            return await self.search_title(query.title, query.author or "")
        if query.fulltext:
            return await self.search_fulltext(query.fulltext)
        return []

    def _params(self, **params: str | int) -> dict[str, str | int]:
        if self.mailto:
            params["mailto"] = self.mailto
        return params

    # --- Crossref Works ---
    async def search_doi(self, doi: str) -> list[CandidateRecord]:
        url = f"{CROSSREF_API}/{quote(doi, safe='')}"
        resp = await self.http.get(url, service="crossref", params=self._params())
        if resp.status_code != 200:
            logger.debug("Crossref works returned %d for %s", resp.status_code, doi)
            return []
        rec = crossref_message_to_candidate(resp.json().get("message", {}))
        if not rec:
            return []
        rec.source = "Crossref(DOI)"
        return [rec]

    # --- Open Library ---
    async def search_isbn(self, isbn: str) -> list[CandidateRecord]:
        key = f"ISBN:{isbn}"
        params = {"bibkeys": key, "format": "json", "jscmd": "data"}
        resp = await self.http.get(OPENLIBRARY_BOOKS_API, service="openlibrary", params=params)
        if resp.status_code != 200:
            logger.debug("Open Library returned %d for %s", resp.status_code, isbn)
            return []
        data = resp.json().get(key)
        rec = openlibrary_book_to_candidate(data, isbn) if data else None
        if not rec:
            return []
        rec.source = "OpenLibrary(ISBN)"
        return [rec]

    # --- Crossref bibliographic search ---
    async def _bibliographic(self, params: dict[str, str | int]) -> list[CandidateRecord]:
        resp = await self.http.get(CROSSREF_API, service="crossref", params=self._params(**params))
        if resp.status_code == 429:
            raise RateLimitedError()
        if resp.status_code != 200:
            logger.debug("Crossref search returned %d", resp.status_code)
            return []
        items = resp.json().get("message", {}).get("items", [])
        return [rec for rec in (crossref_message_to_candidate(item) for item in items) if rec]

    async def search_title(self, title: str, author: str = "") -> list[CandidateRecord]:
        params: dict[str, str | int] = {"query.bibliographic": title, "rows": self.rows}
        if author:
            params["query.author"] = author
        candidates = await self._bibliographic(params)
        for rec in candidates:
            rec.source = "Crossref(title)"
        return rank_candidates(candidates, title, author.split())

    async def search_fulltext(self, phrases: str) -> list[CandidateRecord]:
        candidates = await self._bibliographic({"query": phrases, "rows": self.rows})
        for rec in candidates:
            rec.source = "Crossref(fulltext)"
        return candidates


def match_score(title: str, rec: CandidateRecord, author_names: list[str]) -> float:
    """Combined title and author similarity (0.0 to 1.0)."""
    title_score = token_sort_ratio(normalize_title_for_match(title), normalize_title_for_match(rec.title or ""))
    if not author_names:
        return title_score / 100.0
    ref = [strip_diacritics(a).lower() for a in author_names]
    found = [strip_diacritics(a.get("lastName") or "").lower() for a in rec.authors][:3]
    return 0.7 * (title_score / 100.0) + 0.3 * jaccard_similarity(ref, found)


def rank_candidates(candidates: list[CandidateRecord], title: str, author_names: list[str]) -> list[CandidateRecord]:
    """Order candidates by similarity to the queried title and authors."""
    scored = [(match_score(title, rec, author_names), i, rec) for i, rec in enumerate(candidates)]
    scored.sort(key=lambda x: (-x[0], x[1]))
    return [rec for _, _, rec in scored]
