"""Tests for CrossrefSearch with a mocked HTTP transport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from pdf_recognizer import AsyncHttpClient, CandidateRecord, CrossrefSearch, RateLimitedError, SearchQuery
from pdf_recognizer.search import match_score, rank_candidates

CROSSREF_MESSAGE = {
    "DOI": "10.1000/xyz123",
    "title": ["A Study of <i>Cats</i>"],
    "author": [{"given": "Jane", "family": "Doe"}, {"given": "John", "family": "Smith"}],
    "container-title": ["Journal of Feline Research"],
    "issued": {"date-parts": [[2020, 5]]},
    "type": "journal-article",
    "volume": "12",
    "issue": "3",
    "page": "1-10",
    "ISSN": ["1234-5678"],
    "publisher": "Cat Press",
}

OPENLIBRARY_BOOK = {
    "title": "Cats",
    "subtitle": "A Natural History",
    "authors": [{"name": "Jane Doe"}],
    "publishers": [{"name": "Feline Books"}],
    "publish_date": "March 1999",
    "number_of_pages": 320,
    "url": "https://openlibrary.org/books/OL1M/Cats",
}


def _client(handler) -> AsyncHttpClient:
    return AsyncHttpClient(transport=httpx.MockTransport(handler), max_attempts=1)


def _run_search(handler, method: str, *args, **kwargs):
    async def run():
        http = _client(handler)
        try:
            search = CrossrefSearch(http, mailto="me@example.org")
            return await getattr(search, method)(*args, **kwargs)
        finally:
            await http.close()

    return asyncio.run(run())


class TestSearchByDoi:
    def test_found(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "ok", "message": CROSSREF_MESSAGE})

        results = _run_search(handler, "search", SearchQuery.by_doi("10.1000/xyz123"))

        assert len(results) == 1
        rec = results[0]
        assert rec.title == "A Study of Cats"
        assert rec.doi == "10.1000/xyz123"
        assert rec.year == "2020"
        assert rec.publication_title == "Journal of Feline Research"
        assert rec.authors[0] == {"firstName": "Jane", "lastName": "Doe"}
        assert rec.source == "Crossref(DOI)"
        assert seen[0].url.host == "api.crossref.org"
        assert seen[0].url.params["mailto"] == "me@example.org"

    def test_not_found(self):
        results = _run_search(lambda r: httpx.Response(404), "search_doi", "10.1000/missing")
        assert results == []


class TestSearchByIsbn:
    def test_found(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "openlibrary.org"
            assert request.url.params["bibkeys"] == "ISBN:9780306406157"
            assert request.url.params["jscmd"] == "data"
            return httpx.Response(200, json={"ISBN:9780306406157": OPENLIBRARY_BOOK})

        results = _run_search(handler, "search", SearchQuery.by_isbn("9780306406157"))

        assert len(results) == 1
        rec = results[0]
        assert rec.title == "Cats: A Natural History"
        assert rec.document_type == "book"
        assert rec.isbn == "9780306406157"
        assert rec.year == "1999"
        assert rec.publisher == "Feline Books"
        assert rec.pages == "320"
        assert rec.authors == [{"firstName": "Jane", "lastName": "Doe"}]

    def test_unknown_isbn(self):
        results = _run_search(lambda r: httpx.Response(200, json={}), "search_isbn", "9780306406157")
        assert results == []


class TestSearchByTitle:
    def test_results_ranked_by_similarity(self):
        other = dict(CROSSREF_MESSAGE, DOI="10.1000/other", title=["Dogs and Their Owners"], author=[])
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"message": {"items": [other, CROSSREF_MESSAGE]}})

        results = _run_search(handler, "search", SearchQuery.by_title("A Study of Cats", "Doe Smith"))

        assert [r.doi for r in results] == ["10.1000/xyz123", "10.1000/other"]
        assert seen[0].url.params["query.bibliographic"] == "A Study of Cats"
        assert seen[0].url.params["query.author"] == "Doe Smith"

    def test_rate_limited(self):
        with pytest.raises(RateLimitedError):
            _run_search(lambda r: httpx.Response(429), "search_title", "A Study of Cats")


class TestSearchFulltext:
    def test_phrase_query_sent(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"message": {"items": [CROSSREF_MESSAGE]}})

        results = _run_search(handler, "search", SearchQuery.by_fulltext('"alpha beta" "gamma delta"'))

        assert results[0].source == "Crossref(fulltext)"
        assert seen[0].url.params["query"] == '"alpha beta" "gamma delta"'

    def test_empty_query(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert _run_search(handler, "search", SearchQuery()) == []


class TestRanking:
    def test_exact_title_scores_highest(self):
        exact = CandidateRecord(title="A Study of Cats", authors=[{"firstName": "Jane", "lastName": "Doe"}])
        other = CandidateRecord(title="Unrelated", authors=[])
        assert match_score("A Study of Cats", exact, ["Doe"]) > match_score("A Study of Cats", other, ["Doe"])

    def test_title_only_score(self):
        rec = CandidateRecord(title="A Study of Cats")
        assert match_score("a study of cats", rec, []) == pytest.approx(1.0)

    def test_rank_is_stable_for_ties(self):
        a = CandidateRecord(title="Same", source="a")
        b = CandidateRecord(title="Same", source="b")
        assert [r.source for r in rank_candidates([a, b], "Same", [])] == ["a", "b"]


def test_request_body_is_json():
    """POST bodies are sent as JSON (used by the recognition client)."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    async def run():
        http = _client(handler)
        try:
            return await http.post("https://example.org/recognize", service="recognizer", json_body={"a": 1})
        finally:
            await http.close()

    resp = asyncio.run(run())

    assert resp.status_code == 200
    assert json.loads(seen[0].content) == {"a": 1}
    assert seen[0].headers["Content-Type"] == "application/json"
