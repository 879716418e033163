"""Tests for utility functions."""

from __future__ import annotations

import asyncio
import hashlib

import httpx
import pytest

from pdf_recognizer import AsyncHttpClient, RequestPacer, ServiceQuotas, ServiceUnavailableError, clean_doi, clean_isbn
from pdf_recognizer.utils import (
    crossref_message_to_candidate,
    file_md5,
    jaccard_similarity,
    normalize_title_for_match,
    openlibrary_book_to_candidate,
    split_person_name,
    strip_diacritics,
)


class TestTextNormalization:
    def test_strip_diacritics(self):
        assert strip_diacritics("Schrödinger café") == "Schrodinger cafe"

    def test_normalize_title(self):
        assert normalize_title_for_match("<i>Deep</i>  Learning: A Review!") == "deep learning a review"

    def test_jaccard(self):
        assert jaccard_similarity(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)
        assert jaccard_similarity([], []) == 0.0


class TestSplitPersonName:
    def test_family_comma_given(self):
        assert split_person_name("Doe, Jane") == {"firstName": "Jane", "lastName": "Doe"}

    def test_given_family(self):
        assert split_person_name("Jane Q. Doe") == {"firstName": "Jane Q.", "lastName": "Doe"}

    def test_single_name(self):
        assert split_person_name("Plato") == {"firstName": "", "lastName": "Plato"}

    def test_empty(self):
        assert split_person_name("") == {"firstName": "", "lastName": ""}


class TestCleanDoi:
    def test_trailing_punctuation(self):
        assert clean_doi("see doi:10.1000/xyz123.") == "10.1000/xyz123"

    def test_case_preserved(self):
        assert clean_doi("10.1016/S0140-6736(20)30183-5") == "10.1016/S0140-6736(20)30183-5"

    def test_no_doi(self):
        assert clean_doi("no identifier here") is None
        assert clean_doi(None) is None


class TestCleanIsbn:
    def test_isbn13_with_hyphens(self):
        assert clean_isbn("978-0-306-40615-7") == "9780306406157"

    def test_isbn10(self):
        assert clean_isbn("0-306-40615-2") == "0306406152"

    def test_isbn10_check_digit_x(self):
        assert clean_isbn("0-8044-2957-X") == "080442957X"

    def test_bad_checksum(self):
        assert clean_isbn("978-0-306-40615-8") is None

    def test_wrong_length(self):
        assert clean_isbn("12345") is None


class TestConverters:
    def test_crossref_journal_article(self):
        rec = crossref_message_to_candidate(
            {
                "title": ["A Study of <i>Cats</i>"],
                "author": [{"given": "Jane", "family": "Doe"}, {"literal": "Smith, John"}],
                "container-title": ["Journal of Feline Research"],
                "issued": {"date-parts": [[2020, 5]]},
                "type": "journal-article",
                "DOI": "10.1000/xyz123",
                "ISSN": ["1234-5678"],
                "abstract": "<jats:p>We study cats.</jats:p>",
                "page": "1-10",
            }
        )
        assert rec.title == "A Study of Cats"
        assert rec.authors == [
            {"firstName": "Jane", "lastName": "Doe"},
            {"firstName": "John", "lastName": "Smith"},
        ]
        assert rec.year == "2020"
        assert rec.doi == "10.1000/xyz123"
        assert rec.publication_title == "Journal of Feline Research"
        assert rec.issn == "1234-5678"
        assert rec.abstract == "We study cats."
        assert rec.library_catalog == "Crossref"

    def test_crossref_book_chapter(self):
        rec = crossref_message_to_candidate(
            {"title": ["Chapter One"], "type": "book-chapter", "container-title": ["Big Book"]}
        )
        assert rec.document_type == "bookSection"
        assert rec.book_title == "Big Book"
        assert rec.publication_title is None

    def test_crossref_without_title(self):
        assert crossref_message_to_candidate({"DOI": "10.1000/x"}) is None

    def test_openlibrary_book(self):
        rec = openlibrary_book_to_candidate(
            {
                "title": "Cats",
                "subtitle": "A Natural History",
                "authors": [{"name": "Jane Doe"}],
                "publishers": [{"name": "Feline Books"}],
                "publish_date": "March 1999",
                "number_of_pages": 320,
            },
            "9780306406157",
        )
        assert rec.title == "Cats: A Natural History"
        assert rec.isbn == "9780306406157"
        assert rec.year == "1999"
        assert rec.pages == "320"
        assert rec.publisher == "Feline Books"
        assert rec.document_type == "book"
        assert rec.library_catalog == "Open Library"


class TestRequestPacer:
    def test_waits_for_remaining_interval(self):
        times = iter([100.0, 110.0, 130.0, 170.0, 170.0])
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        pacer = RequestPacer(30.0, clock=lambda: next(times), sleep=fake_sleep)

        async def run():
            for _ in range(3):
                await pacer.wait()

        asyncio.run(run())

        # second request comes 10s after the first, third 40s after the second
        assert sleeps == [20.0]

    def test_zero_interval_never_sleeps(self):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        pacer = RequestPacer(0, sleep=fake_sleep)

        async def run():
            await pacer.wait()
            await pacer.wait()

        asyncio.run(run())
        assert sleeps == []


class TestServiceQuotas:
    def test_waits_for_oldest_request_to_leave_window(self):
        times = iter([0.0, 10.0, 20.0, 60.0, 75.0])
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        quotas = ServiceQuotas({"crossref": 2}, clock=lambda: next(times), sleep=fake_sleep)

        async def run():
            for _ in range(4):
                await quotas.acquire("crossref")

        asyncio.run(run())

        # third request waits until the first is a minute old; the fourth fits
        assert sleeps == [40.0]

    def test_services_without_quota_not_held_back(self):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        quotas = ServiceQuotas({"openlibrary": 0}, clock=lambda: 0.0, sleep=fake_sleep)

        async def run():
            for _ in range(100):
                await quotas.acquire("default")
                await quotas.acquire("openlibrary")

        asyncio.run(run())

        assert sleeps == []
        assert quotas.get("openlibrary") is None
        assert quotas.get("crossref").per_minute == 50


class TestAsyncHttpClient:
    def _request(self, handler, **kwargs):
        async def run():
            client = AsyncHttpClient(transport=httpx.MockTransport(handler), retry_backoff=0, **kwargs)
            try:
                return await client.get("https://api.example.org/works")
            finally:
                await client.close()

        return asyncio.run(run())

    def test_retries_transient_status(self):
        statuses = [503, 200]

        def handler(request):
            return httpx.Response(statuses.pop(0), json={"ok": True})

        resp = self._request(handler)

        assert resp.status_code == 200
        assert statuses == []

    def test_returns_last_retryable_response(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        resp = self._request(handler, max_attempts=3)

        assert resp.status_code == 503
        assert len(calls) == 3

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        assert self._request(handler).status_code == 404
        assert len(calls) == 1

    def test_network_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(ServiceUnavailableError):
            self._request(handler, max_attempts=2)

    def test_user_agent(self):
        seen = []

        def handler(request):
            seen.append(request.headers["User-Agent"])
            return httpx.Response(200)

        self._request(handler, user_agent="pdf-recognizer-tests")
        assert seen == ["pdf-recognizer-tests"]


def test_file_md5(tmp_path):
    path = tmp_path / "doc.pdf"
    path.write_bytes(b"%PDF-1.4 hello")
    assert file_md5(str(path)) == hashlib.md5(b"%PDF-1.4 hello").hexdigest()
