"""Shared utilities for PDF recognition.

This module provides common functionality used by:
- identifiers.py (DOI/ISBN cleaning and checksums)
- search.py and remote.py (HTTP infrastructure, API converters)
- resolver.py (candidate records, content hashing)

Includes text normalization, DOI/ISBN handling, async HTTP infrastructure
with per-service request quotas and request pacing, and API response converters.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
import unicodedata
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from pdf_recognizer.errors import ServiceUnavailableError

# ------------- Constants & Regex -------------

DOI_RE = re.compile(r"10(?:\.[0-9]{4,})?/[^\s]*[^\s.,]")

# API endpoints
CROSSREF_API = "https://api.crossref.org/works"
OPENLIBRARY_BOOKS_API = "https://openlibrary.org/api/books"

# Provenance tag for records synthesized straight from the recognition service
MACHINE_RESOLVED_CATALOG = "Metadata Recognition Service"


# ------------- Text Normalization -------------


def strip_diacritics(text: str) -> str:
    """Remove diacritics from text (e.g., 'café' -> 'cafe')."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join([c for c in nfkd if not unicodedata.combining(c)])


def normalize_title_for_match(title: str) -> str:
    """Normalize a title for fuzzy matching.

    Removes diacritics, HTML tags, punctuation, and extra whitespace.
    Converts to lowercase.
    """
    t = re.sub(r"<[^>]*>", " ", title or "")
    t = strip_diacritics(t).lower()
    t = re.sub(r"[^a-z0-9\s]", " ", t)
    t = re.sub(r"\s+", " ", t).strip()
    return t


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Compute Jaccard similarity between two iterables of strings."""
    sa, sb = set(a), set(b)
    if not sa and not sb:
        return 0.0
    inter = len(sa & sb)
    union = len(sa | sb)
    return inter / union if union else 0.0


def split_person_name(name: str) -> dict[str, str]:
    """Split a display name into ``{"firstName", "lastName"}``.

    Handles both 'Family, Given' and 'Given Family' formats.
    """
    name = (name or "").strip()
    if "," in name:
        last, first = name.split(",", 1)
        return {"firstName": first.strip(), "lastName": last.strip()}
    parts = name.split()
    if len(parts) >= 2:
        return {"firstName": " ".join(parts[:-1]), "lastName": parts[-1]}
    return {"firstName": "", "lastName": parts[0] if parts else ""}


# ------------- DOI & ISBN Utilities -------------


def clean_doi(text: str | None) -> str | None:
    """Return the first DOI found in ``text``, or None.

    Case is preserved; trailing punctuation is not part of the DOI.
    """
    if not text:
        return None
    m = DOI_RE.search(text)
    return m.group(0) if m else None


def isbn10_is_valid(isbn: str) -> bool:
    if len(isbn) != 10 or not re.fullmatch(r"[0-9]{9}[0-9X]", isbn):
        return False
    total = sum((10 - i) * (10 if c == "X" else int(c)) for i, c in enumerate(isbn))
    return total % 11 == 0


def isbn13_is_valid(isbn: str) -> bool:
    if len(isbn) != 13 or not isbn.isdigit() or not isbn.startswith(("978", "979")):
        return False
    total = sum(int(c) * (1 if i % 2 == 0 else 3) for i, c in enumerate(isbn))
    return total % 10 == 0


def clean_isbn(isbn: str | None) -> str | None:
    """Strip separators from an ISBN and return it if the checksum holds."""
    if not isbn:
        return None
    cleaned = re.sub(r"[^0-9X]", "", isbn.upper())
    if isbn10_is_valid(cleaned) or isbn13_is_valid(cleaned):
        return cleaned
    return None


def file_md5(path: str, chunk_size: int = 65536) -> str:
    """Hex MD5 digest of a file's contents."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


# ------------- Data Classes -------------


@dataclass
class CandidateRecord:
    """A transient metadata proposal returned by a resolution strategy."""

    title: str | None = None
    identifiers: list[tuple[str, str]] = field(default_factory=list)  # [("doi", ...), ("isbn", ...)]
    authors: list[dict[str, str]] = field(default_factory=list)  # [{"firstName":..., "lastName":...}]
    abstract: str | None = None
    year: str | None = None
    publication_title: str | None = None
    book_title: str | None = None
    publisher: str | None = None
    pages: str | None = None
    volume: str | None = None
    issue: str | None = None
    issn: str | None = None
    url: str | None = None
    document_type: str = "journalArticle"  # journalArticle | bookSection | book
    library_catalog: str | None = None
    source: str | None = None  # how found

    def identifier(self, kind: str) -> str | None:
        for typ, value in self.identifiers:
            if typ == kind:
                return value
        return None

    @property
    def doi(self) -> str | None:
        return self.identifier("doi")

    @property
    def isbn(self) -> str | None:
        return self.identifier("isbn")


# ------------- API Response Converters -------------


def crossref_message_to_candidate(msg: dict[str, Any]) -> CandidateRecord | None:
    """Convert a Crossref works message to a CandidateRecord."""
    titles = msg.get("title") or []
    title = titles[0] if titles else None
    if not title:
        return None
    title = re.sub(r"<[^>]*>", "", title)  # strip HTML tags

    # Authors - handle given/family and literal formats
    authors = []
    for a in msg.get("author", []) or []:
        given = a.get("given") or ""
        family = a.get("family") or ""
        if not (given or family) and a.get("literal"):
            parts = split_person_name(a["literal"])
            given, family = parts["firstName"], parts["lastName"]
        authors.append({"firstName": given, "lastName": family})

    container = msg.get("container-title") or []
    container_title = container[0] if container else None

    year = None
    for dt_key in ("published-print", "published-online", "issued", "created"):
        parts = (msg.get(dt_key) or {}).get("date-parts")
        if parts and parts[0] and parts[0][0]:
            year = str(parts[0][0])
            break

    typ = msg.get("type")
    document_type = "bookSection" if typ in ("book-chapter", "book-section", "book-part") else "journalArticle"

    issns = msg.get("ISSN") or []
    abstract = msg.get("abstract")
    if abstract:
        abstract = re.sub(r"<[^>]*>", "", abstract).strip()

    identifiers = []
    doi = msg.get("DOI")
    if doi:
        identifiers.append(("doi", doi))

    return CandidateRecord(
        title=title,
        identifiers=identifiers,
        authors=authors,
        abstract=abstract or None,
        year=year,
        publication_title=container_title if document_type == "journalArticle" else None,
        book_title=container_title if document_type == "bookSection" else None,
        publisher=msg.get("publisher"),
        pages=msg.get("page"),
        volume=msg.get("volume"),
        issue=msg.get("issue") or (msg.get("journal-issue") or {}).get("issue"),
        issn=issns[0] if issns else None,
        url=msg.get("URL"),
        document_type=document_type,
        library_catalog="Crossref",
    )


def openlibrary_book_to_candidate(data: dict[str, Any], isbn: str) -> CandidateRecord | None:
    """Convert an Open Library ``jscmd=data`` book entry to a CandidateRecord."""
    title = data.get("title")
    if not title:
        return None
    subtitle = data.get("subtitle")
    if subtitle:
        title = f"{title}: {subtitle}"

    authors = [split_person_name(a.get("name", "")) for a in data.get("authors") or [] if a.get("name")]
    publishers = [p.get("name") for p in data.get("publishers") or [] if p.get("name")]

    year = None
    m = re.search(r"(1[5-9]\d{2}|20\d{2})", data.get("publish_date") or "")
    if m:
        year = m.group(1)

    pages = data.get("number_of_pages")

    return CandidateRecord(
        title=title,
        identifiers=[("isbn", isbn)],
        authors=authors,
        year=year,
        publisher=", ".join(publishers) if publishers else None,
        pages=str(pages) if pages else None,
        url=data.get("url"),
        document_type="book",
        library_catalog="Open Library",
    )


# ------------- Per-Service Request Quotas -------------


class MinuteQuota:
    """Caps how many requests one service receives in any 60 second span.

    Send times are kept oldest first; when the quota is used up, the caller
    sleeps until the oldest send leaves the window.
    """

    WINDOW = 60.0

    def __init__(self, per_minute: int, clock=time.monotonic, sleep=asyncio.sleep) -> None:
        self.per_minute = max(per_minute, 1)
        self._clock = clock
        self._sleep = sleep
        self._sent: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _expire(self, now: float) -> None:
        while self._sent and now - self._sent[0] >= self.WINDOW:
            self._sent.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            now = self._clock()
            self._expire(now)
            if len(self._sent) >= self.per_minute:
                await self._sleep(self.WINDOW - (now - self._sent[0]))
                now = self._clock()
                self._expire(now)
            self._sent.append(now)


class ServiceQuotas:
    """Per-minute request quotas keyed by service name.

    Services without a quota (the connectivity check, for one) are never
    held back.
    """

    DEFAULT_QUOTAS = {
        "crossref": 50,  # polite pool
        "openlibrary": 60,
        "recognizer": 30,
    }

    def __init__(self, overrides: dict[str, int] | None = None, clock=time.monotonic, sleep=asyncio.sleep) -> None:
        """Create the quotas.

        Args:
            overrides: Requests per minute per service, on top of DEFAULT_QUOTAS.
                A value of 0 removes the quota for that service.
            clock: Monotonic clock
            sleep: Sleep coroutine function
        """
        limits = {**self.DEFAULT_QUOTAS, **(overrides or {})}
        self._quotas = {
            service: MinuteQuota(limit, clock=clock, sleep=sleep) for service, limit in limits.items() if limit > 0
        }

    def get(self, service: str) -> MinuteQuota | None:
        return self._quotas.get(service)

    async def acquire(self, service: str) -> None:
        quota = self._quotas.get(service)
        if quota is not None:
            await quota.acquire()


class RequestPacer:
    """Enforces a fixed minimum interval between consecutive requests.

    Some services (full-text scholarly search in particular) block clients
    that send requests back to back. The pacer remembers when the last
    request went out and sleeps for the remainder of the interval.
    """

    def __init__(self, min_interval: float = 0.0, clock=time.monotonic, sleep=asyncio.sleep) -> None:
        self.min_interval = max(min_interval, 0.0)
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    async def wait(self) -> None:
        if self.min_interval and self._last is not None:
            delay = self.min_interval - (self._clock() - self._last)
            if delay > 0:
                await self._sleep(delay)
        self._last = self._clock()


# ------------- Async HTTP Client -------------


class AsyncHttpClient:
    """Async HTTP client with request quotas and retry logic.

    This client provides async HTTP requests with:
    - Per-service request quotas via ServiceQuotas
    - Automatic retry with exponential backoff for transient failures
    """

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        quotas: ServiceQuotas | None = None,
        timeout: float = 20.0,
        user_agent: str = "pdf-recognizer/0.3",
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            quotas: Per-minute request quotas per service
            timeout: Request timeout in seconds
            user_agent: User-Agent header value
            max_attempts: Attempts per request before giving up
            retry_backoff: Initial delay between attempts (doubles, capped at 16s)
            transport: Optional httpx transport (used by tests)
        """
        self.quotas = quotas or ServiceQuotas()
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_attempts = max(max_attempts, 1)
        self.retry_backoff = retry_backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client instance."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        service: str = "default",
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | list[Any] | None = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        """Make async HTTP request within the service quota, with retry.

        Retryable statuses (429, 5xx) and transport errors are retried. When
        the last attempt still fails, the last retryable response is
        returned so callers can inspect its status; a transport failure on
        every attempt raises.

        Raises:
            ServiceUnavailableError: If no attempt produced a response
        """
        request_headers = {"Accept": accept}
        if json_body is not None:
            request_headers["Content-Type"] = "application/json"

        backoff = self.retry_backoff
        last_response: httpx.Response | None = None

        for attempt in range(self.max_attempts):
            await self.quotas.acquire(service)
            try:
                resp = await self.client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=request_headers,
                )
                if resp.status_code not in self.RETRYABLE_STATUS:
                    return resp
                last_response = resp
            except httpx.HTTPError:
                last_response = None
            if attempt < self.max_attempts - 1:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 16.0)

        if last_response is not None:
            return last_response
        raise ServiceUnavailableError(f"Network failure after retries for {url}")

    async def get(
        self,
        url: str,
        service: str = "default",
        params: dict[str, Any] | None = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        return await self.request("GET", url, service=service, params=params, accept=accept)

    async def post(
        self,
        url: str,
        service: str = "default",
        json_body: dict[str, Any] | list[Any] | None = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        return await self.request("POST", url, service=service, json_body=json_body, accept=accept)

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AsyncHttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class ConnectivityProbe:
    """Reports whether the network is reachable by issuing a HEAD request."""

    def __init__(self, url: str = "https://api.crossref.org/", timeout: float = 5.0) -> None:
        self.url = url
        self.timeout = timeout

    async def __call__(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                await client.head(self.url)
        except httpx.HTTPError:
            return False
        return True
