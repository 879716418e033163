"""Multi-strategy metadata resolution for unidentified PDFs.

Strategies run in a fixed order and the first one producing an acceptable
candidate wins:

1. DOI found in the first lines of the text
2. ISBN found anywhere in the text
3. Remote recognition service (identifiers, then title/author search, then
   a record synthesized from the response)
4. Full-text phrase search (optional)

Candidates found by identifier in the document itself are trusted as is.
Everything else must pass title validation against the extracted text.
"""

from __future__ import annotations

import asyncio
import logging

from pdf_recognizer.errors import FileMissingError, HasParentError, NoUsableTextError, RecognitionFailure
from pdf_recognizer.extractor import DEFAULT_MAX_PAGES, PdfTextExtractor
from pdf_recognizer.identifiers import build_fulltext_queries, find_doi, find_isbns
from pdf_recognizer.remote import RemoteRecognition, RemoteRecognitionClient
from pdf_recognizer.search import SearchQuery, StructuredSearch
from pdf_recognizer.store import Attachment, BibliographicRecord, ItemStore, materialize
from pdf_recognizer.utils import CandidateRecord, RequestPacer, file_md5
from pdf_recognizer.validation import validate_title


class MetadataResolver:
    """Identifies a PDF attachment and saves a parent record for it."""

    def __init__(
        self,
        store: ItemStore,
        extractor: PdfTextExtractor,
        search: StructuredSearch,
        remote: RemoteRecognitionClient | None = None,
        fulltext_pacer: RequestPacer | None = None,
        fulltext_queries: int = 3,
        max_pages: int = DEFAULT_MAX_PAGES,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Item store holding the attachments
            extractor: PDF text extractor
            search: Structured search collaborator
            remote: Remote recognition client, or None to skip that strategy
            fulltext_pacer: Pacer for full-text phrase searches. The strategy
                is disabled when None.
            fulltext_queries: Number of phrase queries to try
            max_pages: Pages of the PDF to extract
            logger: Logger (defaults to this module's logger)
        """
        self.store = store
        self.extractor = extractor
        self.search = search
        self.remote = remote
        self.fulltext_pacer = fulltext_pacer
        self.fulltext_queries = fulltext_queries
        self.max_pages = max_pages
        self.logger = logger or logging.getLogger(__name__)

    async def recognize(self, item_id: str) -> BibliographicRecord | None:
        """Recognize one attachment.

        Returns:
            The new parent record, or None if no strategy found a match

        Raises:
            RecognitionFailure: For problems with the attachment itself
        """
        # store and file access run in a worker thread
        attachment = await asyncio.to_thread(self.store.get_attachment, item_id)
        if attachment is None:
            raise FileMissingError()
        if attachment.parent_id is not None:
            raise HasParentError()
        if not attachment.path:
            raise FileMissingError()

        lines = await self.extractor.extract_lines(attachment.path, self.max_pages)
        if not lines:
            raise NoUsableTextError()

        candidate = await self.find_candidate(lines, attachment)
        if candidate is None:
            return None
        return await asyncio.to_thread(materialize, self.store, attachment, candidate)

    async def find_candidate(self, lines: list[str], attachment: Attachment) -> CandidateRecord | None:
        """Run the strategies in order and return the first acceptable candidate."""
        doi = find_doi(lines)
        if doi:
            self.logger.debug("Found DOI: %s", doi)
            found = await self._first(SearchQuery.by_doi(doi))
            if found:
                return found
        else:
            self.logger.debug("No DOIs found in text")

        isbns = find_isbns("\n".join(lines))
        if isbns:
            self.logger.debug("Found ISBNs: %s", ", ".join(isbns))
            found = await self._first(SearchQuery.by_isbn(isbns[0]))
            if found:
                return found
        else:
            self.logger.debug("No ISBNs found")

        fulltext = "\n".join(lines)

        if self.remote is not None and attachment.path:
            md5 = await asyncio.to_thread(file_md5, attachment.path)
            response = await self.remote.recognize(md5, fulltext)
            if response is not None:
                found = await self._from_remote(response, fulltext)
                if found:
                    return found

        if self.fulltext_pacer is not None:
            return await self._from_fulltext_search(lines, fulltext)

        return None

    async def _run_search(self, query: SearchQuery) -> list[CandidateRecord]:
        try:
            return await self.search.search(query)
        except RecognitionFailure:
            raise
        except Exception as e:
            self.logger.debug("Search failed for %s: %s", query, e)
            return []

    async def _first(self, query: SearchQuery) -> CandidateRecord | None:
        results = await self._run_search(query)
        return results[0] if results else None

    async def _first_valid(self, query: SearchQuery, fulltext: str) -> CandidateRecord | None:
        for candidate in await self._run_search(query):
            if validate_title(fulltext, candidate.title):
                return candidate
        return None

    async def _from_remote(self, response: RemoteRecognition, fulltext: str) -> CandidateRecord | None:
        for kind, value in response.identifiers:
            query = SearchQuery.by_doi(value) if kind == "doi" else SearchQuery.by_isbn(value)
            found = await self._first(query)
            if found and validate_title(fulltext, found.title):
                return self._with_abstract(found, response)

        if not response.title:
            return None

        found = await self._first_valid(SearchQuery.by_title(response.title, response.author_query()), fulltext)
        if found:
            return self._with_abstract(found, response)

        self.logger.debug("Using metadata from the recognition service for %r", response.title)
        return response.to_candidate()

    def _with_abstract(self, candidate: CandidateRecord, response: RemoteRecognition) -> CandidateRecord:
        if not candidate.abstract and response.abstract:
            candidate.abstract = response.abstract
        return candidate

    async def _from_fulltext_search(self, lines: list[str], fulltext: str) -> CandidateRecord | None:
        assert self.fulltext_pacer is not None
        for query in build_fulltext_queries(lines, self.fulltext_queries):
            await self.fulltext_pacer.wait()
            self.logger.debug("Full-text query: %s", query)
            found = await self._first_valid(SearchQuery.by_fulltext(query), fulltext)
            if found:
                return found
        return None
