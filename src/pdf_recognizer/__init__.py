"""PDF Recognizer - Identify unknown PDFs and file them under bibliographic records.

This package provides:
- A recognition queue with observable per-item progress
- Multi-strategy metadata resolution (DOI, ISBN, remote recognition service,
  full-text phrase search)
- Title validation against the document's text
- Item stores for local use and for Zotero libraries

Example usage:
    from pdf_recognizer import Attachment, InMemoryItemStore, RecognitionService, load_config

    store = InMemoryItemStore([Attachment(id="A1", title="paper.pdf", path="paper.pdf")])
    service = RecognitionService.from_config(load_config(), store)
    await service.recognize_items(["A1"])
    print(service.rows())
"""

from pdf_recognizer._version import __version__
from pdf_recognizer.config import (
    ExtractorConfig,
    FulltextSearchConfig,
    RecognizerConfig,
    RemoteServiceConfig,
    SearchConfig,
    load_config,
)
from pdf_recognizer.errors import (
    FileMissingError,
    HasParentError,
    NoUsableTextError,
    RateLimitedError,
    RecognitionFailure,
    RecoverableError,
    RemoteServiceError,
    ServiceUnavailableError,
    StoreError,
    UnreadablePDFError,
)
from pdf_recognizer.extractor import PdfTextExtractor
from pdf_recognizer.identifiers import build_fulltext_queries, find_doi, find_isbns
from pdf_recognizer.jobs import JobRow, JobTracker, RecognitionObserver, RowStatus
from pdf_recognizer.processor import QueueProcessor
from pdf_recognizer.remote import RemoteRecognition, RemoteRecognitionClient
from pdf_recognizer.resolver import MetadataResolver
from pdf_recognizer.search import CrossrefSearch, SearchQuery, StructuredSearch
from pdf_recognizer.service import RecognitionService
from pdf_recognizer.store import (
    Attachment,
    BibliographicRecord,
    InMemoryItemStore,
    ItemStore,
    can_recognize,
    materialize,
)
from pdf_recognizer.utils import (
    AsyncHttpClient,
    CandidateRecord,
    ConnectivityProbe,
    RequestPacer,
    ServiceQuotas,
    clean_doi,
    clean_isbn,
)
from pdf_recognizer.validation import validate_title

__all__ = [
    "__version__",
    # Service
    "RecognitionService",
    "QueueProcessor",
    "MetadataResolver",
    # Jobs
    "JobRow",
    "JobTracker",
    "RecognitionObserver",
    "RowStatus",
    # Collaborators
    "PdfTextExtractor",
    "RemoteRecognition",
    "RemoteRecognitionClient",
    "CrossrefSearch",
    "SearchQuery",
    "StructuredSearch",
    # Store
    "Attachment",
    "BibliographicRecord",
    "InMemoryItemStore",
    "ItemStore",
    "can_recognize",
    "materialize",
    # Configuration
    "ExtractorConfig",
    "FulltextSearchConfig",
    "RecognizerConfig",
    "RemoteServiceConfig",
    "SearchConfig",
    "load_config",
    # Errors
    "FileMissingError",
    "HasParentError",
    "NoUsableTextError",
    "RateLimitedError",
    "RecognitionFailure",
    "RecoverableError",
    "RemoteServiceError",
    "ServiceUnavailableError",
    "StoreError",
    "UnreadablePDFError",
    # Utilities
    "AsyncHttpClient",
    "CandidateRecord",
    "ConnectivityProbe",
    "RequestPacer",
    "ServiceQuotas",
    "build_fulltext_queries",
    "clean_doi",
    "clean_isbn",
    "find_doi",
    "find_isbns",
    "validate_title",
]
