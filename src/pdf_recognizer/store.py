"""Item store interface and transactional record materialization.

The store owns attachments and bibliographic records. Recognition only needs
a small surface of it:

- look up an attachment by id
- within one transaction: create a record, copy the attachment's
  collections onto it, and move the attachment under the new record

``InMemoryItemStore`` implements the interface for tests and for local
command-line runs; ``pdf_recognizer.zotero.ZoteroItemStore`` talks to a
Zotero library.
"""

from __future__ import annotations

import copy
import itertools
import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from typing import Protocol

from pdf_recognizer.errors import StoreError
from pdf_recognizer.utils import CandidateRecord

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass
class Attachment:
    """A file attachment as seen by the recognizer."""

    id: str
    title: str
    path: str | None = None
    parent_id: str | None = None
    collections: list[str] = field(default_factory=list)
    content_type: str = PDF_CONTENT_TYPE


@dataclass
class BibliographicRecord:
    """A durable bibliographic item."""

    item_type: str
    fields: dict[str, str] = field(default_factory=dict)
    creators: list[dict[str, str]] = field(default_factory=list)
    library_catalog: str | None = None
    collections: list[str] = field(default_factory=list)
    id: str | None = None

    @property
    def title(self) -> str:
        return self.fields.get("title", "")


def can_recognize(attachment: Attachment) -> bool:
    """True if the attachment is a top-level PDF."""
    return attachment.content_type == PDF_CONTENT_TYPE and attachment.parent_id is None


def candidate_to_record(candidate: CandidateRecord) -> BibliographicRecord:
    """Convert a validated candidate into a record ready to be saved."""
    fields: dict[str, str] = {}

    def put(name: str, value: str | None) -> None:
        if value:
            fields[name] = str(value)

    put("title", candidate.title)
    put("abstractNote", candidate.abstract)
    put("date", candidate.year)
    put("url", candidate.url)
    put("publisher", candidate.publisher)
    put("pages", candidate.pages)
    put("volume", candidate.volume)
    put("libraryCatalog", candidate.library_catalog)

    if candidate.document_type == "book":
        put("ISBN", candidate.isbn)
        put("numPages", candidate.pages)
        fields.pop("pages", None)
    elif candidate.document_type == "bookSection":
        put("bookTitle", candidate.book_title or candidate.publication_title)
        put("ISBN", candidate.isbn)
        put("DOI", candidate.doi)
    else:
        put("publicationTitle", candidate.publication_title)
        put("issue", candidate.issue)
        put("ISSN", candidate.issn)
        put("DOI", candidate.doi)

    creators = []
    for author in candidate.authors:
        first = (author.get("firstName") or "").strip()
        last = (author.get("lastName") or "").strip()
        if first or last:
            creators.append({"creatorType": "author", "firstName": first, "lastName": last})

    return BibliographicRecord(
        item_type=candidate.document_type,
        fields=fields,
        creators=creators,
        library_catalog=candidate.library_catalog,
    )


class StoreTransaction(Protocol):
    def create_record(self, record: BibliographicRecord) -> BibliographicRecord: ...

    def add_to_collection(self, collection_id: str, record: BibliographicRecord) -> None: ...

    def set_parent(self, attachment: Attachment, parent: BibliographicRecord) -> None: ...


class ItemStore(Protocol):
    async def wait_until_ready(self) -> None: ...

    def get_attachment(self, item_id: str, fetch_file: bool = True) -> Attachment | None: ...

    def transaction(self) -> AbstractContextManager[StoreTransaction]: ...


def materialize(store: ItemStore, attachment: Attachment, candidate: CandidateRecord) -> BibliographicRecord:
    """Save ``candidate`` and file ``attachment`` under it, atomically.

    The new record joins every collection the attachment belongs to, and
    the attachment becomes its child. Either all of this happens or none of it.
    """
    record = candidate_to_record(candidate)
    with store.transaction() as txn:
        saved = txn.create_record(record)
        for collection_id in attachment.collections:
            txn.add_to_collection(collection_id, saved)
        txn.set_parent(attachment, saved)
    logger.debug("Saved %s as parent of %s", saved.id, attachment.id)
    return saved


# ------------- In-memory store -------------


class _InMemoryTransaction:
    def __init__(self, attachments: dict[str, Attachment], records: dict[str, BibliographicRecord], new_id) -> None:
        self.attachments = attachments
        self.records = records
        self._new_id = new_id

    def create_record(self, record: BibliographicRecord) -> BibliographicRecord:
        saved = copy.deepcopy(record)
        saved.id = self._new_id()
        self.records[saved.id] = saved
        return saved

    def add_to_collection(self, collection_id: str, record: BibliographicRecord) -> None:
        target = self.records.get(record.id or "")
        if target is None:
            raise StoreError(f"Unknown record {record.id}")
        if collection_id not in target.collections:
            target.collections.append(collection_id)
        record.collections = list(target.collections)

    def set_parent(self, attachment: Attachment, parent: BibliographicRecord) -> None:
        target = self.attachments.get(attachment.id)
        if target is None:
            raise StoreError(f"Unknown attachment {attachment.id}")
        if parent.id not in self.records:
            raise StoreError(f"Unknown parent record {parent.id}")
        target.parent_id = parent.id
        # child attachments live in their parent's collections
        target.collections = []


class InMemoryItemStore:
    """Dictionary-backed item store with all-or-nothing transactions.

    A transaction works on deep copies of the attachment and record maps;
    the copies replace the originals only when the block exits cleanly.
    """

    def __init__(self, attachments: list[Attachment] | None = None) -> None:
        self.attachments: dict[str, Attachment] = {a.id: a for a in attachments or []}
        self.records: dict[str, BibliographicRecord] = {}
        self._ids = itertools.count(1)

    def add_attachment(self, attachment: Attachment) -> None:
        self.attachments[attachment.id] = attachment

    async def wait_until_ready(self) -> None:
        return None

    def get_attachment(self, item_id: str, fetch_file: bool = True) -> Attachment | None:
        attachment = self.attachments.get(item_id)
        return copy.deepcopy(attachment) if attachment else None

    def _new_id(self) -> str:
        return f"R{next(self._ids)}"

    @contextmanager
    def transaction(self) -> Iterator[_InMemoryTransaction]:
        attachments = copy.deepcopy(self.attachments)
        records = copy.deepcopy(self.records)
        txn = _InMemoryTransaction(attachments, records, self._new_id)
        yield txn
        self.attachments = attachments
        self.records = records
