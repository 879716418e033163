"""Item store backed by the Zotero web API.

Requires pyzotero:
    pip install pyzotero

Attachment files are downloaded into a local directory so that they can be
passed to the text extractor.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pdf_recognizer.errors import StoreError
from pdf_recognizer.store import Attachment, BibliographicRecord

# Link modes whose file is stored by Zotero and can be downloaded
STORED_LINK_MODES = {"imported_file", "imported_url"}


class ZoteroTransaction:
    """Collects the changes of one materialization and applies them on commit.

    The new item is created together with its collections in a single
    request. The attachment is then moved under it; if that fails the new
    item is deleted again.
    """

    def __init__(self, store: ZoteroItemStore) -> None:
        self.store = store
        self.record: BibliographicRecord | None = None
        self.attachment: Attachment | None = None

    def create_record(self, record: BibliographicRecord) -> BibliographicRecord:
        if self.record is not None:
            raise StoreError("Only one record can be created per transaction")
        self.record = record
        return record

    def add_to_collection(self, collection_id: str, record: BibliographicRecord) -> None:
        if record is not self.record:
            raise StoreError("Record was not created in this transaction")
        if collection_id not in record.collections:
            record.collections.append(collection_id)

    def set_parent(self, attachment: Attachment, parent: BibliographicRecord) -> None:
        if parent is not self.record:
            raise StoreError("Parent was not created in this transaction")
        self.attachment = attachment

    def commit(self) -> None:
        if self.record is None:
            return
        key = self.store.create_item(self.record)
        self.record.id = key
        if self.attachment is None:
            return
        try:
            self.store.reparent(self.attachment.id, key)
        except Exception as e:
            self.store.logger.warning("Reparenting %s failed, deleting %s: %s", self.attachment.id, key, e)
            self.store.delete_item(key)
            raise StoreError(f"Could not move {self.attachment.id} under {key}") from e
        self.attachment.parent_id = key
        self.attachment.collections = []


class ZoteroItemStore:
    """Item store for a Zotero user or group library."""

    def __init__(
        self,
        library_id: str,
        api_key: str,
        library_type: str = "user",
        download_dir: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            library_id: Zotero library ID
            api_key: Zotero API key with write access
            library_type: "user" or "group"
            download_dir: Where attachment files are saved (temp dir if None)
            logger: Logger instance (creates one if not provided)
        """
        self.library_id = library_id
        self.api_key = api_key
        self.library_type = library_type
        self.download_dir = download_dir
        self.logger = logger or logging.getLogger(__name__)
        self._zot = None

    @property
    def zot(self):
        """Lazy-load pyzotero client."""
        if self._zot is None:
            try:
                from pyzotero import zotero

                self._zot = zotero.Zotero(self.library_id, self.library_type, self.api_key)
            except ImportError as e:
                raise ImportError("pyzotero not installed. Run: pip install pyzotero") from e
        return self._zot

    async def wait_until_ready(self) -> None:
        if not self.library_id or not self.api_key:
            raise StoreError("ZOTERO_LIBRARY_ID and ZOTERO_API_KEY required")
        _ = self.zot

    def get_attachment(self, item_id: str, fetch_file: bool = True) -> Attachment | None:
        """Look up an attachment and, unless ``fetch_file`` is False, make its file available locally.

        Returns:
            The attachment, or None if no such attachment exists

        Raises:
            StoreError: If Zotero could not be reached or failed
        """
        from pyzotero.zotero_errors import ResourceNotFoundError

        try:
            item = self.zot.item(item_id)
        except ResourceNotFoundError:
            self.logger.debug("No item %s in the library", item_id)
            return None
        except Exception as e:
            raise StoreError(f"Could not fetch {item_id}: {e}") from e
        data = item.get("data", item)
        if data.get("itemType") != "attachment":
            return None

        attachment = Attachment(
            id=data["key"],
            title=data.get("title") or data.get("filename") or data["key"],
            parent_id=data.get("parentItem") or None,
            collections=list(data.get("collections") or []),
            content_type=data.get("contentType") or "",
        )
        if fetch_file and attachment.parent_id is None:
            attachment.path = self._local_path(data)
        return attachment

    def _local_path(self, data: dict[str, Any]) -> str | None:
        from pyzotero.zotero_errors import ResourceNotFoundError

        if data.get("linkMode") == "linked_file":
            return data.get("path") or None
        if data.get("linkMode") not in STORED_LINK_MODES:
            return None
        if self.download_dir is None:
            self.download_dir = tempfile.mkdtemp(prefix="pdf-recognizer-zotero-")
        filename = f"{data['key']}.pdf"
        try:
            self.zot.dump(data["key"], filename, self.download_dir)
        except ResourceNotFoundError:
            # attachment item without a stored file
            self.logger.debug("No file stored for %s", data["key"])
            return None
        except Exception as e:
            raise StoreError(f"Download of {data['key']} failed: {e}") from e
        return os.path.join(self.download_dir, filename)

    # --- Writes used by ZoteroTransaction ---

    def build_payload(self, record: BibliographicRecord) -> dict[str, Any]:
        template = self.zot.item_template(record.item_type)
        for name, value in record.fields.items():
            if name in template:
                template[name] = value
        template["creators"] = [dict(c) for c in record.creators]
        template["collections"] = list(record.collections)
        return template

    def create_item(self, record: BibliographicRecord) -> str:
        resp = self.zot.create_items([self.build_payload(record)])
        success = resp.get("success") or {}
        if "0" not in success:
            raise StoreError(f"Zotero rejected the new item: {resp.get('failed')}")
        return success["0"]

    def reparent(self, attachment_id: str, parent_key: str) -> None:
        item = self.zot.item(attachment_id)
        data = item.get("data", item)
        self.zot.update_item(
            {
                "key": data["key"],
                "version": data["version"],
                "parentItem": parent_key,
                "collections": [],
            }
        )

    def delete_item(self, key: str) -> None:
        try:
            self.zot.delete_item(self.zot.item(key))
        except Exception as e:
            self.logger.warning("Failed to delete %s: %s", key, e)

    @contextmanager
    def transaction(self) -> Iterator[ZoteroTransaction]:
        txn = ZoteroTransaction(self)
        yield txn
        txn.commit()
