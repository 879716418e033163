"""Recognition service facade.

Wires the job tracker, queue processor and resolver together and exposes the
operations a caller needs: queue attachments, observe progress, cancel.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from pdf_recognizer.config import RecognizerConfig
from pdf_recognizer.errors import StoreError
from pdf_recognizer.extractor import PdfTextExtractor
from pdf_recognizer.jobs import JobRow, JobTracker, RecognitionObserver
from pdf_recognizer.processor import QueueProcessor
from pdf_recognizer.remote import RemoteRecognitionClient
from pdf_recognizer.resolver import MetadataResolver
from pdf_recognizer.search import CrossrefSearch, StructuredSearch
from pdf_recognizer.store import Attachment, ItemStore
from pdf_recognizer.utils import AsyncHttpClient, ConnectivityProbe, RequestPacer, ServiceQuotas

logger = logging.getLogger(__name__)


class RecognitionService:
    def __init__(
        self,
        store: ItemStore,
        resolver: MetadataResolver,
        processor: QueueProcessor,
        tracker: JobTracker,
        http: AsyncHttpClient | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.processor = processor
        self.tracker = tracker
        self.http = http

    @classmethod
    def from_config(
        cls,
        config: RecognizerConfig,
        store: ItemStore,
        search: StructuredSearch | None = None,
        http: AsyncHttpClient | None = None,
    ) -> RecognitionService:
        """Build a service with the default collaborators.

        Args:
            config: Recognizer configuration
            store: Item store holding the attachments
            search: Structured search (Crossref/Open Library if None)
            http: HTTP client (created from ``config.search`` if None)
        """
        if http is None:
            http = AsyncHttpClient(
                quotas=ServiceQuotas(config.search.rate_limits),
                timeout=config.search.timeout,
                max_attempts=config.search.max_attempts,
            )
        if search is None:
            search = CrossrefSearch(http, mailto=config.search.mailto, rows=config.search.rows)

        remote = None
        if config.remote.url:
            remote = RemoteRecognitionClient(http, config.remote.url, min_interval=config.remote.min_interval)

        fulltext_pacer = RequestPacer(config.fulltext.min_interval) if config.fulltext.enabled else None

        resolver = MetadataResolver(
            store=store,
            extractor=PdfTextExtractor(config.extractor.executable, config.extractor.scratch_dir),
            search=search,
            remote=remote,
            fulltext_pacer=fulltext_pacer,
            fulltext_queries=config.fulltext.queries,
            max_pages=config.extractor.max_pages,
        )
        tracker = JobTracker()
        processor = QueueProcessor(
            tracker,
            resolver,
            is_online=ConnectivityProbe() if config.check_connectivity else None,
            wait_ready=store.wait_until_ready,
            offline_recheck_interval=config.offline_recheck_interval,
            backoff_step=config.backoff_step,
            backoff_cap=config.backoff_cap,
            max_retries=config.max_retries,
        )
        return cls(store, resolver, processor, tracker, http=http)

    def add_observer(self, observer: RecognitionObserver) -> None:
        self.tracker.add_observer(observer)

    def recognize_items(self, items: Iterable[Attachment | str]) -> asyncio.Task[None]:
        """Queue attachments for recognition and make sure the worker runs.

        Args:
            items: Attachments or attachment ids

        Returns:
            The worker task
        """
        for item in items:
            if isinstance(item, Attachment):
                item_id, title = item.id, item.title
            else:
                item_id, title = item, item
                try:
                    attachment = self.store.get_attachment(item, fetch_file=False)
                except StoreError as e:
                    logger.warning("Could not look up %s: %s", item, e)
                    attachment = None
                if attachment is not None:
                    title = attachment.title
            self.tracker.enqueue(item_id, title)
        return self.processor.schedule()

    def cancel_all(self) -> None:
        self.tracker.cancel_all()

    def rows(self) -> list[JobRow]:
        return self.tracker.list_rows()

    async def wait_idle(self) -> None:
        await self.processor.wait_idle()

    async def close(self) -> None:
        self.resolver.extractor.cleanup()
        if self.http is not None:
            await self.http.close()
