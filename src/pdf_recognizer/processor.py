"""Sequential worker that drains the recognition queue."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pdf_recognizer.errors import RecognitionFailure
from pdf_recognizer.jobs import JobTracker, RowStatus
from pdf_recognizer.resolver import MetadataResolver

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No matches found"
PROCESSING_MESSAGE = "processing"
GENERIC_ERROR_MESSAGE = "An error occurred, retrying later"
GAVE_UP_MESSAGE = "An error occurred"
STORE_UNAVAILABLE_MESSAGE = "Item store is not available"


class QueueProcessor:
    """Processes queued jobs one at a time.

    Domain failures end a job immediately. Any other error marks the row
    failed and puts the job back at the end of the queue; each consecutive
    error of this kind makes the worker wait one ``backoff_step`` longer, up
    to ``backoff_cap``. A success or a no-match resets the wait. With
    ``max_retries`` set, a job that keeps failing is eventually given up.

    If the store never becomes ready, every pending job fails and the worker
    stops; a later ``schedule()`` tries again.
    """

    def __init__(
        self,
        tracker: JobTracker,
        resolver: MetadataResolver,
        is_online: Callable[[], Awaitable[bool]] | None = None,
        wait_ready: Callable[[], Awaitable[None]] | None = None,
        offline_recheck_interval: float = 5.0,
        backoff_step: float = 1.0,
        backoff_cap: float = 60.0,
        max_retries: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the processor.

        Args:
            tracker: Job rows and pending queue
            resolver: Resolver invoked for every job
            is_online: Connectivity probe. Assumed online if not given.
            wait_ready: Awaited once per run before the first job
            offline_recheck_interval: Seconds between connectivity checks while offline
            backoff_step: Added delay per consecutive recoverable error
            backoff_cap: Maximum delay after a recoverable error
            max_retries: Retries per job after recoverable errors. Unlimited if None.
            sleep: Sleep coroutine function
        """
        self.tracker = tracker
        self.resolver = resolver
        self.is_online = is_online
        self.wait_ready = wait_ready
        self.offline_recheck_interval = offline_recheck_interval
        self.backoff_step = backoff_step
        self.backoff_cap = backoff_cap
        self.max_retries = max_retries
        self._sleep = sleep
        self.processing = False
        self.consecutive_failures = 0
        self._retries: dict[str, int] = {}
        self._task: asyncio.Task[None] | None = None

    def backoff_delay(self) -> float:
        return min(self.consecutive_failures * self.backoff_step, self.backoff_cap)

    def schedule(self) -> asyncio.Task[None]:
        """Start the worker unless it is already running. Requires a running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.process_queue())
        return self._task

    async def wait_idle(self) -> None:
        if self._task is not None:
            await self._task

    async def _wait_online(self) -> None:
        if self.is_online is None:
            return
        while not await self.is_online():
            logger.debug("Offline, checking again in %.0fs", self.offline_recheck_interval)
            await self._sleep(self.offline_recheck_interval)

    async def process_queue(self) -> None:
        """Process jobs until the queue is empty."""
        if self.processing:
            return
        self.processing = True
        try:
            if self.wait_ready is not None:
                try:
                    await self.wait_ready()
                except Exception:
                    logger.exception("Item store is not ready")
                    self._fail_pending(STORE_UNAVAILABLE_MESSAGE)
                    return
            while True:
                await self._wait_online()
                item_id = self.tracker.pop_next()
                if item_id is None:
                    break
                await self._process_item(item_id)
        finally:
            self.processing = False

    def _fail_pending(self, message: str) -> None:
        item_id = self.tracker.pop_next()
        while item_id is not None:
            self._retries.pop(item_id, None)
            self.tracker.update_row(item_id, RowStatus.FAILED, message)
            item_id = self.tracker.pop_next()

    async def _process_item(self, item_id: str) -> None:
        row = self.tracker.get_row(item_id)
        if row is None:
            return
        # results for a row that was cancelled (and maybe re-added) meanwhile are dropped
        generation = row.generation

        self.tracker.update_row(item_id, RowStatus.PROCESSING, PROCESSING_MESSAGE, generation)
        try:
            record = await self.resolver.recognize(item_id)
        except RecognitionFailure as e:
            logger.debug("Recognition of %s failed: %s", item_id, e.message)
            self._retries.pop(item_id, None)
            self.tracker.update_row(item_id, RowStatus.FAILED, e.message, generation)
            return
        except Exception:
            logger.exception("Error while recognizing %s", item_id)
            retries = self._retries.get(item_id, 0)
            if self.max_retries is None or retries < self.max_retries:
                self.tracker.update_row(item_id, RowStatus.FAILED, GENERIC_ERROR_MESSAGE, generation)
                if self.tracker.requeue(item_id, generation):
                    self._retries[item_id] = retries + 1
                else:
                    self._retries.pop(item_id, None)
            else:
                self._retries.pop(item_id, None)
                self.tracker.update_row(item_id, RowStatus.FAILED, GAVE_UP_MESSAGE, generation)
            self.consecutive_failures += 1
            delay = self.backoff_delay()
            logger.debug("Retrying in %.0fs", delay)
            await self._sleep(delay)
            return

        self.consecutive_failures = 0
        self._retries.pop(item_id, None)
        if record is None:
            self.tracker.update_row(item_id, RowStatus.FAILED, NO_MATCH_MESSAGE, generation)
        else:
            self.tracker.update_row(item_id, RowStatus.SUCCEEDED, record.title, generation)
