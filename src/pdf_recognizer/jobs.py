"""Recognition job queue and row state tracking.

Every queued attachment has one row describing its progress. Observers
(typically a progress display) are told about every row change.
"""

from __future__ import annotations

import copy
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger(__name__)


class RowStatus(IntEnum):
    """Job status. Everything above PROCESSING is terminal."""

    QUEUED = 1
    PROCESSING = 2
    FAILED = 3
    SUCCEEDED = 4

    @property
    def is_terminal(self) -> bool:
        return self > RowStatus.PROCESSING


@dataclass
class JobRow:
    id: str
    status: RowStatus
    file_name: str
    message: str = ""
    # distinguishes a re-added row from an earlier row with the same id
    generation: int = 0


class RecognitionObserver:
    """Receives job queue notifications. All methods are no-ops by default."""

    def on_row_added(self, row: JobRow) -> None:
        pass

    def on_row_updated(self, row: JobRow) -> None:
        pass

    def on_row_deleted(self, item_id: str) -> None:
        pass

    def on_empty(self) -> None:
        pass

    def on_non_empty(self) -> None:
        pass


class JobTracker:
    """Holds the job rows and the queue of ids waiting to be processed.

    Both the rows and the queue are ordered newest first, so the most
    recently added item is processed next and the row list matches the
    processing order.
    """

    def __init__(self) -> None:
        self._rows: list[JobRow] = []
        self._queue: deque[str] = deque()
        self._observers: list[RecognitionObserver] = []
        self._generations = itertools.count(1)

    def add_observer(self, observer: RecognitionObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: RecognitionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, method: str, *args: object) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, method)(*args)
            except Exception:
                logger.warning("Observer %r failed in %s", observer, method, exc_info=True)

    # --- Public operations ---

    def enqueue(self, item_id: str, file_name: str) -> JobRow | None:
        """Queue an attachment for recognition.

        An id whose row is still queued or processing is ignored. A finished
        row for the same id is replaced by a fresh one.

        Returns:
            The new row, or None if the id was already pending
        """
        existing = self._find(item_id)
        if existing is not None and not existing.status.is_terminal:
            return None

        was_empty = not self._rows
        if existing is not None:
            self.delete_row(item_id)
        if item_id in self._queue:
            self._queue.remove(item_id)

        row = JobRow(id=item_id, status=RowStatus.QUEUED, file_name=file_name, generation=next(self._generations))
        self._rows.insert(0, row)
        self._queue.appendleft(item_id)
        self._notify("on_row_added", copy.copy(row))
        if was_empty:
            self._notify("on_non_empty")
        return copy.copy(row)

    def cancel_all(self) -> None:
        """Drop every row and every pending job."""
        self._rows.clear()
        self._queue.clear()
        self._notify("on_empty")

    def list_rows(self) -> list[JobRow]:
        return [copy.copy(row) for row in self._rows]

    def total_count(self) -> int:
        return len(self._rows)

    def processed_count(self) -> int:
        return sum(1 for row in self._rows if row.status.is_terminal)

    # --- Worker primitives ---

    def pop_next(self) -> str | None:
        """Remove and return the id at the front of the queue."""
        return self._queue.popleft() if self._queue else None

    def requeue(self, item_id: str, generation: int | None = None) -> bool:
        """Put an id back at the end of the queue for a later retry.

        Args:
            item_id: Attachment id
            generation: Only requeue if the row is still this generation

        Returns:
            True if the id was queued
        """
        if self._find(item_id, generation) is None or item_id in self._queue:
            return False
        self._queue.append(item_id)
        return True

    def pending_ids(self) -> list[str]:
        return list(self._queue)

    def get_row(self, item_id: str) -> JobRow | None:
        row = self._find(item_id)
        return copy.copy(row) if row else None

    def update_row(self, item_id: str, status: RowStatus, message: str = "", generation: int | None = None) -> None:
        """Change a row's status and message.

        Unknown ids are ignored, and so are rows that were replaced since
        ``generation`` was read (cancelled and re-added).
        """
        row = self._find(item_id, generation)
        if row is None:
            return
        row.status = status
        row.message = message
        self._notify("on_row_updated", copy.copy(row))

    def delete_row(self, item_id: str) -> None:
        row = self._find(item_id)
        if row is None:
            return
        self._rows.remove(row)
        self._notify("on_row_deleted", item_id)

    def _find(self, item_id: str, generation: int | None = None) -> JobRow | None:
        for row in self._rows:
            if row.id == item_id:
                if generation is not None and row.generation != generation:
                    return None
                return row
        return None
