"""Failure taxonomy for PDF recognition.

Two families of errors exist:

- ``RecognitionFailure``: problems intrinsic to the input (missing file, item
  already filed under a parent, unreadable PDF, no usable text, search limit
  reached). Retrying cannot fix them, so the job fails with the message.
- ``RecoverableError``: transient infrastructure problems (network, remote
  service, store). The queue processor re-queues the job with backoff.
"""

from __future__ import annotations


class RecognitionFailure(Exception):
    """Domain failure. Not retried; ``message`` is shown on the job row."""

    default_message = "Recognition failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class FileMissingError(RecognitionFailure):
    default_message = "File not found"


class HasParentError(RecognitionFailure):
    default_message = "Item already has a parent item"


class UnreadablePDFError(RecognitionFailure):
    default_message = "Could not read PDF"


class NoUsableTextError(RecognitionFailure):
    default_message = "PDF does not contain usable text (OCR required?)"


class RateLimitedError(RecognitionFailure):
    default_message = "Search limit reached, try again later"


class RecoverableError(Exception):
    """Transient failure eligible for backoff-and-retry."""


class RemoteServiceError(RecoverableError):
    """The remote recognition service answered with a non-200 status."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Recognition service returned {status_code} for {url}")


class ServiceUnavailableError(RecoverableError):
    """An HTTP service stayed unreachable after all retries."""


class StoreError(RecoverableError):
    """The item store rejected an operation."""
