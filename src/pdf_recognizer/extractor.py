"""Text extraction from PDFs via the ``pdftotext`` tool."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager

from pdf_recognizer.errors import FileMissingError, UnreadablePDFError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 15
SCRATCH_FILE_NAME = "recognize-pdf-cache.txt"


class PdfTextExtractor:
    """Runs ``pdftotext`` on a PDF and returns its non-blank lines.

    Output goes to a single scratch file in a private directory. The file is
    removed before every run, so a crashed earlier run cannot leak stale
    output, and again once it has been read.
    """

    def __init__(self, executable: str = "pdftotext", scratch_dir: str | None = None) -> None:
        """Initialize the extractor.

        Args:
            executable: Name or path of the pdftotext binary
            scratch_dir: Directory for the scratch file. A private temporary
                directory is created on first use if not given.
        """
        self.executable = executable
        self._scratch_dir = scratch_dir

    @property
    def scratch_path(self) -> str:
        if self._scratch_dir is None:
            self._scratch_dir = tempfile.mkdtemp(prefix="pdf-recognizer-")
        return os.path.join(self._scratch_dir, SCRATCH_FILE_NAME)

    def command(self, pdf_path: str, max_pages: int, output_path: str) -> list[str]:
        return [
            self.executable,
            "-enc",
            "UTF-8",
            "-nopgbrk",
            "-layout",
            "-l",
            str(max_pages),
            pdf_path,
            output_path,
        ]

    @contextmanager
    def _scratch_file(self) -> Iterator[str]:
        path = self.scratch_path
        if os.path.exists(path):
            os.remove(path)
        try:
            yield path
        finally:
            if os.path.exists(path):
                os.remove(path)

    async def extract_lines(self, pdf_path: str, max_pages: int = DEFAULT_MAX_PAGES) -> list[str]:
        """Extract the first ``max_pages`` pages as stripped, non-blank lines.

        Raises:
            FileMissingError: If the PDF does not exist
            UnreadablePDFError: If pdftotext is unavailable, fails, or writes nothing
        """
        if not pdf_path or not os.path.isfile(pdf_path):
            raise FileMissingError()

        with self._scratch_file() as output_path:
            args = self.command(pdf_path, max_pages, output_path)
            logger.debug("Running %s", " ".join(f"'{a}'" for a in args))
            try:
                proc = await asyncio.create_subprocess_exec(
                    *args,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise UnreadablePDFError() from e

            _, stderr = await proc.communicate()
            if proc.returncode != 0:
                logger.debug("pdftotext exited with %s: %s", proc.returncode, stderr.decode(errors="replace").strip())
                raise UnreadablePDFError()
            if not os.path.exists(output_path):
                raise UnreadablePDFError()

            with open(output_path, encoding="utf-8", errors="replace") as f:
                return [line.strip() for line in f if line.strip()]

    def cleanup(self) -> None:
        """Remove a scratch directory this extractor created."""
        if self._scratch_dir and os.path.basename(self._scratch_dir).startswith("pdf-recognizer-"):
            shutil.rmtree(self._scratch_dir, ignore_errors=True)
            self._scratch_dir = None
