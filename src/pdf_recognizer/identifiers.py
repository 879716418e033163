"""Identifier extraction from PDF text.

Finds DOIs and ISBNs in extracted text, and builds full-text phrase queries
from body-text lines for documents that carry no identifier at all.
"""

from __future__ import annotations

import logging
import re

from pdf_recognizer.errors import NoUsableTextError
from pdf_recognizer.utils import clean_doi, clean_isbn

logger = logging.getLogger(__name__)

# Only the first lines are searched for a DOI, so references in the
# bibliography are not mistaken for the document's own DOI
DOI_SEARCH_LINES = 80

JSTOR_STABLE_RE = re.compile(r"www.jstor\.org/stable/(\S+)", re.IGNORECASE)
JSTOR_DOI_PREFIX = "10.2307/"

# 'isbn: ', 'ISBN-10:', 'ISBN 13 ' and similar, including figure, en and em dashes
_DASHES = " —–‒-"
ISBN_RE = re.compile(rf"(SBN|sbn)[{_DASHES}]?(10|13)?[: ]*([0-9X][0-9X{_DASHES}]+)")
_ISBN_SEPARATORS_RE = re.compile(rf"[{_DASHES}]")

# Full-text query selection
_LINE_RE = re.compile(r"^[\s_]*([^\s]+(?: [^\s_]+)+)")
_GOOGLE_BOOKS_BOILERPLATE = (
    "This is a digital copy of a book that was preserved for generations on library shelves "
    "before it was carefully scanned by Google as part of a project"
)
MIN_GOOD_LINES = 20
MAX_CANDIDATE_LINES = 100
QUERY_WORDS = 25
LINE_STRIDE = 7
MAX_WORD_LENGTH = 20


def find_doi(lines: list[str], max_lines: int = DOI_SEARCH_LINES) -> str | None:
    """Find the document's DOI in the first ``max_lines`` lines.

    Falls back to a JSTOR stable URL, which maps onto the 10.2307 prefix.

    Args:
        lines: Extracted text lines
        max_lines: Number of leading lines to search

    Returns:
        The DOI, or None
    """
    first_chunk = "\n".join(lines[:max_lines])
    doi = clean_doi(first_chunk)
    if doi:
        return doi

    m = JSTOR_STABLE_RE.search(first_chunk)
    if m:
        segment = m.group(1)
        return clean_doi(segment if segment.startswith("10.") else JSTOR_DOI_PREFIX + segment)
    return None


def find_isbns(text: str) -> list[str]:
    """Find checksum-valid ISBNs in ``text``, in order of appearance.

    Runs of 20 or 26 characters are two same-length ISBNs printed side by side
    (e.g. hardcover and paperback); a run of 23 is an ISBN-10 followed by its
    ISBN-13.
    """
    if not isinstance(text, str):
        raise TypeError("find_isbns: argument must be a string")

    candidates: list[str] = []
    for m in ISBN_RE.finditer(text):
        isbn = _ISBN_SEPARATORS_RE.sub("", m.group(3))
        if len(isbn) in (20, 26):
            half = len(isbn) // 2
            candidates.extend((isbn[:half], isbn[half:]))
        elif len(isbn) == 23:
            candidates.extend((isbn[:10], isbn[10:]))
        elif len(isbn) in (10, 13):
            candidates.append(isbn)

    valid = []
    for candidate in candidates:
        cleaned = clean_isbn(candidate)
        if cleaned:
            valid.append(cleaned)
    return valid


def select_good_lines(lines: list[str]) -> list[str]:
    """Select body-text lines suitable for phrase queries.

    Only the first column of multi-column lines is used. Lines whose length
    is within 6 characters of the (approximate) median are kept.

    Raises:
        NoUsableTextError: If the text has too few body lines, or is a
            Google Books scan without real OCR text
    """
    cleaned_lines: list[str] = []
    for line in lines:
        if len(cleaned_lines) >= MAX_CANDIDATE_LINES:
            break
        m = _LINE_RE.match(line.replace("\xa0", " "))
        if m and len(m.group(1).split(" ")) > 3:
            cleaned_lines.append(m.group(1))

    if len(cleaned_lines) < MIN_GOOD_LINES or cleaned_lines[0] == _GOOGLE_BOOKS_BOILERPLATE:
        raise NoUsableTextError()

    lengths = sorted(len(line) for line in cleaned_lines)
    median = lengths[len(lengths) // 2]
    lower, upper = median - 6, median + 6

    # Quotation marks would break the phrase quoting
    return [line.replace('"', "") for line in cleaned_lines if lower < len(line) < upper]


def build_fulltext_queries(lines: list[str], count: int = 3) -> list[str]:
    """Build up to ``count`` phrase queries of roughly 25 words each.

    Lines are picked with a stride of 7 so that a query does not reproduce a
    contiguous passage that other documents might quote. The first and last
    word of every line are dropped, and lines with overlong words (likely OCR
    garbage) are skipped.

    Raises:
        NoUsableTextError: If there is not enough body text
    """
    good_lines = select_good_lines(lines)
    queries: list[str] = []
    for _ in range(count):
        parts: list[str] = []
        words_used = 0
        next_line = 0
        while words_used < QUERY_WORDS:
            if not good_lines:
                if parts:
                    break
                return queries
            words = good_lines.pop(next_line).split()
            if good_lines:
                next_line = (next_line + LINE_STRIDE) % len(good_lines)
            words = words[1:-1]
            if words and all(len(w) <= MAX_WORD_LENGTH for w in words):
                words_used += len(words)
                parts.append('"' + " ".join(words) + '"')
        queries.append(" ".join(parts))
    logger.debug("Built %d full-text queries", len(queries))
    return queries
