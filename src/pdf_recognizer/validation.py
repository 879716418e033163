"""Title validation against the extracted full text.

A candidate returned by a search can be structurally plausible yet belong to
a different document, which is common with noisy OCR text or generic titles.
A candidate is accepted only if its title occurs in the document's text at
the start of a line.
"""

from __future__ import annotations

import html
import logging
import unicodedata
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Subtitles after a late colon are often formatted differently in the PDF
SUBTITLE_COLON_MIN_INDEX = 30


@dataclass
class ProcessedText:
    """Letters-only text plus, for every letter, whether it begins a line."""

    text: str
    line_starts: list[bool]


def _letters_and_newlines(text: str) -> str:
    return "".join(c for c in text if c == "\n" or c.isalpha())


def process_text(text: str) -> ProcessedText:
    """Reduce ``text`` to lowercase letters and record line starts.

    Non-letter characters are removed before and after Unicode
    decomposition, so accents split off by NFKD are dropped too. Newlines
    are removed from the result but remembered in ``line_starts``.
    """
    text = _letters_and_newlines(text)
    text = unicodedata.normalize("NFKD", text)
    text = _letters_and_newlines(text)
    text = text.lower()

    line_starts: list[bool] = []
    prev_is_newline = False
    letters: list[str] = []
    for c in text:
        if c == "\n":
            prev_is_newline = True
        else:
            line_starts.append(prev_is_newline)
            letters.append(c)
            prev_is_newline = False

    return ProcessedText(text="".join(letters), line_starts=line_starts)


def prepare_title(title: str) -> str:
    """Unescape HTML entities and drop a subtitle after a late colon."""
    title = html.unescape(title or "")
    colon = title.find(":")
    if colon >= SUBTITLE_COLON_MIN_INDEX:
        title = title[:colon]
    return title


def validate_title(fulltext: str, title: str | None) -> bool:
    """Check that ``title`` occurs in ``fulltext`` at the start of a line.

    Args:
        fulltext: Text extracted from the PDF
        title: Candidate title

    Returns:
        True if some occurrence of the normalized title starts the text or a line
    """
    if not title:
        return False
    processed_title = process_text(prepare_title(title)).text
    if not processed_title:
        logger.debug("Title has no letters: %r", title)
        return False

    processed = process_text(fulltext or "")
    index = processed.text.find(processed_title)
    while index >= 0:
        if index == 0 or processed.line_starts[index]:
            return True
        index = processed.text.find(processed_title, index + 1)

    logger.debug("Title is invalid: %s", title)
    return False
