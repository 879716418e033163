"""Configuration dataclasses for the PDF recognizer."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any

import yaml

from pdf_recognizer.extractor import DEFAULT_MAX_PAGES


@dataclass
class ExtractorConfig:
    """Configuration for text extraction.

    Attributes:
        executable: Name or path of the pdftotext binary
        max_pages: Number of pages to extract
        scratch_dir: Directory for the scratch output file (private temp dir if None)
    """

    executable: str = "pdftotext"
    max_pages: int = DEFAULT_MAX_PAGES
    scratch_dir: str | None = None


@dataclass
class RemoteServiceConfig:
    """Configuration for the remote recognition service.

    Attributes:
        url: Endpoint accepting ``{hash, text}`` POST requests. The strategy
            is skipped when empty.
        min_interval: Minimum seconds between two requests
    """

    url: str | None = None
    min_interval: float = 0.0


@dataclass
class SearchConfig:
    """Configuration for structured search and HTTP access.

    Attributes:
        mailto: Contact address sent to Crossref
        rows: Results per bibliographic query
        timeout: HTTP timeout in seconds
        max_attempts: Attempts per HTTP request
        rate_limits: Requests per minute, per service name (0 lifts the quota)
    """

    mailto: str | None = None
    rows: int = 10
    timeout: float = 20.0
    max_attempts: int = 3
    rate_limits: dict[str, int] = field(default_factory=dict)


@dataclass
class FulltextSearchConfig:
    """Configuration for the full-text phrase search fallback.

    Attributes:
        enabled: Whether to try phrase queries when other strategies fail
        min_interval: Minimum seconds between two phrase queries
        queries: Number of phrase queries to try per document
    """

    enabled: bool = False
    min_interval: float = 30.0
    queries: int = 3


@dataclass
class RecognizerConfig:
    """Top-level recognizer configuration.

    Attributes:
        extractor: Text extraction settings
        remote: Remote recognition service settings
        search: Structured search settings
        fulltext: Full-text phrase search settings
        offline_recheck_interval: Seconds between connectivity checks while offline
        backoff_step: Added delay per consecutive recoverable error
        backoff_cap: Maximum delay after recoverable errors
        max_retries: Retries per item after recoverable errors (unlimited if None)
        check_connectivity: Whether to probe the network before each job
        library_id: Zotero library ID
        api_key: Zotero API key
        library_type: "user" or "group"
    """

    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    remote: RemoteServiceConfig = field(default_factory=RemoteServiceConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    fulltext: FulltextSearchConfig = field(default_factory=FulltextSearchConfig)
    offline_recheck_interval: float = 5.0
    backoff_step: float = 1.0
    backoff_cap: float = 60.0
    max_retries: int | None = None
    check_connectivity: bool = True
    library_id: str = ""
    api_key: str = ""
    library_type: str = "user"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecognizerConfig:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        data = dict(data)
        return cls(
            extractor=ExtractorConfig(**(data.pop("extractor", None) or {})),
            remote=RemoteServiceConfig(**(data.pop("remote", None) or {})),
            search=SearchConfig(**(data.pop("search", None) or {})),
            fulltext=FulltextSearchConfig(**(data.pop("fulltext", None) or {})),
            **data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary for serialization. The API key is left out."""
        data = asdict(self)
        data.pop("api_key")
        return data


def load_config(path: str | None = None) -> RecognizerConfig:
    """Load configuration from a YAML file, then fill Zotero credentials from the environment.

    Args:
        path: Path to a YAML config file. Defaults are used if None.

    Returns:
        RecognizerConfig
    """
    data: dict[str, Any] = {}
    if path:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    config = RecognizerConfig.from_dict(data)
    config.library_id = config.library_id or os.environ.get("ZOTERO_LIBRARY_ID", "")
    config.api_key = config.api_key or os.environ.get("ZOTERO_API_KEY", "")
    return config
