#!/usr/bin/env python3
"""CLI for the PDF recognizer.

Identify PDFs and create bibliographic records for them.

Usage:
    pdf-recognize paper.pdf other.pdf
    pdf-recognize --zotero ABCD1234 EFGH5678
    pdf-recognize --config recognizer.yaml --fulltext-search paper.pdf
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import yaml

from pdf_recognizer.config import RecognizerConfig, load_config
from pdf_recognizer.jobs import JobRow, RecognitionObserver, RowStatus
from pdf_recognizer.service import RecognitionService
from pdf_recognizer.store import Attachment, InMemoryItemStore, ItemStore
from pdf_recognizer.zotero import ZoteroItemStore

logger = logging.getLogger("pdf_recognizer")


def init_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


class ProgressLogger(RecognitionObserver):
    """Logs row changes as they happen."""

    def on_row_updated(self, row: JobRow) -> None:
        if row.status == RowStatus.PROCESSING:
            logger.info("Recognizing %s", row.file_name)
        elif row.status == RowStatus.SUCCEEDED:
            logger.info("  ✓ %s", row.message)
        elif row.status == RowStatus.FAILED:
            logger.info("  ✗ %s", row.message)


def local_attachments(paths: list[str]) -> list[Attachment]:
    return [
        Attachment(id=os.path.abspath(path), title=os.path.basename(path), path=os.path.abspath(path)) for path in paths
    ]


def print_summary(rows: list[JobRow], store: ItemStore | None = None) -> None:
    """Print summary of results.

    Args:
        rows: Final job rows
        store: In-memory store whose new records should be listed
    """
    succeeded = [r for r in rows if r.status == RowStatus.SUCCEEDED]
    failed = [r for r in rows if r.status == RowStatus.FAILED]

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Total processed:  {len(rows)}")
    print(f"Recognized:       {len(succeeded)}")
    print(f"Failed:           {len(failed)}")

    if succeeded:
        print("\n--- Recognized ---")
        for r in succeeded:
            print(f"  {r.file_name}")
            print(f"    Title: {r.message}")
            if isinstance(store, InMemoryItemStore):
                attachment = store.attachments.get(r.id)
                record = store.records.get(attachment.parent_id or "") if attachment else None
                if record:
                    for name in ("DOI", "ISBN", "date", "publicationTitle", "libraryCatalog"):
                        if name in record.fields:
                            print(f"    {name}: {record.fields[name]}")

    if failed:
        print("\n--- Failed ---")
        for r in failed:
            print(f"  {r.file_name}")
            print(f"    Error: {r.message}")


async def run_recognition(service: RecognitionService, items: list[Attachment] | list[str]) -> list[JobRow]:
    """Recognize ``items`` and return the final rows."""
    try:
        await service.recognize_items(items)
        return service.rows()
    finally:
        await service.close()


def build_config(args: argparse.Namespace) -> RecognizerConfig:
    config = load_config(args.config_file)
    if args.max_pages:
        config.extractor.max_pages = args.max_pages
    if args.pdftotext:
        config.extractor.executable = args.pdftotext
    if args.remote_url:
        config.remote.url = args.remote_url
    if args.mailto:
        config.search.mailto = args.mailto
    if args.fulltext_search:
        config.fulltext.enabled = True
    if args.no_connectivity_check:
        config.check_connectivity = False
    if args.max_retries is not None:
        config.max_retries = args.max_retries
    if args.library_id:
        config.library_id = args.library_id
    if args.zotero_api_key:
        config.api_key = args.zotero_api_key
    if args.library_type:
        config.library_type = args.library_type
    return config


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Identify PDFs and create bibliographic records for them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Recognize local PDF files
  pdf-recognize paper.pdf other.pdf

  # Recognize attachments in a Zotero library
  pdf-recognize --zotero ABCD1234 EFGH5678

  # Fall back to full-text phrase searches
  pdf-recognize --fulltext-search scan.pdf

Environment Variables:
  ZOTERO_LIBRARY_ID   Your Zotero user/library ID
  ZOTERO_API_KEY      Zotero API key with write permissions
""",
    )
    parser.add_argument("items", nargs="+", help="PDF files, or attachment keys with --zotero")

    recognition = parser.add_argument_group("Recognition")
    recognition.add_argument("--max-pages", type=int, help="Pages to extract per PDF (default: 15)")
    recognition.add_argument("--pdftotext", help="Path to the pdftotext executable")
    recognition.add_argument("--remote-url", help="Endpoint of a remote recognition service")
    recognition.add_argument("--mailto", help="Contact email for Crossref's polite pool")
    recognition.add_argument(
        "--fulltext-search",
        action="store_true",
        help="Try full-text phrase searches when other strategies fail",
    )
    recognition.add_argument(
        "--no-connectivity-check",
        action="store_true",
        help="Do not wait for network connectivity before each item",
    )
    recognition.add_argument(
        "--max-retries",
        type=int,
        default=5,
        help="Give up on an item after this many transient errors (default: 5)",
    )

    zotero = parser.add_argument_group("Zotero")
    zotero.add_argument("--zotero", action="store_true", help="Treat items as Zotero attachment keys")
    zotero.add_argument("--library-id", help="Zotero library ID (or set ZOTERO_LIBRARY_ID)")
    zotero.add_argument("--api-key", dest="zotero_api_key", help="Zotero API key (or set ZOTERO_API_KEY)")
    zotero.add_argument("--library-type", choices=["user", "group"], help="Library type (default: user)")

    parser.add_argument("--config", dest="config_file", help="Path to YAML config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)
    init_logging(args.verbose)

    try:
        config = build_config(args)
    except (OSError, TypeError, yaml.YAMLError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    store: ItemStore
    items: list[Attachment] | list[str]
    if args.zotero:
        if not config.library_id or not config.api_key:
            print("Error: ZOTERO_LIBRARY_ID and ZOTERO_API_KEY required", file=sys.stderr)
            print("  Set environment variables or use --library-id and --api-key", file=sys.stderr)
            return 1
        store = ZoteroItemStore(config.library_id, config.api_key, config.library_type)
        items = list(args.items)
    else:
        items = local_attachments(args.items)
        store = InMemoryItemStore(items)

    service = RecognitionService.from_config(config, store)
    service.add_observer(ProgressLogger())
    rows = asyncio.run(run_recognition(service, items))

    print_summary(rows, store)
    return 1 if any(r.status == RowStatus.FAILED for r in rows) else 0


if __name__ == "__main__":
    sys.exit(main())
