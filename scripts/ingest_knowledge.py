"""Ingest Markdown knowledge documents from one or more directories.

Usage:
    python scripts/ingest_knowledge.py docs/ knowledge/

Unchanged documents are skipped by content hash, so the run can be repeated
after a failure without re-embedding what is already stored.
"""

import argparse
import asyncio
import logging
import sys

from cradle.app.config import get_settings
from cradle.app.knowledge.service import build_knowledge_base
from cradle.app.knowledge.sources import discover_sources
from cradle.app.knowledge.taxonomy import default_taxonomy, load_taxonomy
from cradle.app.models.knowledge import SourceDocument
from cradle.app.utils.logging import configure_logging

logger = logging.getLogger("cradle.scripts.ingest_knowledge")


async def run(directories: list[str], min_chars: int) -> int:
    """Discover and ingest documents; return the process exit code."""
    settings = get_settings()
    taxonomy = (
        load_taxonomy(settings.knowledge_taxonomy_path)
        if settings.knowledge_taxonomy_path
        else default_taxonomy()
    )

    documents: list[SourceDocument] = []
    for directory in directories:
        logger.info(f"Scanning: {directory}")
        documents.extend(discover_sources(directory, min_chars=min_chars, taxonomy=taxonomy))

    logger.info(f"Found {len(documents)} documents to process")
    if not documents:
        logger.warning("No documents found. Add .md files to the scanned directories.")
        return 0

    kb = build_knowledge_base(settings)
    report = await kb.ingest_many(documents)

    logger.info(
        f"Ingestion complete: {report.created} created, {report.updated} updated, "
        f"{report.unchanged} unchanged, {len(report.failed)} failed"
    )
    for failure in report.failed:
        logger.error(f"Failed: {failure.source} - {failure.error}")

    stats = await kb.stats()
    logger.info(f"Knowledge base: {stats.documents} documents, {stats.chunks} chunks")

    return 1 if report.failed else 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Ingest Markdown documents into the knowledge base")
    parser.add_argument("directories", nargs="+", help="Directories to scan recursively")
    parser.add_argument(
        "--min-chars",
        type=int,
        default=100,
        help="Skip files shorter than this many characters (default: 100)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    return asyncio.run(run(args.directories, args.min_chars))


if __name__ == "__main__":
    sys.exit(main())
