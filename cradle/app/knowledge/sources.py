"""Source discovery - collect Markdown documents from a directory tree."""

import logging
import re
from collections.abc import Sequence
from pathlib import Path

from cradle.app.knowledge.taxonomy import KeywordTaxonomy, default_taxonomy
from cradle.app.models.knowledge import SourceDocument

logger = logging.getLogger(__name__)

# Matched against the file name
DEFAULT_INCLUDE = (r"\.md$", r"README")
# Matched against the path relative to the scanned directory
DEFAULT_EXCLUDE = (r"node_modules", r"\.git", r"dist", r"build", r"CHANGELOG", r"LICENSE")

_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def extract_title(content: str, path: Path) -> str:
    """Title from the first level-1 heading, else the file name without extension."""
    match = _TITLE_RE.search(content)
    if match:
        return match.group(1).strip()
    return re.sub(r"\.(md|txt)$", "", path.name, flags=re.IGNORECASE)


def extract_tags(content: str, relative_path: str, taxonomy: KeywordTaxonomy) -> list[str]:
    """Path-hinted tags first, then content keyword tags, without duplicates."""
    tags = taxonomy.tags_for_path(relative_path)
    tags.extend(tag for tag in taxonomy.tags_for(content) if tag not in tags)
    return tags


def discover_sources(
    base_dir: str | Path,
    *,
    include: Sequence[str] = DEFAULT_INCLUDE,
    exclude: Sequence[str] = DEFAULT_EXCLUDE,
    min_chars: int = 100,
    taxonomy: KeywordTaxonomy | None = None,
) -> list[SourceDocument]:
    """Walk base_dir and return ingestible documents, sorted by relative path.

    Args:
        base_dir: Directory to scan recursively
        include: Case-insensitive regexes; a file is kept if its name matches any
        exclude: Case-insensitive regexes; a path is skipped if any matches
        min_chars: Files with fewer characters are skipped
        taxonomy: Keyword tables for tags (packaged default when omitted)

    Returns:
        SourceDocument list with source = path relative to base_dir
    """
    root = Path(base_dir)
    if not root.is_dir():
        logger.warning(f"Directory not found: {root}")
        return []

    keywords = taxonomy or default_taxonomy()
    include_res = [re.compile(pattern, re.IGNORECASE) for pattern in include]
    exclude_res = [re.compile(pattern, re.IGNORECASE) for pattern in exclude]

    documents: list[SourceDocument] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue

        relative_path = path.relative_to(root).as_posix()
        if any(pattern.search(relative_path) for pattern in exclude_res):
            continue
        if not any(pattern.search(path.name) for pattern in include_res):
            continue

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading file: {path}: {e}")
            continue

        if len(content) < min_chars:
            logger.debug(f"Skipping short file: {relative_path} ({len(content)} chars)")
            continue

        documents.append(
            SourceDocument(
                source=relative_path,
                title=extract_title(content, path),
                content=content,
                tags=extract_tags(content, relative_path, keywords),
                metadata={"original_path": str(path)},
            )
        )

    return documents
