"""Keyword taxonomy for chunk tagging and topic inference.

The tables live in YAML so the vocabulary can be changed per deployment
without touching the chunker. Classification is plain keyword membership:
a keyword matches when it occurs (case-insensitively) anywhere in the text.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_TAXONOMY_PATH = Path(__file__).with_name("taxonomy.yaml")


class KeywordTaxonomy(BaseModel):
    """Ordered tag and topic keyword tables."""

    default_topic: str = "General"
    tags: dict[str, list[str]] = Field(default_factory=dict)
    topics: dict[str, list[str]] = Field(default_factory=dict)
    path_hints: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("tags", "topics", "path_hints")
    @classmethod
    def _lowercase_keywords(cls, table: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            label: [keyword.lower() for keyword in keywords if keyword and keyword.strip()]
            for label, keywords in table.items()
        }

    def tags_for(self, text: str) -> list[str]:
        """Return every tag with at least one keyword present in text, in table order."""
        lowered = text.lower()
        return [
            tag
            for tag, keywords in self.tags.items()
            if any(keyword in lowered for keyword in keywords)
        ]

    def topic_for(self, text: str) -> str:
        """Return the first topic whose keywords match text, else the default label."""
        lowered = text.lower()
        for topic, keywords in self.topics.items():
            if any(keyword in lowered for keyword in keywords):
                return topic
        return self.default_topic

    def tags_for_path(self, path: str) -> list[str]:
        """Return tags hinted by fragments of a file path."""
        lowered = path.lower()
        return [
            tag
            for tag, fragments in self.path_hints.items()
            if any(fragment in lowered for fragment in fragments)
        ]


def load_taxonomy(path: str | Path | None = None) -> KeywordTaxonomy:
    """Load a taxonomy from YAML.

    Args:
        path: YAML file to read; the packaged default is used when omitted

    Returns:
        Parsed KeywordTaxonomy
    """
    taxonomy_path = Path(path) if path else DEFAULT_TAXONOMY_PATH
    with open(taxonomy_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return KeywordTaxonomy.model_validate(data)


@lru_cache
def default_taxonomy() -> KeywordTaxonomy:
    """Get the packaged taxonomy, parsed once per process."""
    return load_taxonomy()
