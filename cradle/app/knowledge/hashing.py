"""Content fingerprinting for change detection."""

import hashlib


def content_hash(content: str) -> str:
    """Return the SHA-256 hex digest of the exact UTF-8 bytes of content.

    No normalization is applied: any byte-level change produces a new digest
    and therefore a re-index of the document.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
