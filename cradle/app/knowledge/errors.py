"""Knowledge base exception types."""


class KnowledgeBaseError(Exception):
    """Base class for knowledge ingestion and retrieval failures."""

    pass


class ProviderError(KnowledgeBaseError):
    """Embedding provider call failed (network, auth, rate limit, malformed response)."""

    pass


class StorageError(KnowledgeBaseError):
    """Persistence layer failure (transaction abort, constraint violation)."""

    pass


class MalformedInputError(KnowledgeBaseError):
    """Document rejected before chunking (empty content or source)."""

    pass
