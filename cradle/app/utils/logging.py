"""Structured logging helpers for the knowledge pipeline."""

import logging
from typing import Any

logger = logging.getLogger("cradle.knowledge")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


class StructuredKnowledgeLogger:
    """Structured logger for ingestion and search events."""

    def log_ingest(
        self,
        source: str,
        outcome: str,
        *,
        document_id: str | None = None,
        chunk_count: int | None = None,
        latency_ms: float | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log one document ingestion outcome."""
        log_data: dict[str, Any] = {
            "source": source,
            "outcome": outcome,
        }

        if document_id:
            log_data["document_id"] = document_id
        if chunk_count is not None:
            log_data["chunk_count"] = chunk_count
        if latency_ms is not None:
            log_data["latency_ms"] = round(latency_ms, 2)
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Document ingestion: {source} - {outcome}"

        if outcome == "failed":
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.info(log_msg, extra={"structured": log_data})

    def log_search(
        self,
        outcome: str,
        *,
        result_count: int,
        top_k: int,
        latency_ms: float,
        tag_filter: list[str] | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log one knowledge search."""
        log_data: dict[str, Any] = {
            "outcome": outcome,
            "result_count": result_count,
            "top_k": top_k,
            "latency_ms": round(latency_ms, 2),
        }

        if tag_filter:
            log_data["tag_filter"] = tag_filter
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Knowledge search - {outcome} ({result_count} results)"

        if outcome == "ok":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})


structured_logger = StructuredKnowledgeLogger()
