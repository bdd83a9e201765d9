"""Prometheus metrics for knowledge ingestion and retrieval."""

from prometheus_client import Counter, Histogram

knowledge_ingest_total = Counter(
    "knowledge_ingest_total",
    "Total document ingestions by outcome",
    ["outcome"],
)

embedding_batches_total = Counter(
    "embedding_batches_total",
    "Total embedding provider batch calls by outcome",
    ["outcome"],
)

embedding_tokens_total = Counter(
    "embedding_tokens_total",
    "Total tokens reported by the embedding provider",
)

knowledge_search_total = Counter(
    "knowledge_search_total",
    "Total knowledge searches by outcome",
    ["outcome"],
)

knowledge_search_latency_ms = Histogram(
    "knowledge_search_latency_ms",
    "Knowledge search latency in milliseconds (query embedding + vector search)",
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)


class PrometheusKnowledgeMetrics:
    """Prometheus-based knowledge metrics implementation."""

    def inc_ingest(self, outcome: str) -> None:
        """Count one document ingestion (created, updated, unchanged, failed)."""
        knowledge_ingest_total.labels(outcome=outcome).inc()

    def inc_embedding_batch(self, outcome: str, total_tokens: int = 0) -> None:
        """Count one provider batch call and its token usage."""
        embedding_batches_total.labels(outcome=outcome).inc()
        if total_tokens > 0:
            embedding_tokens_total.inc(total_tokens)

    def record_search(self, outcome: str, latency_ms: float) -> None:
        """Record search latency and outcome."""
        knowledge_search_total.labels(outcome=outcome).inc()
        knowledge_search_latency_ms.observe(latency_ms)


metrics = PrometheusKnowledgeMetrics()
