"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - knowledge_ingest_total{outcome}
    - embedding_batches_total{outcome}, embedding_tokens_total
    - knowledge_search_total{outcome}, knowledge_search_latency_ms
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
