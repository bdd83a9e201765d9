"""FastAPI application - knowledge admin API."""

from fastapi import FastAPI

from cradle.app.api.routes.health import router as health_router
from cradle.app.api.routes.knowledge import router as knowledge_router
from cradle.app.api.routes.metrics import router as metrics_router

app = FastAPI(title="Cradle Knowledge API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(knowledge_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Cradle Knowledge API", "version": "0.1.0"}
