"""
FastAPI application for Agentic Wiki.

Run with: uvicorn api.app:app --reload
"""

from fastapi import FastAPI

from api.routes.v1 import router as v1_router

app = FastAPI(
    title="Agentic Wiki API",
    description="Generate beginner-friendly wiki tutorials for local codebases.",
    version="0.1.0",
)

app.include_router(v1_router)


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}
