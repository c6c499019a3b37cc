"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Let detached evaluations finish before the loop closes
    from app.core.evaluation_runner import drain_background_tasks

    await drain_background_tasks()


app = FastAPI(
    title="Portfolio Knowledge Assistant",
    description="Self-improving RAG assistant answering questions about Nick Lanahan",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
