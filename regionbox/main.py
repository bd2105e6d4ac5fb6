"""FastAPI application entry point for the annotation tool."""

import logging
import os
from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.types import ExceptionHandler

from regionbox import __version__
from regionbox.api.lifecycle import detach_workspace, open_default_workspace
from regionbox.api.routes import limiter, router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the configured dataset and auto-save it while serving."""
    app.state.workspace = None
    open_default_workspace(app)
    try:
        yield
    finally:
        detach_workspace(app)


# Create FastAPI app
app = FastAPI(
    title="Region Box Annotation Tool",
    description="Draw bounding boxes for <region> placeholders in conversational datasets",
    version=__version__,
    lifespan=lifespan,
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded, cast(ExceptionHandler, _rate_limit_exceeded_handler)
)

# Configure CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


def main() -> None:
    """Run the development server."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "regionbox.main:app",
        host=host,
        port=port,
        reload=True,
    )


if __name__ == "__main__":
    main()
