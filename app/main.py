"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes all route modules.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import close_db, init_db

logger = logging.getLogger("design_audit.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database lifecycle."""
    await init_db()

    from design_audit.config import ANTHROPIC_API_KEY, FIGMA_TOKEN
    if not FIGMA_TOKEN:
        logger.warning(
            "FIGMA_TOKEN not set: /api/analyze and /api/components/search will be unavailable. "
            "Set FIGMA_TOKEN in .env or environment to enable Figma integration."
        )
    if not ANTHROPIC_API_KEY:
        logger.warning(
            "ANTHROPIC_API_KEY not set: /api/analyze will be unavailable."
        )

    yield
    await close_db()


app = FastAPI(title="PC/SP Design Audit API", version="0.1.0", lifespan=lifespan)

# CORS configuration: configurable via CORS_ORIGINS env var (comma-separated)
_default_origins = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _default_origins).split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .routes.analysis import router as analysis_router  # noqa: E402

app.include_router(analysis_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}
