"""
Bookstore · FastAPI Application Entry Point
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1 import auth, books
from app.config import get_settings
from app.core.exceptions import BookstoreError, StorageError
from app.logging_setup import configure_logging

settings = get_settings()
logger = logging.getLogger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize DB tables on startup."""
    from app.database import init_db

    configure_logging(settings.LOG_LEVEL)
    init_db()
    logger.info(
        "%s %s started (%s)",
        settings.APP_TITLE,
        settings.APP_VERSION,
        settings.ENVIRONMENT,
    )
    yield


# ─── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    description=(
        "Bookstore backend: seller/buyer accounts with JWT auth, "
        "book listings and bulk CSV import for sellers."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ─── CORS ─────────────────────────────────────────────────────────────────────

origins = settings.ALLOWED_ORIGINS if settings.is_production else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Exception handlers ───────────────────────────────────────────────────────


@app.exception_handler(BookstoreError)
async def bookstore_exception_handler(
    request: Request, exc: BookstoreError
) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status_code == 401 else None
    return JSONResponse(
        status_code=exc.http_status_code,
        content=exc.to_dict(),
        headers=headers,
    )


@app.exception_handler(SQLAlchemyError)
async def storage_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    error = StorageError(f"handling {request.method} {request.url.path}")
    return JSONResponse(status_code=error.http_status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.ENVIRONMENT == "development":
        import traceback

        return JSONResponse(
            status_code=500,
            content={
                "error_code": "INTERNAL_ERROR",
                "message": str(exc),
                "traceback": traceback.format_exc(),
            },
        )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred.",
        },
    )


# ─── Health endpoint ──────────────────────────────────────────────────────────


@app.get("/health", tags=["health"])
async def health_check() -> Dict[str, Any]:
    """Returns service health including DB connectivity."""
    db_ok = False

    try:
        from app.database import engine

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the database: %s", exc)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "db_connected": db_ok,
    }


# ─── Routers ──────────────────────────────────────────────────────────────────

API_PREFIX = "/api/v1"

app.include_router(auth.router)
app.include_router(books.router, prefix=API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
