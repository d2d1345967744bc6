"""
api/main.py — FastAPI application entry point.

Run with:
    uvicorn api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.db.session import engine
from app.errors import (
    NoAvailableCounselors,
    NoMatchingRule,
    NotFoundError,
    PersistenceFailure,
)
from api.endpoints.assignment_routes import router as assignment_router
from api.endpoints.lead_routes import router as lead_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown logic."""
    # Verify DB is reachable on startup
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection verified.")
    yield
    logger.info("Application shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Lead Routing CRM",
    description=(
        "Captures prospective-student leads, scores their hotness and routes "
        "them to counselors through ordered assignment rules."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error translation ────────────────────────────────────────────────────────

def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, "Resource not found", str(exc))


@app.exception_handler(NoMatchingRule)
async def no_matching_rule_handler(request: Request, exc: NoMatchingRule):
    return _error(409, "No matching assignment rule", str(exc))


@app.exception_handler(NoAvailableCounselors)
async def no_counselors_handler(request: Request, exc: NoAvailableCounselors):
    return _error(409, "No available counselors", str(exc))


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error("Database operation failed on %s: %s", request.url.path, exc)
    return _error(503, "Database operation failed", exc.public_message)


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(lead_router, prefix="/leads", tags=["Leads"])
app.include_router(assignment_router, prefix="/assignment", tags=["Assignment"])


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/health", tags=["System"])
def health_check():
    """Returns service liveness status."""
    return {"status": "ok", "service": "lead-routing-crm"}


@app.get("/", tags=["System"])
def root():
    return {
        "message": "Lead Routing CRM is running.",
        "docs": "/docs",
    }
