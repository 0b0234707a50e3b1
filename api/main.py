"""
FastAPI Application Entry Point
ASO Insight Dashboard

All routes live under /api/v1. Registry and override writes invalidate the
ruleset cache shared by the audit endpoints.
"""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.routes import router
from config.settings import settings
from db.database import init_db

# ─── Logging ─────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# ─── App ─────────────────────────────────────────────────────────────────────

TAGS = [
    {"name": "System", "description": "Health and version."},
    {"name": "Audit", "description": "Metadata audit, KPI, intent coverage and combo analysis."},
    {"name": "Registry", "description": "Rule evaluators, formulas, KPIs, hooks and recommendation templates."},
    {"name": "Overrides", "description": "Scoped overrides (base / vertical / market / client) and the merged ruleset."},
    {"name": "Intent", "description": "Intent pattern registry and combo classification."},
    {"name": "Drafts", "description": "Cloud metadata drafts and local/cloud conflict resolution."},
    {"name": "Monitoring", "description": "Monitored apps, audit snapshots and competitor gap analysis."},
    {"name": "Copilot", "description": "Pass-through to the hosted AI functions."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "App Store Optimization analytics: metadata audits, KPI and intent scoring, "
        "admin-editable rule registries with scoped overrides, drafts, monitoring "
        "and competitive keyword gap analysis."
    ),
    openapi_tags=TAGS,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── CORS ────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Errors ──────────────────────────────────────────────────────────────────

@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Database unavailable."})

# ─── Startup ─────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting ASO Insight API...")
    reports = init_db(seed=settings.SEED_ON_STARTUP)
    if reports:
        logger.info(f"Seeded registries on startup: {sorted(reports)}")


# ─── Routes ──────────────────────────────────────────────────────────────────

app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["System"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "api": "/api/v1",
        "sections": [t["name"] for t in TAGS],
        "status": "running",
    }


# ─── Run ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
