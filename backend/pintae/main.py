"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pintae.api import traceability, validation
from pintae.config import CORS_ORIGINS, RULESET_VERSION, SPEC_VERSION_LABEL
from pintae.coverage.catalog import get_default_catalog
from pintae.coverage.spec_registry import SpecRegistryError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warm the traceability catalog so the first request does not pay for it."""
    try:
        catalog = get_default_catalog()
        logger.info(f"Startup: {catalog.spec_version} catalog with {len(catalog.drs)} DRs")
    except SpecRegistryError as e:
        # Validation still works; traceability routes answer 500 until fixed
        logger.error(f"Startup: spec registry unavailable: {e}")
    yield


app = FastAPI(
    title="PINT-AE Readiness Engine",
    description="UAE e-invoicing validation and DR traceability",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(validation.router, prefix="/api/validation", tags=["Validation"])
app.include_router(traceability.router, prefix="/api/traceability", tags=["Traceability"])


@app.get("/api/health")
async def health():
    return {
        "status": "operational",
        "platform": "PINT-AE Readiness Engine",
        "spec_version": SPEC_VERSION_LABEL,
        "ruleset_version": RULESET_VERSION,
    }
