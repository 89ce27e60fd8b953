"""
GatePilot API

Partner onboarding gate progression service.

Endpoints:
    POST /partners                                  - Create a partner
    GET  /partners                                  - Partners visible to the caller
    GET  /partners/{id}/gates                       - Gate overview
    POST /partners/{id}/gates/{gate}/complete       - Signed gate approval
    GET  /partners/workload/{email}                 - PDM utilization
    POST /partners/{id}/gates/{gate}/block|unblock  - Manual block
    POST /submissions                               - Score a questionnaire
    POST /submissions/{id}/reviews                  - Manual section verdict
    GET  /submissions/{id}/render                   - Submission + pinned schema
    GET  /templates, PUT /templates/{id}            - Versioned questionnaires
    GET  /health                                    - Liveness probe
"""

import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import dependencies
from api.routes import partners, submissions, templates
from gatepilot import __version__
from gatepilot.exceptions import (
    AccessDeniedError,
    GatePilotError,
    NotFoundError,
    PackLoadError,
    StaleWriteError,
    StoreError,
    ValidationFailedError,
)
from gatepilot.models import GateConfig, default_gate_config
from gatepilot.packs import PackLoader
from gatepilot.service import GateService
from gatepilot.store import (
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    PartnerRepository,
    RetryingStore,
    SubmissionRepository,
    TemplateVersionStore,
)

# =============================================================================
# Configuration
# =============================================================================

GP_LOG_LEVEL = os.getenv("GP_LOG_LEVEL", "INFO")
GP_DATA_DIR = os.getenv("GP_DATA_DIR")  # in-memory store when unset
GP_PACKS_DIR = os.getenv("GP_PACKS_DIR", str(Path(__file__).parent.parent / "packs"))
GP_STRICT_SCHEMA_HISTORY = os.getenv("GP_STRICT_SCHEMA_HISTORY", "false").lower() == "true"
GP_STORE_MAX_RETRIES = int(os.getenv("GP_STORE_MAX_RETRIES", "3"))
GP_STORE_RETRY_DELAY = float(os.getenv("GP_STORE_RETRY_DELAY", "1.0"))
GP_DOCS_ENABLED = os.getenv("GP_DOCS_ENABLED", "true").lower() == "true"


# =============================================================================
# Logging Setup (Structured JSON)
# =============================================================================

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "partner_id"):
            log_entry["partner_id"] = record.partner_id
        if hasattr(record, "error_code"):
            log_entry["error_code"] = record.error_code
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


logger = logging.getLogger("gatepilot")
logger.setLevel(getattr(logging, GP_LOG_LEVEL.upper(), logging.INFO))
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)


# =============================================================================
# Service Wiring
# =============================================================================

def build_store(data_dir: Optional[str] = GP_DATA_DIR) -> KeyValueStore:
    inner = JsonFileStore(data_dir) if data_dir else InMemoryStore()
    return RetryingStore(inner, max_retries=GP_STORE_MAX_RETRIES, delay_seconds=GP_STORE_RETRY_DELAY)


def build_service(
    store: KeyValueStore,
    packs_dir: Optional[str] = GP_PACKS_DIR,
    strict_history: bool = GP_STRICT_SCHEMA_HISTORY,
) -> GateService:
    """
    Build the service and seed templates from the shipped packs.

    Questionnaires already stored keep their current version; only missing
    templates are seeded.
    """
    config: GateConfig = default_gate_config()
    schemas = {}
    if packs_dir and Path(packs_dir).is_dir():
        config, schemas = PackLoader().load_directory(packs_dir)
    else:
        logger.warning("Packs directory %s not found; starting without seeded templates", packs_dir)

    service = GateService(
        PartnerRepository(store),
        SubmissionRepository(store),
        TemplateVersionStore(store, strict_history=strict_history),
        config=config,
    )
    seeded = service.seed_templates(schemas.values())
    logger.info("Gate configuration: %d gates, %d templates available", len(config.gates), len(seeded))
    return service


# =============================================================================
# Error Mapping
# =============================================================================

def status_for(error: GatePilotError) -> int:
    if isinstance(error, ValidationFailedError):
        return 422
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AccessDeniedError):
        return 403
    if isinstance(error, StaleWriteError):
        return 409
    if isinstance(error, StoreError):
        return 503
    return 500


async def gatepilot_error_handler(request: Request, exc: GatePilotError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc,
                     extra={"error_code": exc.code, "partner_id": exc.partner_id})
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


# =============================================================================
# Application
# =============================================================================

def create_app(
    store: Optional[KeyValueStore] = None,
    packs_dir: Optional[str] = GP_PACKS_DIR,
    strict_history: bool = GP_STRICT_SCHEMA_HISTORY,
) -> FastAPI:
    """Create the API with its own service instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("GatePilot API %s started", __version__)
        yield
        logger.info("Shutting down...")

    app = FastAPI(
        title="GatePilot API",
        description="""
**Partner onboarding gate progression.**

Partners move through an ordered sequence of gates. Each gate requires
questionnaires whose sections are scored pass/fail/pending; a gate is
completed by a signed approval once it has passed.

## Quick Start

1. `POST /partners` - Create a partner (headers `X-User-Email`, `X-User-Role`)
2. `POST /submissions` - Submit the pre-contract questionnaire
3. `GET /partners/{id}/gates` - Review gate status and blockers
4. `POST /partners/{id}/gates/{gate}/complete` - Approve a passed gate
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if GP_DOCS_ENABLED else None,
        redoc_url="/redoc" if GP_DOCS_ENABLED else None,
    )

    try:
        service = build_service(store if store is not None else build_store(), packs_dir, strict_history)
    except PackLoadError as e:
        logger.error("Failed to load packs: %s", e)
        raise
    dependencies.set_service(service)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GatePilotError, gatepilot_error_handler)

    app.include_router(partners.router)
    app.include_router(submissions.router)
    app.include_router(templates.router)

    @app.get("/health", tags=["Health"])
    async def health():
        """Health check endpoint."""
        return {
            "healthy": True,
            "version": __version__,
            "templates_loaded": len(service.templates.list_templates()),
            "gates": [g.id.value for g in service.config.gates],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
