"""
pullquest.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn pullquest.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

load_dotenv()

from pullquest.api.deps import get_config, get_engine  # noqa: E402
from pullquest.api.rate_limit import configure_rate_limiters  # noqa: E402
from pullquest.api.routes.account import router as account_router  # noqa: E402
from pullquest.api.routes.contributor import router as contributor_router  # noqa: E402
from pullquest.api.routes.issues import router as issues_router  # noqa: E402
from pullquest.api.routes.stakes import router as stakes_router  # noqa: E402
from pullquest.api.routes.webhooks import router as webhooks_router  # noqa: E402
from pullquest.errors import PullQuestError, UpstreamUnavailableError  # noqa: E402
from pullquest.scheduler import RefillScheduler  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Comma-separated CORS_ALLOW_ORIGINS, else FRONTEND_URL, else none."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine, start the refill loop."""
    engine = get_engine()
    configure_rate_limiters(engine=engine)

    scheduler = RefillScheduler(engine, get_config())
    scheduler.start()
    app.state.refill_scheduler = scheduler

    logger.info("PullQuest API started — engine ready (%s)", engine.url.database)
    yield
    await scheduler.stop()
    logger.info("PullQuest API shutting down")


app = FastAPI(
    title="PullQuest API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
@app.exception_handler(PullQuestError)
async def pullquest_error_handler(request: Request, exc: PullQuestError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    logger.error("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
    err = UpstreamUnavailableError("Database unavailable", code="database_unavailable")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in e["loc"]), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation",
            "code": "invalid_request",
            "message": "Request validation failed",
            "details": {"errors": errors},
        },
    )


# Mount routers
app.include_router(account_router, prefix="/api")
app.include_router(stakes_router, prefix="/api")
app.include_router(contributor_router, prefix="/api")
app.include_router(issues_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
