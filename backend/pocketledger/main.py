from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
import logging
import os

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from pocketledger.config import env_bool
from pocketledger.database import engine, Base
from pocketledger.db_helpers import (
    authenticate_request,
    clear_request_user_id,
    set_request_user_id,
)
from pocketledger.exceptions import LedgerError
from pocketledger.routes import api_router

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw:
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        if origins:
            return origins
    return ["http://localhost:3000"]


# Guarded dev helper; prefer running migrations
if env_bool("AUTO_CREATE_TABLES", default=False):
    logger.warning("AUTO_CREATE_TABLES is enabled; creating tables via SQLAlchemy metadata.")
    Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="PocketLedger API",
    description="Offline-first sync API for PocketLedger (personal finance tracking)",
    version="0.1.0",
    docs_url="/docs" if env_bool("API_DOCS_ENABLED", default=False) else None,
    redoc_url="/redoc" if env_bool("API_DOCS_ENABLED", default=False) else None,
    openapi_url="/openapi.json" if env_bool("API_DOCS_ENABLED", default=False) else None,
)


UNPROTECTED_API_PATHS = {"/api/health"}


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    path = request.url.path
    if (
        request.method == "OPTIONS"
        or not path.startswith("/api/")
        or path in UNPROTECTED_API_PATHS
    ):
        return await call_next(request)

    path_with_query = path
    if request.url.query:
        path_with_query = f"{path_with_query}?{request.url.query}"

    try:
        # API keys hit the database and bcrypt; keep them off the event loop.
        request_user_id = await run_in_threadpool(
            authenticate_request,
            method=request.method,
            path_with_query=path_with_query,
            headers=request.headers,
        )
    except Exception as exc:
        if hasattr(exc, "status_code") and hasattr(exc, "detail"):
            return JSONResponse(
                status_code=getattr(exc, "status_code"),
                content={"detail": getattr(exc, "detail")},
            )
        logger.exception("Unexpected authentication error")
        return JSONResponse(
            status_code=500,
            content={"detail": "Authentication failure."},
        )

    token = set_request_user_id(request_user_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_user_id(token)

    return response


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error(f"Ledger error on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
    )


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/")
def root():
    payload = {"message": "PocketLedger API"}
    if env_bool("API_DOCS_ENABLED", default=False):
        payload["docs"] = "/docs"
    return payload


@app.get("/api/health")
def health():
    return {"status": "healthy"}
