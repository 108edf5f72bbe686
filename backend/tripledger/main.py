"""
FastAPI entrypoint for the TripLedger backend application.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tripledger.core.config import settings
from tripledger.core.exceptions import LedgerError, InternalInconsistency
from tripledger.core.utils import format_error
from tripledger.api.router import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Shared-expense ledger and settlement API for group trips",
    version="1.0.0",
    debug=settings.DEBUG
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Render ledger errors as JSON with their status code."""
    if isinstance(exc, InternalInconsistency):
        logger.critical(f"Internal inconsistency on {request.method} {request.url.path}: {exc.message}")
        body = format_error("Internal ledger inconsistency")
    else:
        body = format_error(exc.message, exc.details)
    body["code"] = exc.code
    return JSONResponse(status_code=exc.status_code, content=body)


if settings.INIT_DB_ON_STARTUP:
    from tripledger.db.session import init_db
    init_db()

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"message": f"{settings.APP_NAME} API is running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
