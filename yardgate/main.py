# yardgate/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, the ingestion and
health routers, and starts the periodic scan processor on startup.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from yardgate.routers import health, rfid
from yardgate.database import create_tables
from yardgate.config import settings
from yardgate.utils.logger import get_logger
import time
import asyncio

logger = get_logger(__name__)

app = FastAPI(
    title="Yard Gate RFID Reconciliation API",
    description="RFID gate scan ingestion and the scan reconciliation engine.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional API key auth. Health and docs stay open; readers must send
    X-API-Key on ingestion once API_KEY is set in .env.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(rfid.router,   prefix="/api/v1", tags=["📡 RFID Ingestion"])
app.include_router(health.router, prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
_processor_task = None


@app.on_event("startup")
async def startup():
    global _processor_task
    logger.info("🚀 Yard Gate backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")

    if settings.SCAN_PROCESSOR_ENABLED:
        from yardgate.services.scan_processor import start_scan_processing
        _processor_task = asyncio.create_task(start_scan_processing(), name="scan-processor")
    else:
        logger.info("Scan processor disabled (SCAN_PROCESSOR_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Yard Gate backend shutting down...")
    if _processor_task is not None:
        _processor_task.cancel()
