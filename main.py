"""
POSTURE MUSE Backend API
Real-time pose challenge scoring

FastAPI application entry point. Scores client-detected joint angles against
reference poses and runs multi-level hold challenges.
"""

import logging
import sys
import time
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Service routers
from challenge_service.router import router as challenge_router, get_services

# Core utilities
from core.config import settings
from shared.utils import setup_logger

# Setup logging
logger = setup_logger("posture_muse.main", level=logging.DEBUG)
request_logger = setup_logger("posture_muse.requests", level=logging.DEBUG)


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        query_string = f"?{request.url.query}" if request.url.query else ""

        request_logger.info(f"➡️  {request.method} {request.url.path}{query_string}")
        request_logger.debug(f"    Client: {client_ip}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            if response.status_code < 300:
                status_emoji = "✅"
            elif response.status_code < 400:
                status_emoji = "↪️"
            elif response.status_code < 500:
                status_emoji = "⚠️"
            else:
                status_emoji = "❌"

            request_logger.info(
                f"{status_emoji} {request.method} {request.url.path} → {response.status_code} ({process_time:.1f}ms)"
            )

            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.error(f"💥 {request.method} {request.url.path} → ERROR: {type(e).__name__}: {str(e)} ({process_time:.1f}ms)")
            request_logger.error(traceback.format_exc())
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # ===== STARTUP =====
    logger.info("🚀 POSTURE MUSE API starting up...")

    library, _ = get_services()
    logger.info(f"📚 Pose library ready ({len(library)} poses)")

    logger.info("✅ POSTURE MUSE API ready!")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    logger.info("👋 POSTURE MUSE API shutting down...")

    # Stop countdown/hold timers of every open session
    _, session_handler = get_services()
    session_handler.shutdown()

    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="POSTURE MUSE API",
    description="Real-time pose similarity scoring and hold challenges",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    _, session_handler = get_services()
    return {
        "status": "healthy",
        "service": "posture-muse-api",
        "active_sessions": len(session_handler.active_sessions)
    }


@app.get("/stats")
async def get_stats():
    """Get service statistics."""
    _, session_handler = get_services()
    return {
        "sessions": session_handler.get_stats()
    }


# Include service routers
app.include_router(challenge_router, prefix="/api/challenge", tags=["Challenge Service"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
