"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from medioca.config import settings
from medioca.dependencies import build_orchestrator, get_orchestrator
from medioca.routes import consultations
from medioca.services.orchestrator import ConsultationOrchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup/shutdown."""
    # Startup: one orchestrator shared by every request
    orchestrator = build_orchestrator(settings)
    app.state.orchestrator = orchestrator
    if orchestrator.get_connection_status():
        logger.info("AI provider connected")
    else:
        logger.warning("AI provider not configured - consultations will use fallback responses")

    yield  # Application runs here

    # Shutdown: drop in-flight AI calls and close the client
    await orchestrator.shutdown()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Permissions policy (restrict sensitive APIs)
        response.headers["Permissions-Policy"] = (
            "geolocation=(), microphone=(), camera=()"
        )
        return response


app = FastAPI(
    title="MediOca Consult",
    description="AI-assisted consultation sessions: symptom analysis, diagnosis validation, prescriptions",
    version="0.1.0",
    lifespan=lifespan,
)

# Security headers middleware (applied to all responses)
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware for frontend
# Parse comma-separated origins from config
_cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["X-API-Key", "Content-Type"],
)

# Include API routers
app.include_router(consultations.router, prefix="/api")


@app.get("/health")
async def health_check(orchestrator: ConsultationOrchestrator = Depends(get_orchestrator)) -> dict:
    """Health check endpoint, with AI connectivity."""
    return {"status": "healthy", "ai_connected": orchestrator.get_connection_status()}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "MediOca Consult API",
        "version": "0.1.0",
        "docs": "/docs",
    }
