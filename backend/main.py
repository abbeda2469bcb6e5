"""Clinic Leads - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from config import get_settings
from database import engine
from logging_config import configure_logging
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from middleware.session import SessionMiddleware
from routers import (
    auth_router,
    commissions_router,
    dashboard_router,
    debug_router,
    establishments_router,
    leads_router,
    profile_router,
    users_router,
)

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - logging on startup, engine cleanup on shutdown."""
    configure_logging(settings.log_level)

    # Missing credentials don't stop the app: the session middleware fails open
    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.warning("Supabase URL or anon key not set - every request will be anonymous")
    if settings.debug:
        logger.warning("DEBUG is enabled - /debug exposes configuration details")

    yield

    await engine.dispose()


app = FastAPI(
    title="Clinic Leads API",
    description="Lead, commission and team management for partner clinics",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Session refresh and auth/dashboard redirects
app.add_middleware(SessionMiddleware, settings=settings)

# CORS middleware (added last so it wraps the session redirects)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(commissions_router)
app.include_router(dashboard_router)
app.include_router(establishments_router)
app.include_router(leads_router)
app.include_router(profile_router)
app.include_router(users_router)
if settings.debug:
    app.include_router(debug_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "clinic-leads"}
