# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the KU BAZAR API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.exceptions import (
    MarketplaceException,
    http_exception_handler,
    marketplace_exception_handler,
    validation_exception_handler,
)
from app.routers import (
    abuse,
    admin,
    contacts,
    favorites,
    health,
    internal,
    messages,
    partnerships,
    pwa,
    pwa_admin,
    reviews,
    sponsors,
    translate,
    uploads,
)
from app.auth import routes as auth_routes

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs the effective configuration on startup and marks shutdown.
    """
    # Startup
    logger.info(f"Starting KU BAZAR API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    logger.info(
        f"PWA enabled={settings.PWA_ENABLED} rollout={settings.PWA_ROLLOUT_PERCENT}% "
        f"telemetry={settings.pwa_telemetry_active} state={settings.PWA_STATE_BACKEND}"
    )

    yield

    # Shutdown
    logger.info("Shutting down KU BAZAR API")


# Create FastAPI application
app = FastAPI(
    title="KU BAZAR API",
    description="""
## KU BAZAR Marketplace API

Consumer-to-consumer marketplace backend: listings are managed in Supabase,
this API covers the parts that need server-side checks.

### Areas

| Area | What it does |
|------|--------------|
| **Reviews** | Seller ratings and helpful votes |
| **Messages** | Buyer/seller conversations with spam and block checks |
| **Moderation** | Abuse reports, user blocks, product moderation |
| **Sponsors** | Sponsor store administration |
| **PWA** | Install banner, rollout buckets, telemetry and SLO alerts |

Mutating endpoints check the request origin and rate limits before the
payload is read. Errors are returned as `{"error": "..."}`.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Current user and token verification"},
        {"name": "Health", "description": "API health and readiness checks"},
        {"name": "Reviews", "description": "Seller reviews and helpful votes"},
        {"name": "Messages", "description": "Buyer/seller conversations"},
        {"name": "Translate", "description": "Listing text translation"},
        {"name": "Abuse", "description": "Abuse reports and user blocking"},
        {"name": "Admin", "description": "Moderation and app contacts"},
        {"name": "App", "description": "Public app configuration"},
        {"name": "Partnerships", "description": "Partnership inquiries"},
        {"name": "Favorites", "description": "Saved products"},
        {"name": "Uploads", "description": "Listing image uploads"},
        {"name": "Sponsors", "description": "Sponsor store administration"},
        {"name": "PWA", "description": "Install banner, rollout and telemetry"},
        {"name": "PWA Admin", "description": "Telemetry summary and SLO alert checks"},
        {"name": "Internal", "description": "Secret-protected operations endpoints"},
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(MarketplaceException)
async def handle_marketplace_exception(request: Request, exc: MarketplaceException):
    """Handle custom marketplace exceptions."""
    return await marketplace_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError):
    return await validation_exception_handler(request, exc)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Authentication endpoints
app.include_router(auth_routes.router, prefix="/api/auth", tags=["Auth"])

# Health check endpoints
app.include_router(health.router, prefix="/api", tags=["Health"])

# Marketplace endpoints
app.include_router(reviews.router, prefix="/api/reviews", tags=["Reviews"])
app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])
app.include_router(translate.router, prefix="/api/translate", tags=["Translate"])
app.include_router(abuse.router, prefix="/api/abuse", tags=["Abuse"])
app.include_router(favorites.router, prefix="/api/favorites", tags=["Favorites"])
app.include_router(uploads.router, prefix="/api/uploads", tags=["Uploads"])
app.include_router(partnerships.router, prefix="/api/partnerships", tags=["Partnerships"])
app.include_router(contacts.router, prefix="/api/app", tags=["App"])

# Admin endpoints
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(sponsors.router, prefix="/api/admin/sponsors", tags=["Sponsors"])
app.include_router(pwa_admin.router, prefix="/api/admin/pwa", tags=["PWA Admin"])

# PWA endpoints
app.include_router(pwa.router, prefix="/api/pwa", tags=["PWA"])
app.include_router(internal.router, prefix="/api/internal/pwa", tags=["Internal"])


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "KU BAZAR API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }
