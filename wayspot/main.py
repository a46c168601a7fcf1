"""
Wayspot Backend API
Main FastAPI application entry point.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from wayspot.config import settings
from wayspot.database import init_db, close_db
from wayspot.errors import StoreUnavailableError, ValidationError, WayspotError

# Import routers
from wayspot.api.spots import router as spots_router, reviews_router
from wayspot.api.users import router as users_router
from wayspot.api.system import router as system_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info(f"Starting Wayspot Backend ({settings.APP_ENV}, store={settings.STORE_BACKEND})...")
    if settings.STORE_BACKEND == "postgres":
        await init_db()
        logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down Wayspot Backend...")
    if settings.STORE_BACKEND == "postgres":
        await close_db()
        logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Wayspot Backend",
    description="""
    ## Spot discovery and community ratings for travellers

    ### Features

    #### 📍 Spot Discovery
    - Filter by transport mode, spot type, rating and safety
    - Radius search ordered by distance (PostGIS)
    - Personalised by the traveller's stored preferences

    #### ⭐ Reviews
    - One review per traveller per spot
    - Per-mode ratings (hitchhiking, cycling, van life, walking)
    - Spot ratings rebuilt from the full review set

    #### 🛡️ Trust & Badges
    - Trust score (0-100) from verifications, contributions and membership
    - Tiered achievement badges, never revoked
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


def error_body(request: Request, kind: str, message: str, status_code: int, details=None) -> dict:
    error = {
        "kind": kind,
        "message": message,
        "status_code": status_code,
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        error["details"] = details
    return {"error": error}


@app.exception_handler(WayspotError)
async def wayspot_exception_handler(request: Request, exc: WayspotError):
    """Render service errors with their stable kind."""
    headers = None
    if isinstance(exc, StoreUnavailableError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.kind, exc.message, exc.status_code, exc.details),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed requests share the validation_error kind."""
    details = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=error_body(
            request, ValidationError.kind, "Invalid request", ValidationError.status_code,
            {"errors": details},
        ),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    message = str(exc) if settings.APP_DEBUG else "An unexpected error occurred"
    return JSONResponse(
        status_code=500,
        content=error_body(request, "internal_error", message, 500),
    )


# Include routers
app.include_router(spots_router, prefix=settings.API_V1_PREFIX)
app.include_router(reviews_router, prefix=settings.API_V1_PREFIX)
app.include_router(users_router, prefix=settings.API_V1_PREFIX)
app.include_router(system_router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Wayspot Backend",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "wayspot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
