"""OIDC Auth Service

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oidc_auth_service.config.settings import get_settings
from oidc_auth_service.api.routes import oidc
from oidc_auth_service.core.oidc.factory import reset_components
from oidc_auth_service.infrastructure.redis.client import get_redis_client, close_redis_client

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _uses_redis(settings) -> bool:
    return "redis" in (settings.oidc_config_backend.lower(), settings.oidc_nonce_backend.lower())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = get_settings()

    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    if _uses_redis(settings):
        try:
            await get_redis_client()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    yield

    # Shutdown
    logger.info("Shutting down OIDC Auth Service")
    reset_components()
    if _uses_redis(settings):
        await close_redis_client()
        logger.info("Redis connection closed")


# Create FastAPI application
settings = get_settings()
app = FastAPI(
    title="OIDC Auth Service",
    version=settings.service_version,
    description="OpenID Connect authorization-code login backend",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Health check endpoint
@app.get("/health")
async def root_health_check():
    """Root health check endpoint"""
    status = "healthy"
    if _uses_redis(settings):
        redis_client = await get_redis_client()
        if not await redis_client.health_check():
            status = "degraded"

    return {
        "status": status,
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment
    }


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "description": "OpenID Connect Login Service",
        "docs": "/docs",
        "health": "/health"
    }


# oidc.router already has /api/v1/oidc prefix
app.include_router(oidc.router, tags=["oidc"])


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oidc_auth_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
