import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from app.core.config import settings
from app.core.database import engine
from app.core.logging_config import setup_logging
from app.core.redis import redis_client
from app.middleware.logging import LoggingMiddleware
from app.api.v1.api import api_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.CACHE_BACKEND == "redis":
        try:
            await redis_client.connect()
        except Exception:
            # The cache is advisory; reads fall through to the database
            logger.warning("Starting without authorization cache")
    logger.info(f"🚀 RBAC service started ({settings.ENVIRONMENT})")
    yield
    await redis_client.disconnect()
    await engine.dispose()
    logger.info("RBAC service stopped")

# Create FastAPI app
app_config = {
    "title": "RBAC Authorization Service",
    "description": "Permission tree, role assignment and menu authorization with cache cascade",
    "version": "1.0.0",
    "lifespan": lifespan,
}

app = FastAPI(**app_config)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS
)
app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {
        "message": "RBAC Authorization Service",
        "status": "active",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check():
    components = {}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database error: {str(e)}")
        components["database"] = "unavailable"

    if settings.CACHE_BACKEND == "redis":
        try:
            await redis_client.ping()
            components["redis"] = "connected"
        except Exception as e:
            logger.warning(f"Health check redis error: {str(e)}")
            components["redis"] = "unavailable"
    else:
        components["cache"] = "memory"

    return {
        "status": "healthy" if components["database"] == "connected" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": components
    }

def run_http():
    """Run HTTP server on port 9106"""
    import uvicorn
    print("🚀 Starting HTTP server on port 9106...")
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=9106,
        reload=settings.DEBUG
    )

if __name__ == "__main__":
    run_http()
