from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from diagramsync.config import settings
from diagramsync.database import init_db, close_db, engine
from diagramsync.realtime.hub import init_realtime_hub, close_realtime_hub, get_realtime_hub
from diagramsync.routers import diagrams_router, entity_routers, settings_router, realtime_router
from diagramsync.storage.selector import get_storage_selector
from diagramsync.utils.logging_config import setup_logging, fastapi_logger
from diagramsync.error_handlers import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    # Setup logging first
    setup_logging()
    fastapi_logger.info(f"Starting {settings.APP_NAME}")
    if settings.remote_storage_enabled:
        await init_db()
        fastapi_logger.info("Database initialized")
    else:
        fastapi_logger.warning("Remote storage disabled, all requests use the local store")
    get_storage_selector()
    # Realtime hub (Redis yoksa in-memory)
    hub = await init_realtime_hub()
    if hub is not None:
        fastapi_logger.info(f"Realtime hub ready ({hub.backend})")
    yield
    # Shutdown
    fastapi_logger.info("Shutting down application")
    await close_realtime_hub()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Diagram storage (remote / local) ve realtime presence servisi",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

# Global Exception Handlers
register_exception_handlers(app)

# API Routers
app.include_router(diagrams_router)
for entity_router in entity_routers:
    app.include_router(entity_router)
app.include_router(settings_router)
app.include_router(realtime_router)


async def database_health() -> dict:
    if not settings.remote_storage_enabled:
        return {"enabled": False, "connected": False}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"enabled": True, "connected": True}
    except (SQLAlchemyError, OSError) as e:
        fastapi_logger.warning(f"Database health check failed: {e}")
        return {"enabled": True, "connected": False}


# Health Check
@app.get("/health")
async def health_check():
    hub = get_realtime_hub()
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "database": await database_health(),
        "realtime": await hub.health_check() if hub else {"backend": None, "connected": False},
    }


@app.get("/ready")
async def readiness_check():
    database = await database_health()
    return {
        "status": "ready" if database["connected"] or not database["enabled"] else "degraded",
        "database_connected": database["connected"],
        "realtime_enabled": get_realtime_hub() is not None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("diagramsync.main:app", host="0.0.0.0", port=8005, reload=True)
