from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .app.api import admin, auth, images, public, uploads
from .app.api.errors import register_exception_handlers
from .app.core.config import get_settings
from .app.core.dependencies import get_event_log, get_storage_adapter
from .app.core.logging_config import setup_logging
from .app.db.database import check_database_health, close_db, init_db

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings)
    logger.info("Starting Image Hosting Service...")

    database_dir = Path(settings.absolute_database_url.replace("sqlite:///", "")).parent
    storage_dirs = [settings.absolute_local_storage_dir, str(database_dir)]
    for dir_path in storage_dirs:
        Path(dir_path).mkdir(parents=True, exist_ok=True)

    logger.info("Storage directories initialized")

    await init_db()
    logger.info("Database initialized")

    await get_event_log().purge_expired()

    if settings.STORAGE_FAILURE_POLICY == "degrade":
        logger.warning(
            "Storage failure policy is degrade, uploads may be kept locally"
        )

    logger.info("Image Hosting Service startup complete")

    yield

    logger.info("Shutting down Image Hosting Service...")
    await get_storage_adapter().close()
    await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        debug=settings.DEBUG,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(images.router, prefix="/api/v1", tags=["images"])
    app.include_router(public.router, prefix="/api/v1/public", tags=["public"])
    app.include_router(auth.router, prefix="/api/v1", tags=["auth"])
    app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
    app.include_router(uploads.router, tags=["uploads"])

    @app.get("/health", tags=["health"])
    async def health():
        database_ok = await check_database_health()
        if not settings.b2_configured:
            object_storage = "unconfigured"
        elif await get_storage_adapter().test_connection():
            object_storage = "connected"
        else:
            object_storage = "unavailable"

        return {
            "status": "healthy" if database_ok else "degraded",
            "service": settings.APP_NAME,
            "database": "connected" if database_ok else "unavailable",
            "object_storage": object_storage,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.image_hosting_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
