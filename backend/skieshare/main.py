import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from skieshare.core.config import settings
from skieshare.core.database import DATABASE_URL, Base, SessionLocal, engine
from skieshare.core.errors import SkieShareError, skieshare_error_handler
from skieshare.core.minio_client import initialize_minio_bucket
from skieshare.monitoring.setup import setup_monitoring
from skieshare.routes import (
    analytics,
    auth,
    download,
    files,
    rpc,
    share_links,
    teams,
    users,
)
from skieshare.tasks.cleanup import start_cleanup_task

logger = logging.getLogger("skieshare")

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        async with engine.begin() as conn:
            if DATABASE_URL.startswith("sqlite"):
                await conn.execute(text("PRAGMA journal_mode=WAL;"))
            logger.info("Creating database tables: %s", ", ".join(Base.metadata.tables))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed: %s", e)
        raise

    try:
        initialize_minio_bucket()
        logger.info("MinIO initialized")
    except Exception as e:
        logger.error("MinIO initialization failed: %s", e)
        raise

    cleanup_task = None
    if settings.CLEANUP_ENABLED:
        cleanup_task = asyncio.create_task(start_cleanup_task())
        logger.info("Background cleanup task started")

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
    logger.info("Application shutdown complete")

app = FastAPI(
    title="SkieShare",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Length"],
)

app.add_exception_handler(SkieShareError, skieshare_error_handler)

app.include_router(auth, prefix="/auth", tags=["Auth"])
app.include_router(users)
app.include_router(files)
app.include_router(share_links)
app.include_router(download)
app.include_router(rpc)
app.include_router(teams)
app.include_router(analytics)

setup_monitoring(app)

@app.get("/health")
async def health_check():
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    try:
        from skieshare.core.minio_client import minio_client
        minio_client.list_buckets()
        minio_status = "ok"
    except Exception as e:
        minio_status = f"error: {str(e)}"

    return {
        "status": "running",
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "storage": minio_status
    }

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        timeout_keep_alive=60,
        limit_concurrency=100
    )
