import logging

from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool

from .config import settings

logger = logging.getLogger("skieshare")

minio_client = Minio(
    settings.MINIO_ENDPOINT,
    access_key=settings.MINIO_ACCESS_KEY,
    secret_key=settings.MINIO_SECRET_KEY,
    secure=settings.MINIO_SECURE,
)


def initialize_minio_bucket():
    try:
        if not minio_client.bucket_exists(settings.MINIO_BUCKET):
            minio_client.make_bucket(settings.MINIO_BUCKET)
            logger.info("Bucket '%s' created successfully", settings.MINIO_BUCKET)
        else:
            logger.info("Bucket '%s' already exists", settings.MINIO_BUCKET)
    except S3Error as e:
        logger.error("MinIO error: %s", e)
        raise RuntimeError(f"Failed to initialize MinIO bucket: {e}")


async def upload_path(object_name: str, path: str, content_type: str = "application/octet-stream") -> None:
    await run_in_threadpool(
        minio_client.fput_object, settings.MINIO_BUCKET, object_name, path, content_type=content_type
    )


async def get_object(object_name: str):
    """Open a streaming response for the object. The caller closes it."""
    return await run_in_threadpool(minio_client.get_object, settings.MINIO_BUCKET, object_name)


async def remove_object(object_name: str) -> None:
    await run_in_threadpool(minio_client.remove_object, settings.MINIO_BUCKET, object_name)
