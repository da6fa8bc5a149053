import asyncio
import logging
import os
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select

from skieshare.core import database
from skieshare.core import minio_client as storage
from skieshare.core.config import settings
from skieshare.models import File, Profile, TeamFileShare, TeamPolicy
from skieshare.monitoring.setup import report_cleanup
from skieshare.services.quota import release_storage
from skieshare.services.teams import expire_stale_invites

logger = logging.getLogger("skieshare")

INTERVAL_SECS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
MAX_PER_LOOP = int(os.getenv("CLEANUP_MAX_RECORDS_PER_LOOP", "200"))
RETRY_ATTEMPTS = int(os.getenv("CLEANUP_RETRY_ATTEMPTS", "3"))
RETRY_BACKOFF = float(os.getenv("CLEANUP_RETRY_BACKOFF_SECS", "0.5"))

CLEANED_FILES = 0
EXPIRED_INVITES = 0
FAILED_FILE_DELETES = 0

async def _retry_minio_delete(object_name: str) -> bool:
    """Retry wrapper for MinIO deletion."""
    for attempt in range(1, RETRY_ATTEMPTS + 1):
        try:
            await storage.remove_object(object_name)
            return True
        except Exception as e:
            logger.warning("MinIO delete failed (attempt %s/%s) object=%s err=%s",
                           attempt, RETRY_ATTEMPTS, object_name, e)
            if attempt < RETRY_ATTEMPTS:
                await asyncio.sleep(RETRY_BACKOFF * attempt)
    return False

def _retention_condition(now: datetime):
    """Files past their plan's retention window, by subscription tier."""
    clauses = []
    for tier, hours in settings.TIER_RETENTION_HOURS.items():
        if hours is None:
            continue
        clauses.append(and_(Profile.subscription_tier == tier, File.created_at < now - timedelta(hours=hours)))
    # a lapsed pro subscription keeps its files for a grace period after it ends
    clauses.append(and_(
        Profile.subscription_tier == "pro",
        Profile.subscription_end_date != None,
        Profile.subscription_end_date < now - timedelta(days=settings.PRO_LAPSE_GRACE_DAYS),
    ))
    return or_(*clauses)

async def _team_retention_conditions(db, now: datetime) -> list:
    """Files shared into a team whose policy sets ``retention_days``."""
    res = await db.execute(
        select(TeamPolicy.team_id, TeamPolicy.retention_days).where(TeamPolicy.retention_days != None)
    )
    return [
        and_(
            File.id.in_(select(TeamFileShare.file_id).where(TeamFileShare.team_id == team_id)),
            File.created_at < now - timedelta(days=days),
        )
        for team_id, days in res.all()
    ]

async def run_cleanup_once(now: datetime | None = None) -> dict:
    """One sweep: expire stale invites, delete expired and out-of-retention files.

    Expired share links are left alone; access checks already deny them as expired.
    """
    now = now or datetime.utcnow()
    files_deleted = 0
    failed = 0

    async with database.SessionLocal() as db:
        invites_expired = await expire_stale_invites(db, now)

        due = [and_(File.expires_at != None, File.expires_at < now), _retention_condition(now)]
        due.extend(await _team_retention_conditions(db, now))
        res = await db.execute(
            select(File)
            .join(Profile, Profile.id == File.user_id)
            .where(or_(*due))
            .limit(MAX_PER_LOOP)
        )
        files_to_delete = res.scalars().all()

        for f in files_to_delete:
            ok = await _retry_minio_delete(f.storage_path)
            if ok:
                await release_storage(db, f.user_id, f.file_size or 0)
                await db.delete(f)
                files_deleted += 1
            else:
                failed += 1
                logger.error("Failed to delete object from MinIO after retries: %s", f.storage_path)

        if files_to_delete:
            await db.commit()

    return {
        "files_deleted": files_deleted,
        "invites_expired": invites_expired,
        "failed": failed,
    }

async def cleanup_expired_files():
    global CLEANED_FILES, EXPIRED_INVITES, FAILED_FILE_DELETES
    logger.info("Cleanup task started: interval=%s max_per_loop=%s", INTERVAL_SECS, MAX_PER_LOOP)

    while True:
        started = datetime.utcnow()
        try:
            summary = await run_cleanup_once(started)

            CLEANED_FILES += summary["files_deleted"]
            EXPIRED_INVITES += summary["invites_expired"]
            FAILED_FILE_DELETES += summary["failed"]

            duration = (datetime.utcnow() - started).total_seconds()
            report_cleanup(summary["files_deleted"], summary["invites_expired"], summary["failed"], duration)
            logger.info("cleanup_summary files_deleted=%s invites_expired=%s failed_minio=%s "
                        "duration=%.3fs total_files=%s total_invites=%s",
                        summary["files_deleted"], summary["invites_expired"],
                        summary["failed"], duration, CLEANED_FILES, EXPIRED_INVITES)

            await asyncio.sleep(INTERVAL_SECS)

        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled by shutdown")
            raise
        except Exception as e:
            logger.exception("Cleanup loop error: %s", e)
            await asyncio.sleep(min(60, INTERVAL_SECS))

async def start_cleanup_task():
    return await cleanup_expired_files()
