"""Storage quota evaluation and accounting.

``check_storage_quota`` is advisory (the upload form asks before sending
bytes). The binding decision is ``reserve_storage``: a single conditional
UPDATE executed in the same transaction as the file row insert, so two
parallel uploads cannot both squeeze under the limit.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.config import settings
from skieshare.core.errors import NotFound, QuotaExceeded
from skieshare.models import Profile
from skieshare.monitoring.setup import quota_rejections
from skieshare.utils.dates import utcnow

logger = logging.getLogger("skieshare")


def _unlimited(profile: Profile) -> bool:
    return profile.subscription_tier in settings.UNLIMITED_TIERS or profile.storage_limit is None


async def get_profile(db: AsyncSession, user_id: str) -> Profile | None:
    res = await db.execute(
        select(Profile).where(Profile.id == user_id).execution_options(populate_existing=True)
    )
    return res.scalars().first()


async def check_storage_quota(db: AsyncSession, user_id: str, incoming_bytes: int) -> bool:
    if incoming_bytes < 0:
        return False
    profile = await get_profile(db, user_id)
    if profile is None:
        return False
    if _unlimited(profile):
        return True
    return (profile.storage_used or 0) + incoming_bytes <= profile.storage_limit


def max_file_size_for(tier: str) -> int | None:
    return settings.TIER_MAX_FILE_SIZE.get(tier)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def _bump_daily_counter(db: AsyncSession, user_id: str, now: datetime) -> None:
    await db.execute(
        update(Profile)
        .where(
            Profile.id == user_id,
            or_(Profile.last_upload_reset.is_(None), Profile.last_upload_reset < _start_of_day(now)),
        )
        .values(daily_upload_count=0, last_upload_reset=now)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(
        update(Profile)
        .where(
            Profile.id == user_id,
            or_(
                Profile.daily_upload_limit.is_(None),
                Profile.daily_upload_count < Profile.daily_upload_limit,
            ),
        )
        .values(daily_upload_count=Profile.daily_upload_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        quota_rejections.labels(reason="daily_limit_reached").inc()
        raise QuotaExceeded("Daily upload limit reached", reason="daily_limit_reached")


async def reserve_storage(db: AsyncSession, user_id: str, nbytes: int, now: datetime | None = None) -> None:
    """Charge ``nbytes`` to the user inside the caller's transaction.

    Raises QuotaExceeded when the per-file ceiling, the daily upload counter or
    the storage limit would be exceeded. Nothing is committed here.
    """
    now = now or utcnow()
    profile = await get_profile(db, user_id)
    if profile is None:
        raise NotFound("Profile not found")

    ceiling = max_file_size_for(profile.subscription_tier)
    if ceiling is not None and nbytes > ceiling:
        quota_rejections.labels(reason="file_too_large").inc()
        raise QuotaExceeded("File exceeds the size allowed on your plan", reason="file_too_large")

    await _bump_daily_counter(db, user_id, now)

    res = await db.execute(
        update(Profile)
        .where(
            Profile.id == user_id,
            or_(
                Profile.subscription_tier.in_(list(settings.UNLIMITED_TIERS)),
                Profile.storage_limit.is_(None),
                Profile.storage_used + nbytes <= Profile.storage_limit,
            ),
        )
        .values(storage_used=Profile.storage_used + nbytes)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        quota_rejections.labels(reason="quota_exceeded").inc()
        logger.info("Storage quota rejected user=%s bytes=%s", user_id, nbytes)
        raise QuotaExceeded("Storage limit exceeded", reason="quota_exceeded")


async def release_storage(db: AsyncSession, user_id: str, nbytes: int) -> None:
    await db.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(
            storage_used=case(
                (Profile.storage_used >= nbytes, Profile.storage_used - nbytes),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )


async def reset_daily_upload_count(db: AsyncSession, now: datetime | None = None) -> int:
    now = now or utcnow()
    res = await db.execute(
        update(Profile)
        .where(
            and_(
                Profile.daily_upload_count > 0,
                or_(Profile.last_upload_reset.is_(None), Profile.last_upload_reset < _start_of_day(now)),
            )
        )
        .values(daily_upload_count=0, last_upload_reset=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount or 0
