"""Download charts for a user's files."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.errors import ValidationError
from skieshare.models import DownloadLog, File, User
from skieshare.utils.dates import utcnow

logger = logging.getLogger("skieshare")

# period -> (number of points, step)
PERIODS = {
    "12h": (13, timedelta(hours=1)),
    "1d": (25, timedelta(hours=1)),
    "1m": (31, timedelta(days=1)),
}


@dataclass
class ChartPoint:
    timestamp: datetime
    label: str
    count: int = 0


def _floor(ts: datetime, step: timedelta) -> datetime:
    if step >= timedelta(days=1):
        return ts.replace(hour=0, minute=0, second=0, microsecond=0)
    return ts.replace(minute=0, second=0, microsecond=0)


def _window(period: str, now: datetime) -> tuple[int, timedelta, datetime]:
    if period not in PERIODS:
        raise ValidationError(f"period must be one of {', '.join(PERIODS)}")
    points, step = PERIODS[period]
    start = _floor(now, step) - step * (points - 1)
    return points, step, start


def bucket_downloads(timestamps, period: str, now: datetime | None = None) -> list[ChartPoint]:
    now = now or utcnow()
    points, step, start = _window(period, now)
    fmt = "%Y-%m-%d" if step >= timedelta(days=1) else "%H:00"

    counts = Counter()
    for ts in timestamps:
        if ts is None or ts < start or ts > now:
            continue
        counts[int((_floor(ts, step) - start) / step)] += 1

    return [
        ChartPoint(timestamp=start + step * i, label=(start + step * i).strftime(fmt), count=counts.get(i, 0))
        for i in range(points)
    ]


def percent_change(points: list[ChartPoint]) -> float:
    half = len(points) // 2
    first = sum(p.count for p in points[:half])
    second = sum(p.count for p in points[half:])
    if first == 0:
        return 100.0 if second else 0.0
    return round((second - first) / first * 100, 1)


def _empty(period: str) -> dict:
    return {"period": period, "points": [], "total": 0, "change": 0.0, "by_method": {}}


async def get_download_analytics(
    db: AsyncSession, user: User, period: str = "1d", file_id: str | None = None, now: datetime | None = None
) -> dict:
    now = now or utcnow()
    _, _, start = _window(period, now)
    try:
        stmt = (
            select(DownloadLog.downloaded_at, DownloadLog.download_method)
            .join(File, File.id == DownloadLog.file_id)
            .where(File.user_id == user.id, DownloadLog.downloaded_at >= start)
        )
        if file_id:
            stmt = stmt.where(DownloadLog.file_id == file_id)
        rows = (await db.execute(stmt)).all()
    except Exception:
        logger.exception("Download analytics query failed user=%s period=%s", user.id, period)
        return _empty(period)

    points = bucket_downloads([r.downloaded_at for r in rows], period, now)
    return {
        "period": period,
        "points": [asdict(p) for p in points],
        "total": sum(p.count for p in points),
        "change": percent_change(points),
        "by_method": dict(Counter(r.download_method for r in rows)),
    }
