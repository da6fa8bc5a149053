"""Team audit trail.

Events are written through a session of their own, after the operation they
describe has committed. A failed write is logged and dropped: sharing and
team management stay available even when the audit trail is not.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core import database
from skieshare.models import AuditLog
from skieshare.monitoring.setup import audit_failures

logger = logging.getLogger("skieshare")


async def log_audit_event(
    team_id: str,
    user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict | None = None,
) -> str | None:
    try:
        async with database.SessionLocal() as session:
            entry = AuditLog(
                team_id=team_id,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=metadata or {},
            )
            session.add(entry)
            await session.commit()
            return entry.id
    except Exception:
        audit_failures.inc()
        logger.exception("Audit write failed team=%s action=%s entity=%s/%s",
                         team_id, action, entity_type, entity_id)
        return None


async def list_audit_events(db: AsyncSession, team_id: str, limit: int = 100) -> list[AuditLog]:
    res = await db.execute(
        select(AuditLog)
        .where(AuditLog.team_id == team_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
    )
    return list(res.scalars().all())
