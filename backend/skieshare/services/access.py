"""Access decisions for shared files and folders.

The evaluation order is fixed and every outcome has a stable reason string:

    owner -> private -> not_found -> locked -> expired -> limit_reached
          -> bad_password -> granted

Existence, expiry and limits are checked before the password so an expired
or exhausted link never asks for a password it would not honour anyway.
Denials are ordinary return values, not exceptions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.models import File, Folder, SharedLink
from skieshare.monitoring.setup import access_decisions
from skieshare.services.credentials import verify_password
from skieshare.utils.dates import utcnow

logger = logging.getLogger("skieshare")

OWNER = "owner"
PRIVATE = "private"
NOT_FOUND = "not_found"
LOCKED = "locked"
EXPIRED = "expired"
LIMIT_REACHED = "limit_reached"
BAD_PASSWORD = "bad_password"
GRANTED = "granted"

REASONS = (OWNER, PRIVATE, NOT_FOUND, LOCKED, EXPIRED, LIMIT_REACHED, BAD_PASSWORD, GRANTED)


@dataclass(frozen=True)
class AccessDecision:
    can_access: bool
    reason: str
    file: File | None = field(default=None, compare=False, repr=False)
    folder: Folder | None = field(default=None, compare=False, repr=False)
    link: SharedLink | None = field(default=None, compare=False, repr=False)
    files: list = field(default_factory=list, compare=False, repr=False)

    def as_dict(self) -> dict:
        return {"can_access": self.can_access, "reason": self.reason}


def _expired(obj, now: datetime) -> bool:
    expires_at = getattr(obj, "expires_at", None)
    return expires_at is not None and now >= expires_at


def _at_limit(obj) -> bool:
    limit = getattr(obj, "download_limit", None)
    return limit is not None and (getattr(obj, "download_count", 0) or 0) >= limit


def _required_hash(resource, link: SharedLink | None) -> str | None:
    if link is not None and link.password_hash:
        return link.password_hash
    if getattr(resource, "is_locked", False):
        return getattr(resource, "password_hash", None)
    return None


def evaluate_access(
    resource,
    link: SharedLink | None,
    *,
    user_id: str | None,
    password: str | None,
    route_supplied: bool,
    now: datetime,
) -> tuple[bool, str]:
    """Pure decision over already-loaded state. ``resource`` is a File or a Folder."""
    if resource is None:
        return False, NOT_FOUND
    if user_id and user_id == resource.user_id:
        return True, OWNER
    if not route_supplied:
        if not resource.is_public:
            return False, PRIVATE
    elif link is None:
        return False, NOT_FOUND

    if link is not None and not link.is_active:
        return False, LOCKED
    if _expired(link, now) or _expired(resource, now):
        return False, EXPIRED
    if _at_limit(link) or _at_limit(resource):
        return False, LIMIT_REACHED

    required = _required_hash(resource, link)
    if required and not verify_password(password, required):
        return False, BAD_PASSWORD
    return True, GRANTED


def evaluate_folder_file(file: File | None, *, user_id: str | None, password: str | None,
                         now: datetime) -> tuple[bool, str]:
    """Second gate for a file served through an already granted folder link.

    The folder decision covers the link; the file still carries its own
    expiry, download limit and lock password.
    """
    if file is None:
        return False, NOT_FOUND
    if user_id and user_id == file.user_id:
        return True, OWNER
    if _expired(file, now):
        return False, EXPIRED
    if _at_limit(file):
        return False, LIMIT_REACHED
    required = _required_hash(file, None)
    if required and not verify_password(password, required):
        return False, BAD_PASSWORD
    return True, GRANTED


async def get_link_by_token(db: AsyncSession, token: str) -> SharedLink | None:
    if not token:
        return None
    res = await db.execute(
        select(SharedLink).where(SharedLink.share_token == token).execution_options(populate_existing=True)
    )
    return res.scalars().first()


async def get_link_by_code(db: AsyncSession, code: str) -> SharedLink | None:
    if not code:
        return None
    code = code.strip().upper()
    res = await db.execute(
        select(SharedLink).where(SharedLink.share_code == code).execution_options(populate_existing=True)
    )
    link = res.scalars().first()
    if link is not None:
        return link

    # Codes mirrored onto a file or folder resolve to that target's newest code link
    file_id = (await db.execute(select(File.id).where(File.share_code == code))).scalar()
    folder_id = (await db.execute(select(Folder.id).where(Folder.share_code == code))).scalar()
    if not file_id and not folder_id:
        return None
    stmt = select(SharedLink).where(SharedLink.link_type == "code")
    stmt = stmt.where(SharedLink.file_id == file_id) if file_id else stmt.where(SharedLink.folder_id == folder_id)
    res = await db.execute(stmt.order_by(SharedLink.created_at.desc()).execution_options(populate_existing=True))
    return res.scalars().first()


async def _load(db: AsyncSession, model, obj_id: str):
    res = await db.execute(select(model).where(model.id == obj_id).execution_options(populate_existing=True))
    return res.scalars().first()


async def check_file_access(
    db: AsyncSession,
    file_id: str,
    user_id: str | None = None,
    password: str | None = None,
    share_code: str | None = None,
    share_token: str | None = None,
    now: datetime | None = None,
) -> AccessDecision:
    now = now or utcnow()
    file = await _load(db, File, file_id)
    route_supplied = bool(share_token or share_code)

    link = None
    if file is not None and route_supplied:
        link = await get_link_by_token(db, share_token) if share_token else await get_link_by_code(db, share_code)
        if link is not None and link.file_id != file.id:
            link = None

    allowed, reason = evaluate_access(
        file, link, user_id=user_id, password=password, route_supplied=route_supplied, now=now
    )
    access_decisions.labels(reason=reason).inc()
    return AccessDecision(allowed, reason, file=file, link=link)


async def check_folder_access(
    db: AsyncSession,
    folder_id: str,
    user_id: str | None = None,
    password: str | None = None,
    share_code: str | None = None,
    share_token: str | None = None,
    now: datetime | None = None,
) -> AccessDecision:
    """Folder links are live: the listing is read at access time."""
    now = now or utcnow()
    folder = await _load(db, Folder, folder_id)
    route_supplied = bool(share_token or share_code)

    link = None
    if folder is not None and route_supplied:
        link = await get_link_by_token(db, share_token) if share_token else await get_link_by_code(db, share_code)
        if link is not None and link.folder_id != folder.id:
            link = None

    allowed, reason = evaluate_access(
        folder, link, user_id=user_id, password=password, route_supplied=route_supplied, now=now
    )
    access_decisions.labels(reason=reason).inc()

    files = []
    if allowed:
        res = await db.execute(
            select(File).where(File.folder_id == folder.id).order_by(File.original_name.asc())
        )
        files = list(res.scalars().all())
    return AccessDecision(allowed, reason, folder=folder, link=link, files=files)


async def check_link_access(
    db: AsyncSession,
    link: SharedLink | None,
    user_id: str | None = None,
    password: str | None = None,
    now: datetime | None = None,
) -> AccessDecision:
    """Dispatch a resolved link (from a token or a code) to the file or folder check."""
    if link is None:
        access_decisions.labels(reason=NOT_FOUND).inc()
        return AccessDecision(False, NOT_FOUND)
    if link.folder_id:
        return await check_folder_access(
            db, link.folder_id, user_id=user_id, password=password, share_token=link.share_token, now=now
        )
    return await check_file_access(
        db, link.file_id, user_id=user_id, password=password, share_token=link.share_token, now=now
    )
