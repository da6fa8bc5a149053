"""Share link creation, settings and download accounting."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.config import settings
from skieshare.core.errors import NotAuthorized, NotFound, PolicyViolation, ShareCodeExhausted, ValidationError
from skieshare.models import DownloadLog, File, Folder, SharedLink, Team, TeamFileShare, TeamPolicy, User
from skieshare.models.share_link import LINK_TYPES
from skieshare.monitoring.setup import downloads_recorded, shares_created
from skieshare.services.access import get_link_by_token
from skieshare.services.credentials import generate_share_token, generate_unique_share_code, verify_password
from skieshare.utils.dates import to_naive_utc, utcnow

logger = logging.getLogger("skieshare")


@dataclass
class ShareResult:
    link_id: str
    share_token: str
    share_code: str | None
    expires_at: datetime | None


def _validate_common(link_type: str, expires_at: datetime | None, download_limit: int | None, now: datetime):
    if link_type not in LINK_TYPES:
        raise ValidationError(f"link_type must be one of {', '.join(LINK_TYPES)}")
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future")
    if download_limit is not None and download_limit < 1:
        raise ValidationError("download_limit must be at least 1")


async def _relevant_policies(db: AsyncSession, owner_id: str, file_id: str | None = None) -> list[TeamPolicy]:
    """Policies of teams the owner administers and teams the file was shared into."""
    conditions = [Team.admin_id == owner_id]
    if file_id:
        conditions.append(Team.id.in_(select(TeamFileShare.team_id).where(TeamFileShare.file_id == file_id)))
    res = await db.execute(
        select(TeamPolicy).join(Team, Team.id == TeamPolicy.team_id).where(or_(*conditions))
    )
    return list(res.scalars().all())


def _apply_policies(
    policies: list[TeamPolicy],
    link_type: str,
    expires_at: datetime | None,
    password_hash: str | None,
    recipient_email: str | None,
    now: datetime,
) -> datetime | None:
    if not password_hash and any(p.require_password_for_shares for p in policies):
        raise PolicyViolation("Your team requires a password on shared links", reason="password_required")

    if link_type == "email" and recipient_email:
        domain = recipient_email.rsplit("@", 1)[-1].lower()
        for p in policies:
            if p.allow_external_sharing:
                continue
            if not p.auto_join_domain or p.auto_join_domain.lower().lstrip("@") != domain:
                raise PolicyViolation(
                    "Your team does not allow sharing outside the organisation",
                    reason="external_sharing_disabled",
                )

    if expires_at is None:
        days = [p.default_share_expiry_days for p in policies if p.default_share_expiry_days]
        if days:
            expires_at = now + timedelta(days=min(days))
    return expires_at


async def _insert_link(db: AsyncSession, link_kwargs: dict, target, with_code: bool) -> SharedLink:
    for attempt in range(1, settings.SHARE_CODE_MAX_ATTEMPTS + 1):
        code = await generate_unique_share_code(db) if with_code else None
        link = SharedLink(share_token=generate_share_token(), share_code=code, **link_kwargs)
        try:
            async with db.begin_nested():
                db.add(link)
                if code:
                    target.share_code = code
        except IntegrityError:
            logger.warning("Share identifier collided on insert (attempt %s)", attempt)
            continue
        return link
    raise ShareCodeExhausted("Could not allocate a unique share code, try again")


async def _get_owned_file(db: AsyncSession, user: User, file_id: str) -> File:
    res = await db.execute(select(File).where(File.id == file_id))
    file = res.scalars().first()
    if not file:
        raise NotFound("File not found")
    if file.user_id != user.id:
        raise NotAuthorized("Only the owner can share this file")
    return file


async def _get_owned_folder(db: AsyncSession, user: User, folder_id: str) -> Folder:
    res = await db.execute(select(Folder).where(Folder.id == folder_id))
    folder = res.scalars().first()
    if not folder:
        raise NotFound("Folder not found")
    if folder.user_id != user.id:
        raise NotAuthorized("Only the owner can share this folder")
    return folder


async def create_file_share(
    db: AsyncSession,
    user: User,
    file_id: str,
    link_type: str = "direct",
    expires_at: datetime | None = None,
    download_limit: int | None = None,
    password_hash: str | None = None,
    recipient_email: str | None = None,
    message: str | None = None,
    now: datetime | None = None,
) -> ShareResult:
    now = now or utcnow()
    expires_at = to_naive_utc(expires_at)
    _validate_common(link_type, expires_at, download_limit, now)
    if link_type == "email" and not recipient_email:
        raise ValidationError("recipient_email is required for email shares")

    file = await _get_owned_file(db, user, file_id)
    policies = await _relevant_policies(db, file.user_id, file.id)
    expires_at = _apply_policies(policies, link_type, expires_at, password_hash, recipient_email, now)

    link = await _insert_link(
        db,
        dict(
            file_id=file.id,
            link_type=link_type,
            password_hash=password_hash or None,
            recipient_email=recipient_email if link_type == "email" else None,
            message=message,
            download_limit=download_limit,
            download_count=0,
            expires_at=expires_at,
            is_active=True,
            created_by=user.id,
            created_at=now,
        ),
        file,
        with_code=link_type == "code",
    )
    await db.commit()

    shares_created.labels(target="file", link_type=link_type).inc()
    logger.info("Share link created file=%s type=%s link=%s", file_id, link_type, link.id)
    return ShareResult(link.id, link.share_token, link.share_code, link.expires_at)


async def create_folder_share(
    db: AsyncSession,
    user: User,
    folder_id: str,
    link_type: str = "code",
    expires_at: datetime | None = None,
    password_hash: str | None = None,
    now: datetime | None = None,
) -> ShareResult:
    now = now or utcnow()
    expires_at = to_naive_utc(expires_at)
    _validate_common(link_type, expires_at, None, now)
    if link_type == "email":
        raise ValidationError("Folders can be shared by link or code only")

    folder = await _get_owned_folder(db, user, folder_id)
    policies = await _relevant_policies(db, folder.user_id)
    expires_at = _apply_policies(policies, link_type, expires_at, password_hash, None, now)

    link = await _insert_link(
        db,
        dict(
            folder_id=folder.id,
            link_type=link_type,
            password_hash=password_hash or None,
            expires_at=expires_at,
            download_count=0,
            is_active=True,
            created_by=user.id,
            created_at=now,
        ),
        folder,
        with_code=link_type == "code",
    )
    await db.commit()

    shares_created.labels(target="folder", link_type=link_type).inc()
    logger.info("Share link created folder=%s type=%s link=%s", folder_id, link_type, link.id)
    return ShareResult(link.id, link.share_token, link.share_code, link.expires_at)


async def _get_owned_link(db: AsyncSession, user: User, link_id: str) -> SharedLink:
    res = await db.execute(select(SharedLink).where(SharedLink.id == link_id))
    link = res.scalars().first()
    if not link:
        raise NotFound("Share link not found")
    if link.file_id:
        owner_id = (await db.execute(select(File.user_id).where(File.id == link.file_id))).scalar()
    else:
        owner_id = (await db.execute(select(Folder.user_id).where(Folder.id == link.folder_id))).scalar()
    if owner_id != user.id:
        raise NotAuthorized("Only the owner can change this link")
    return link


async def update_shared_link_settings(
    db: AsyncSession,
    user: User,
    link_id: str,
    is_active: bool | None = None,
    expires_at: datetime | None = None,
    download_limit: int | None = None,
    password_hash: str | None = None,
    clear_password: bool = False,
    now: datetime | None = None,
) -> bool:
    """Partial update; only the fields passed (not None) change.

    Locking a link (``is_active=False``) is only possible once it carries a
    password, either stored already or supplied in the same call. A password
    is removed with ``clear_password``, which a locked link only allows when
    the same call re-activates it.
    """
    now = now or utcnow()
    expires_at = to_naive_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future")
    if download_limit is not None and download_limit < 1:
        raise ValidationError("download_limit must be at least 1")
    if clear_password and password_hash:
        raise ValidationError("Either set a new password or clear it, not both")

    link = await _get_owned_link(db, user, link_id)

    stays_locked = is_active is False or (is_active is None and not link.is_active)
    if stays_locked and not (password_hash or (link.password_hash and not clear_password)):
        raise PolicyViolation(
            "Set a password on this link before locking it",
            reason="password_required_to_lock",
        )

    if clear_password and link.password_hash:
        policies = await _relevant_policies(db, user.id, link.file_id)
        if any(p.require_password_for_shares for p in policies):
            raise PolicyViolation("Your team requires a password on shared links", reason="password_required")
        link.password_hash = None
    if password_hash:
        link.password_hash = password_hash
    if is_active is not None:
        link.is_active = is_active
    if expires_at is not None:
        link.expires_at = expires_at
    if download_limit is not None:
        link.download_limit = download_limit
    await db.commit()
    logger.info("Share link updated link=%s active=%s", link.id, link.is_active)
    return True


async def delete_shared_link(db: AsyncSession, user: User, link_id: str) -> None:
    link = await _get_owned_link(db, user, link_id)
    await db.execute(
        update(DownloadLog)
        .where(DownloadLog.shared_link_id == link.id)
        .values(shared_link_id=None)
        .execution_options(synchronize_session=False)
    )
    if link.share_code:
        for model in (File, Folder):
            await db.execute(
                update(model)
                .where(model.share_code == link.share_code)
                .values(share_code=None)
                .execution_options(synchronize_session=False)
            )
    await db.delete(link)
    await db.commit()
    logger.info("Share link deleted link=%s", link_id)


async def list_shared_links(db: AsyncSession, user: User) -> list[SharedLink]:
    res = await db.execute(
        select(SharedLink)
        .outerjoin(File, File.id == SharedLink.file_id)
        .outerjoin(Folder, Folder.id == SharedLink.folder_id)
        .where(or_(File.user_id == user.id, Folder.user_id == user.id))
        .order_by(SharedLink.created_at.desc())
    )
    return list(res.scalars().all())


async def validate_share_password(db: AsyncSession, token: str, plaintext: str | None) -> bool:
    link = await get_link_by_token(db, token)
    if link is None:
        return False
    if not link.password_hash:
        return True
    return verify_password(plaintext, link.password_hash)


async def record_download(
    db: AsyncSession,
    file_id: str,
    shared_link_id: str | None = None,
    method: str = "direct",
    ip: str | None = None,
    user_agent: str | None = None,
    enforce_limit: bool = True,
    now: datetime | None = None,
) -> DownloadLog:
    """Append a DownloadLog and bump the counters in one transaction.

    Counters are incremented in SQL and guarded by the limit, so concurrent
    downloads of the last permitted copy cannot both succeed.
    """
    now = now or utcnow()
    try:
        if shared_link_id:
            res = await db.execute(
                update(SharedLink)
                .where(
                    SharedLink.id == shared_link_id,
                    SharedLink.is_active.is_(True),
                    or_(
                        SharedLink.download_limit.is_(None),
                        SharedLink.download_count < SharedLink.download_limit,
                    ),
                )
                .values(download_count=SharedLink.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                raise PolicyViolation("Download limit reached", reason="limit_reached")

        file_stmt = update(File).where(File.id == file_id)
        if enforce_limit:
            file_stmt = file_stmt.where(
                or_(File.download_limit.is_(None), File.download_count < File.download_limit)
            )
        res = await db.execute(
            file_stmt.values(download_count=File.download_count + 1).execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            exists = (await db.execute(select(File.id).where(File.id == file_id))).scalar()
            if not exists:
                raise NotFound("File not found")
            raise PolicyViolation("Download limit reached", reason="limit_reached")

        log = DownloadLog(
            file_id=file_id,
            shared_link_id=shared_link_id,
            download_method=method,
            downloaded_at=now,
            downloader_ip=ip,
            downloader_user_agent=user_agent,
        )
        db.add(log)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    downloads_recorded.labels(method=method).inc()
    return log
