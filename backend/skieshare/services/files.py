"""File and folder lifecycle for a single owner."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.config import settings
from skieshare.core.errors import NotAuthorized, NotFound, ValidationError
from skieshare.models import DownloadLog, File, Folder, SharedLink, User
from skieshare.services.credentials import hash_password
from skieshare.services.quota import get_profile, release_storage, reserve_storage
from skieshare.utils.dates import to_naive_utc, utcnow

logger = logging.getLogger("skieshare")

MAX_NAME_LENGTH = 255


def _clean_name(name: str | None, what: str = "Name") -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{what} is required")
    if len(name) > MAX_NAME_LENGTH or "/" in name or "\\" in name:
        raise ValidationError(f"{what} is not valid")
    return name


async def get_owned_file(db: AsyncSession, user: User, file_id: str) -> File:
    res = await db.execute(select(File).where(File.id == file_id))
    file = res.scalars().first()
    if not file:
        raise NotFound("File not found")
    if file.user_id != user.id:
        raise NotAuthorized("Forbidden")
    return file


async def get_owned_folder(db: AsyncSession, user: User, folder_id: str) -> Folder:
    res = await db.execute(select(Folder).where(Folder.id == folder_id))
    folder = res.scalars().first()
    if not folder:
        raise NotFound("Folder not found")
    if folder.user_id != user.id:
        raise NotAuthorized("Forbidden")
    return folder


def set_file_lock(file: File, is_locked: bool, password: str | None = None) -> None:
    if is_locked:
        if not password:
            raise ValidationError("A password is required to lock a file")
        file.password_hash = hash_password(password)
        file.is_locked = True
    else:
        file.password_hash = None
        file.is_locked = False


# -----------------------------
# Files
# -----------------------------

async def upload_file(
    db: AsyncSession,
    user: User,
    filename: str,
    content_type: str | None,
    size: int,
    storage_path: str,
    folder_id: str | None = None,
    expires_at: datetime | None = None,
    download_limit: int | None = None,
    now: datetime | None = None,
) -> File:
    """Charge the quota and insert the File row in one transaction.

    The object is already in storage; the caller removes it when this raises.
    """
    now = now or utcnow()
    filename = _clean_name(filename, "File name")
    expires_at = to_naive_utc(expires_at)
    if size < 0:
        raise ValidationError("File size must not be negative")
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future")
    if download_limit is not None and download_limit < 1:
        raise ValidationError("download_limit must be at least 1")
    if folder_id:
        await get_owned_folder(db, user, folder_id)

    profile = await get_profile(db, user.id)
    if profile is None:
        raise NotFound("Profile not found")
    retention = settings.TIER_RETENTION_HOURS.get(profile.subscription_tier)
    if retention is not None:
        retained_until = now + timedelta(hours=retention)
        if expires_at is None or expires_at > retained_until:
            expires_at = retained_until

    try:
        await reserve_storage(db, user.id, size, now)
        file = File(
            user_id=user.id,
            original_name=filename,
            file_size=size,
            file_type=content_type or "application/octet-stream",
            storage_path=storage_path,
            folder_id=folder_id,
            download_limit=download_limit,
            expires_at=expires_at,
            created_at=now,
        )
        db.add(file)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("File uploaded id=%s user=%s size=%s", file.id, user.id, size)
    return file


async def delete_file(db: AsyncSession, user: User, file_id: str) -> str:
    """Delete the row and release its storage. Returns the object's storage path."""
    file = await get_owned_file(db, user, file_id)
    storage_path = file.storage_path
    await release_storage(db, user.id, file.file_size or 0)
    await db.delete(file)
    await db.commit()
    logger.info("File deleted id=%s user=%s", file_id, user.id)
    return storage_path


async def rename_file(db: AsyncSession, user: User, file_id: str, name: str) -> File:
    file = await get_owned_file(db, user, file_id)
    file.original_name = _clean_name(name, "File name")
    await db.commit()
    return file


async def move_file(db: AsyncSession, user: User, file_id: str, folder_id: str | None) -> File:
    file = await get_owned_file(db, user, file_id)
    if folder_id:
        await get_owned_folder(db, user, folder_id)
    file.folder_id = folder_id or None
    await db.commit()
    return file


async def toggle_file_public_status(db: AsyncSession, user: User, file_id: str, is_public: bool) -> File:
    file = await get_owned_file(db, user, file_id)
    file.is_public = is_public
    await db.commit()
    logger.info("File visibility changed id=%s public=%s", file_id, is_public)
    return file


async def toggle_file_lock_status(
    db: AsyncSession, user: User, file_id: str, is_locked: bool, password: str | None = None
) -> File:
    file = await get_owned_file(db, user, file_id)
    set_file_lock(file, is_locked, password)
    await db.commit()
    logger.info("File lock changed id=%s locked=%s", file_id, is_locked)
    return file


# -----------------------------
# Folders
# -----------------------------

async def create_folder(db: AsyncSession, user: User, name: str, parent_id: str | None = None) -> Folder:
    name = _clean_name(name, "Folder name")
    if parent_id:
        await get_owned_folder(db, user, parent_id)
    folder = Folder(user_id=user.id, name=name, parent_id=parent_id)
    db.add(folder)
    await db.commit()
    return folder


async def rename_folder(db: AsyncSession, user: User, folder_id: str, name: str) -> Folder:
    folder = await get_owned_folder(db, user, folder_id)
    folder.name = _clean_name(name, "Folder name")
    await db.commit()
    return folder


async def move_folder(db: AsyncSession, user: User, folder_id: str, parent_id: str | None) -> Folder:
    folder = await get_owned_folder(db, user, folder_id)
    if parent_id:
        # walk up from the new parent; meeting the folder itself means a cycle
        cursor = await get_owned_folder(db, user, parent_id)
        seen = set()
        while cursor is not None:
            if cursor.id == folder.id:
                raise ValidationError("A folder cannot be moved into itself or its subfolders")
            if cursor.id in seen:
                break
            seen.add(cursor.id)
            if not cursor.parent_id:
                break
            cursor = (await db.execute(select(Folder).where(Folder.id == cursor.parent_id))).scalars().first()
    folder.parent_id = parent_id or None
    await db.commit()
    return folder


async def delete_folder(db: AsyncSession, user: User, folder_id: str) -> None:
    """Remove the folder; its files and subfolders move to the root."""
    folder = await get_owned_folder(db, user, folder_id)
    await db.execute(
        update(File)
        .where(File.folder_id == folder.id)
        .values(folder_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Folder)
        .where(Folder.parent_id == folder.id)
        .values(parent_id=None)
        .execution_options(synchronize_session=False)
    )
    link_ids = select(SharedLink.id).where(SharedLink.folder_id == folder.id)
    await db.execute(
        update(DownloadLog)
        .where(DownloadLog.shared_link_id.in_(link_ids))
        .values(shared_link_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(folder)
    await db.commit()
    logger.info("Folder deleted id=%s user=%s", folder_id, user.id)


async def list_folder(db: AsyncSession, user: User, folder_id: str | None = None) -> tuple[list[Folder], list[File]]:
    if folder_id:
        await get_owned_folder(db, user, folder_id)
    folder_cond = Folder.parent_id == folder_id if folder_id else Folder.parent_id.is_(None)
    file_cond = File.folder_id == folder_id if folder_id else File.folder_id.is_(None)

    folders = (
        await db.execute(
            select(Folder).where(Folder.user_id == user.id, folder_cond).order_by(Folder.name.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    files = (
        await db.execute(
            select(File).where(File.user_id == user.id, file_cond).order_by(File.original_name.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    return list(folders), list(files)
