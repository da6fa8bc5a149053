from __future__ import annotations

import logging
import os
import tempfile
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, UploadFile
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core import minio_client as storage
from skieshare.core.database import get_db
from skieshare.core.errors import PolicyViolation, QuotaExceeded
from skieshare.core.security import get_current_user
from skieshare.models import File, User
from skieshare.schemas.file import (
    FileInfo,
    FileListResponse,
    FileLockRequest,
    FilePublicRequest,
    FileUpdate,
    FolderCreate,
    FolderInfo,
    FolderListing,
    FolderUpdate,
    UploadResponse,
)
from skieshare.services import files as file_service
from skieshare.services.quota import check_storage_quota
from skieshare.services.sharing import create_file_share
from skieshare.utils.urls import build_external_url

logger = logging.getLogger("skieshare")

router = APIRouter(tags=["Files"])

def _mojibake(s: str) -> str | None:
    try:
        b = s.encode("utf-8", errors="ignore")
        m = b.decode("latin1", errors="ignore")
        return m if m and m != s else None
    except Exception:
        return None

@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    request: Request,
    file: UploadFile,
    folder_id: str | None = Query(None),
    expires_at: datetime | None = Query(None),
    download_limit: int | None = Query(None, ge=1),
    create_share: bool = Query(False, description="Return share_url/token in UploadResponse"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    suffix = "_" + os.path.basename(file.filename) if file.filename else ""
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            tmp.write(chunk)
        temp_path = tmp.name

    filename = os.path.basename(file.filename or "") or "file.bin"
    file_size = os.path.getsize(temp_path)
    content_type = file.content_type or "application/octet-stream"
    object_name = f"{current_user.id}/{uuid.uuid4()}_{filename}"

    try:
        if not await check_storage_quota(db, current_user.id, file_size):
            raise QuotaExceeded("Storage limit exceeded", reason="quota_exceeded")
        await storage.upload_path(object_name, temp_path, content_type)
    finally:
        try:
            os.remove(temp_path)
        except OSError:
            logger.warning("Could not remove temp upload %s", temp_path)

    try:
        f = await file_service.upload_file(
            db,
            current_user,
            filename,
            content_type,
            file_size,
            object_name,
            folder_id=folder_id,
            expires_at=expires_at,
            download_limit=download_limit,
        )
    except Exception:
        try:
            await storage.remove_object(object_name)
        except Exception:
            logger.exception("MinIO remove_object failed for orphan %s", object_name)
        raise

    resp = UploadResponse.model_validate(f)
    if create_share:
        try:
            share = await create_file_share(db, current_user, f.id)
        except PolicyViolation as e:
            logger.info("Upload kept without share file=%s reason=%s", f.id, e.reason)
            resp.share_error = e.reason
        else:
            resp.share_url = build_external_url(request, f"/s/{share.share_token}")
            resp.token = share.share_token
    return resp


@router.delete("/files/{file_id}")
async def delete_file(
    file_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    storage_path = await file_service.delete_file(db, current_user, file_id)
    try:
        await storage.remove_object(storage_path)
    except Exception:
        logger.exception("MinIO remove_object failed for %s", storage_path)
    return {"status": "ok", "id": file_id}


@router.patch("/files/{file_id}", response_model=FileInfo)
async def update_file(
    file_id: str,
    payload: FileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    f = None
    if payload.name is not None:
        f = await file_service.rename_file(db, current_user, file_id, payload.name)
    if payload.folder_id is not None or payload.move_to_root:
        f = await file_service.move_file(db, current_user, file_id, None if payload.move_to_root else payload.folder_id)
    if f is None:
        f = await file_service.get_owned_file(db, current_user, file_id)
    return f


@router.post("/files/{file_id}/lock", response_model=FileInfo)
async def lock_file(
    file_id: str,
    payload: FileLockRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await file_service.toggle_file_lock_status(db, current_user, file_id, payload.is_locked, payload.password)


@router.post("/files/{file_id}/public", response_model=FileInfo)
async def set_file_public(
    file_id: str,
    payload: FilePublicRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await file_service.toggle_file_public_status(db, current_user, file_id, payload.is_public)


@router.get("/files", response_model=FileListResponse)
async def list_files(
    search: str | None = Query(None, description="Search by filename"),
    file_type: str | None = Query(None, description="Filter by extension (e.g., 'pdf')"),
    folder_id: str | None = Query(None, description="Only files directly inside this folder"),
    start_date: str | None = Query(None, description="Filter by created_at >= YYYY-MM-DD"),
    end_date: str | None = Query(None, description="Filter by created_at <= YYYY-MM-DD"),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    conditions = [File.user_id == current_user.id]
    if search and search.strip():
        needle = search.strip()
        mb = _mojibake(needle)
        like_exprs = [File.original_name.ilike(f"%{needle}%")]
        if mb:
            like_exprs.append(File.original_name.ilike(f"%{mb}%"))
        conditions.append(or_(*like_exprs))

    if file_type:
        ext = file_type.lower().lstrip(".")
        conditions.append(File.original_name.ilike(f"%.{ext}"))

    if folder_id:
        conditions.append(File.folder_id == folder_id)

    def _parse_date(s: str, end=False) -> datetime | None:
        try:
            s2 = (s or "").strip()
            if not s2:
                return None
            dt = datetime.fromisoformat(s2)
            if end and len(s2) == 10:
                return dt.replace(hour=23, minute=59, second=59, microsecond=999999)
            return dt
        except ValueError:
            return None

    if start_date:
        sd = _parse_date(start_date)
        if sd:
            conditions.append(File.created_at >= sd)
    if end_date:
        ed = _parse_date(end_date, end=True)
        if ed:
            conditions.append(File.created_at <= ed)

    where_clause = and_(*conditions)
    total = (await db.execute(select(func.count()).select_from(File).where(where_clause))).scalar_one()

    allowed = {
        "created_at": File.created_at,
        "name": File.original_name,
        "size": File.file_size,
        "downloads": File.download_count,
    }
    col = allowed.get(sort_by, File.created_at)
    query = (
        select(File)
        .where(where_clause)
        .order_by(col.asc() if order.lower() == "asc" else col.desc())
        .offset(skip)
        .limit(limit)
    )

    rows = (await db.execute(query)).scalars().all()
    files = [FileInfo.model_validate(r) for r in rows]
    return FileListResponse(files=files, total=total, skip=skip, limit=limit)


# -----------------------------
# Folders
# -----------------------------

@router.post("/folders", response_model=FolderInfo)
async def create_folder(
    payload: FolderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await file_service.create_folder(db, current_user, payload.name, payload.parent_id)


@router.get("/folders", response_model=FolderListing)
async def list_folder(
    folder_id: str | None = Query(None, description="Folder to list; the root when omitted"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    folders, files = await file_service.list_folder(db, current_user, folder_id)
    return FolderListing(
        folder_id=folder_id,
        folders=[FolderInfo.model_validate(f) for f in folders],
        files=[FileInfo.model_validate(f) for f in files],
    )


@router.patch("/folders/{folder_id}", response_model=FolderInfo)
async def update_folder(
    folder_id: str,
    payload: FolderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    folder = None
    if payload.name is not None:
        folder = await file_service.rename_folder(db, current_user, folder_id, payload.name)
    if payload.parent_id is not None or payload.move_to_root:
        parent_id = None if payload.move_to_root else payload.parent_id
        folder = await file_service.move_folder(db, current_user, folder_id, parent_id)
    if folder is None:
        folder = await file_service.get_owned_folder(db, current_user, folder_id)
    return folder


@router.delete("/folders/{folder_id}")
async def delete_folder(
    folder_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await file_service.delete_folder(db, current_user, folder_id)
    return {"status": "ok", "id": folder_id}
