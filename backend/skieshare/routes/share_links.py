from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.database import get_db
from skieshare.core.security import get_current_user, get_password_hash
from skieshare.models.user import User
from skieshare.schemas.share import (
    FileShareCreate,
    FolderShareCreate,
    ShareLinkInfo,
    ShareLinkUpdate,
    ShareResponse,
)
from skieshare.services import sharing
from skieshare.services.files import get_owned_file
from skieshare.services.sharing import ShareResult
from skieshare.utils.email import send_share_email
from skieshare.utils.urls import share_urls

logger = logging.getLogger("skieshare")

router = APIRouter(prefix="/share-links", tags=["Share Links"])


def _response(request: Request, result: ShareResult) -> ShareResponse:
    return ShareResponse(
        link_id=result.link_id,
        token=result.share_token,
        share_code=result.share_code,
        expires_at=result.expires_at,
        **share_urls(request, result.share_token, result.share_code),
    )

@router.post("/file", response_model=ShareResponse)
async def create_file_share_link(
    request: Request,
    payload: FileShareCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await sharing.create_file_share(
        db,
        current_user,
        payload.file_id,
        link_type=payload.link_type,
        expires_at=payload.expires_at,
        download_limit=payload.download_limit,
        password_hash=get_password_hash(payload.password) if payload.password else None,
        recipient_email=payload.recipient_email,
        message=payload.message,
    )
    resp = _response(request, result)

    if payload.link_type == "email":
        file = await get_owned_file(db, current_user, payload.file_id)
        await send_share_email(
            payload.recipient_email,
            current_user.email,
            file.original_name,
            resp.share_url,
            message=payload.message,
            expires_at=result.expires_at,
        )
    return resp


@router.post("/folder", response_model=ShareResponse)
async def create_folder_share_link(
    request: Request,
    payload: FolderShareCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await sharing.create_folder_share(
        db,
        current_user,
        payload.folder_id,
        link_type=payload.link_type,
        expires_at=payload.expires_at,
        password_hash=get_password_hash(payload.password) if payload.password else None,
    )
    return _response(request, result)


@router.get("", response_model=list[ShareLinkInfo])
async def list_share_links(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    links = await sharing.list_shared_links(db, current_user)
    return [
        ShareLinkInfo.model_validate(link).model_copy(update={"has_password": bool(link.password_hash)})
        for link in links
    ]


@router.patch("/{link_id}")
async def update_share_link(
    link_id: str,
    payload: ShareLinkUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ok = await sharing.update_shared_link_settings(
        db,
        current_user,
        link_id,
        is_active=payload.is_active,
        expires_at=payload.expires_at,
        download_limit=payload.download_limit,
        password_hash=get_password_hash(payload.password) if payload.password else None,
        clear_password=payload.clear_password,
    )
    return {"success": ok, "id": link_id}


@router.delete("/{link_id}")
async def delete_share_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await sharing.delete_shared_link(db, current_user, link_id)
    return {"status": "ok", "id": link_id}
