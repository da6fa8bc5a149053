from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.database import get_db
from skieshare.core.errors import ValidationError
from skieshare.core.security import get_current_user, get_optional_user
from skieshare.models.user import User
from skieshare.schemas.share import (
    AccessResponse,
    FileAccessCheck,
    PasswordPayload,
    QuotaCheck,
    SharePasswordCheck,
)
from skieshare.services.access import check_file_access
from skieshare.services.credentials import hash_password
from skieshare.services.quota import check_storage_quota
from skieshare.services.sharing import validate_share_password

router = APIRouter(prefix="/rpc", tags=["RPC"])


@router.post("/hash_password")
async def hash_password_rpc(payload: PasswordPayload, current_user: User = Depends(get_current_user)):
    try:
        return {"hash": hash_password(payload.password)}
    except ValueError as e:
        raise ValidationError(str(e))


@router.post("/validate_share_password")
async def validate_share_password_rpc(payload: SharePasswordCheck, db: AsyncSession = Depends(get_db)):
    return {"valid": await validate_share_password(db, payload.token, payload.password)}


@router.post("/check_storage_quota")
async def check_storage_quota_rpc(
    payload: QuotaCheck,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"allowed": await check_storage_quota(db, current_user.id, payload.file_size)}


@router.post("/check_file_access", response_model=AccessResponse)
async def check_file_access_rpc(
    payload: FileAccessCheck,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    decision = await check_file_access(
        db,
        payload.file_id,
        user_id=current_user.id if current_user else None,
        password=payload.password,
        share_code=payload.share_code,
        share_token=payload.share_token,
    )
    return decision.as_dict()
