from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.database import get_db
from skieshare.core.security import get_current_user
from skieshare.models.user import User
from skieshare.services.analytics import get_download_analytics

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/downloads")
async def download_analytics(
    period: str = Query("1d", description="12h, 1d or 1m"),
    file_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await get_download_analytics(db, current_user, period, file_id)
