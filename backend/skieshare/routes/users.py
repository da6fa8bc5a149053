from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.database import get_db
from skieshare.core.security import get_current_user
from skieshare.models.user import User
from skieshare.schemas.user import ProfileResponse, UserResponse
from skieshare.services.quota import get_profile

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user

@router.get("/me/profile", response_model=ProfileResponse)
async def read_my_profile(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    profile = await get_profile(db, current_user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile
