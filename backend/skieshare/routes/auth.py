import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from skieshare.core.config import settings
from skieshare.core.database import get_db
from skieshare.core.security import create_access_token, get_password_hash, verify_password
from skieshare.models.user import Profile, User
from skieshare.schemas.user import Token, UserCreate

logger = logging.getLogger("skieshare")

router = APIRouter()


def _token_for(user: User) -> dict:
    access_token = create_access_token(
        data={"sub": user.email},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/register", response_model=Token)
async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
    email = user.email.lower()
    result = await db.execute(select(User).filter(User.email == email))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    db_user = User(
        email=email,
        display_name=user.display_name,
        hashed_password=get_password_hash(user.password),
    )
    db.add(db_user)
    await db.flush()
    db.add(Profile(id=db_user.id))
    await db.commit()
    logger.info("User registered id=%s", db_user.id)
    return _token_for(db_user)

@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).filter(User.email == form_data.username.lower()))
    user = result.scalars().first()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    return _token_for(user)
