from datetime import datetime

from pydantic import BaseModel, EmailStr, constr


class UserCreate(BaseModel):
    email: EmailStr
    password: constr(min_length=8)
    display_name: str | None = None

class Token(BaseModel):
    access_token: str
    token_type: str

class UserResponse(BaseModel):
    id: str
    email: EmailStr
    display_name: str | None = None
    created_at: datetime
    is_active: bool

    class Config:
        from_attributes = True

class ProfileResponse(BaseModel):
    id: str
    storage_used: int
    storage_limit: int | None
    subscription_tier: str
    subscription_status: str | None = None
    daily_upload_count: int
    daily_upload_limit: int | None
    last_upload_reset: datetime | None = None

    class Config:
        from_attributes = True
