from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class FileShareCreate(BaseModel):
    file_id: str
    link_type: str = "direct"
    expires_at: datetime | None = None
    download_limit: int | None = Field(None, ge=1)
    password: str | None = None
    recipient_email: EmailStr | None = None
    message: str | None = None

class FolderShareCreate(BaseModel):
    folder_id: str
    link_type: str = "code"
    expires_at: datetime | None = None
    password: str | None = None

class ShareLinkUpdate(BaseModel):
    is_active: bool | None = None
    expires_at: datetime | None = None
    download_limit: int | None = Field(None, ge=1)
    password: str | None = None
    clear_password: bool = False

class ShareResponse(BaseModel):
    link_id: str
    share_url: str
    download_url: str
    code_url: str | None = None
    token: str
    share_code: str | None = None
    expires_at: datetime | None = None

class ShareLinkInfo(BaseModel):
    id: str
    file_id: str | None = None
    folder_id: str | None = None
    share_token: str
    share_code: str | None = None
    link_type: str
    recipient_email: str | None = None
    download_limit: int | None = None
    download_count: int
    expires_at: datetime | None = None
    is_active: bool
    created_at: datetime
    has_password: bool = False

    class Config:
        from_attributes = True

class PasswordPayload(BaseModel):
    password: str

class SharePasswordCheck(BaseModel):
    token: str
    password: str | None = None

class QuotaCheck(BaseModel):
    file_size: int = Field(..., ge=0)

class FileAccessCheck(BaseModel):
    file_id: str
    password: str | None = None
    share_code: str | None = None
    share_token: str | None = None

class AccessResponse(BaseModel):
    can_access: bool
    reason: str
