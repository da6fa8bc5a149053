from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class TeamCreate(BaseModel):
    name: str

class TeamInfo(BaseModel):
    id: str
    name: str
    admin_id: str
    created_at: datetime

    class Config:
        from_attributes = True

class MemberAdd(BaseModel):
    email: EmailStr
    role: str = "member"

class MemberRoleUpdate(BaseModel):
    role: str
    can_view: bool | None = None
    can_edit: bool | None = None
    can_share: bool | None = None
    can_manage_members: bool | None = None

class MemberPermissionsUpdate(BaseModel):
    can_view: bool | None = None
    can_edit: bool | None = None
    can_share: bool | None = None
    can_manage_members: bool | None = None

class InviteCreate(BaseModel):
    email: EmailStr
    role: str = "member"

class InviteInfo(BaseModel):
    id: str
    team_id: str
    email: str
    role: str
    status: str
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class TeamFileShareCreate(BaseModel):
    file_id: str
    space_id: str | None = None

class TeamFileLock(BaseModel):
    is_locked: bool
    password: str | None = None

class SpaceCreate(BaseModel):
    name: str
    description: str | None = None
    parent_space_id: str | None = None

class SpaceArchive(BaseModel):
    archived: bool = True

class SpaceInfo(BaseModel):
    id: str
    team_id: str
    parent_space_id: str | None = None
    name: str
    description: str | None = None
    is_archived: bool
    created_at: datetime

    class Config:
        from_attributes = True

class PolicyUpdate(BaseModel):
    allow_external_sharing: bool | None = None
    require_password_for_shares: bool | None = None
    require_2fa: bool | None = None
    default_share_expiry_days: int | None = Field(None, ge=0)
    max_file_size_mb: int | None = Field(None, ge=0)
    retention_days: int | None = Field(None, ge=0)
    auto_join_domain: str | None = None

class PolicyInfo(BaseModel):
    team_id: str
    allow_external_sharing: bool
    require_password_for_shares: bool
    require_2fa: bool
    default_share_expiry_days: int | None = None
    max_file_size_mb: int | None = None
    retention_days: int | None = None
    auto_join_domain: str | None = None

    class Config:
        from_attributes = True

class AuditEventCreate(BaseModel):
    action: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict | None = None

class AuditEventInfo(BaseModel):
    id: str
    team_id: str
    user_id: str | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    details: dict | None = None
    created_at: datetime

    class Config:
        from_attributes = True
