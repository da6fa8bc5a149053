from datetime import datetime

from pydantic import BaseModel


class FileInfo(BaseModel):
    id: str
    original_name: str
    file_type: str | None
    file_size: int
    folder_id: str | None = None
    is_public: bool
    is_locked: bool
    share_code: str | None = None
    download_count: int
    download_limit: int | None = None
    created_at: datetime
    expires_at: datetime | None = None

    class Config:
        from_attributes = True

class UploadResponse(FileInfo):
    share_url: str | None = None
    token: str | None = None
    # set when create_share was asked for but the link was refused; the upload itself stands
    share_error: str | None = None

class FileListResponse(BaseModel):
    files: list[FileInfo]
    total: int
    skip: int
    limit: int

class FileUpdate(BaseModel):
    name: str | None = None
    folder_id: str | None = None
    move_to_root: bool = False

class FileLockRequest(BaseModel):
    is_locked: bool
    password: str | None = None

class FilePublicRequest(BaseModel):
    is_public: bool

class FolderCreate(BaseModel):
    name: str
    parent_id: str | None = None

class FolderUpdate(BaseModel):
    name: str | None = None
    parent_id: str | None = None
    move_to_root: bool = False

class FolderInfo(BaseModel):
    id: str
    name: str
    parent_id: str | None = None
    is_public: bool
    share_code: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class FolderListing(BaseModel):
    folder_id: str | None = None
    folders: list[FolderInfo]
    files: list[FileInfo]
