import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from skieshare.core.database import Base


class File(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    original_name = Column(String, index=True, nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    file_type = Column(String, nullable=True)
    storage_path = Column(String, nullable=False)
    folder_id = Column(String(36), ForeignKey("folders.id"), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String, nullable=True)
    share_code = Column(String(16), unique=True, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    download_limit = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    share_links = relationship("SharedLink", back_populates="file", cascade="all, delete-orphan")
    download_logs = relationship("DownloadLog", cascade="all, delete-orphan")
    team_shares = relationship("TeamFileShare", cascade="all, delete-orphan")
