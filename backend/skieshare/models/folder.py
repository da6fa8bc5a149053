import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from skieshare.core.database import Base


class Folder(Base):
    __tablename__ = "folders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    parent_id = Column(String(36), ForeignKey("folders.id"), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    share_code = Column(String(16), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    share_links = relationship("SharedLink", back_populates="folder", cascade="all, delete-orphan")
