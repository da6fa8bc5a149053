import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from skieshare.core.database import Base

LINK_TYPES = ("direct", "email", "code")


class SharedLink(Base):
    __tablename__ = "shared_links"
    __table_args__ = (
        CheckConstraint(
            "(file_id IS NULL) <> (folder_id IS NULL)",
            name="ck_shared_links_single_target",
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey("files.id"), nullable=True, index=True)
    folder_id = Column(String(36), ForeignKey("folders.id"), nullable=True, index=True)
    share_token = Column(String(64), unique=True, index=True, nullable=False)
    share_code = Column(String(16), unique=True, nullable=True)
    link_type = Column(String(16), nullable=False, default="direct")
    password_hash = Column(String, nullable=True)
    recipient_email = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    download_limit = Column(Integer, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    file = relationship("File", back_populates="share_links")
    folder = relationship("Folder", back_populates="share_links")
