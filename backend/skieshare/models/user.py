import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from skieshare.core.config import settings
from skieshare.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    is_active = Column(Boolean, default=True)

    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Profile(Base):
    """Per-user storage accounting and subscription state."""

    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    storage_used = Column(BigInteger, nullable=False, default=0)
    # NULL means unlimited
    storage_limit = Column(BigInteger, nullable=True, default=settings.DEFAULT_STORAGE_LIMIT)
    subscription_tier = Column(String(16), nullable=False, default="free")
    subscription_status = Column(String(32), nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)
    daily_upload_count = Column(Integer, nullable=False, default=0)
    daily_upload_limit = Column(Integer, nullable=True, default=settings.DEFAULT_DAILY_UPLOAD_LIMIT)
    last_upload_reset = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="profile")
