import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from skieshare.core.database import Base

INVITE_STATUSES = ("pending", "accepted", "expired", "revoked")


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("TeamMember", cascade="all, delete-orphan")
    invites = relationship("TeamInvite", cascade="all, delete-orphan")
    file_shares = relationship("TeamFileShare", cascade="all, delete-orphan")
    spaces = relationship("Space", cascade="all, delete-orphan")
    policy = relationship("TeamPolicy", uselist=False, cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default="member")
    can_view = Column(Boolean, nullable=False, default=True)
    can_edit = Column(Boolean, nullable=False, default=False)
    can_share = Column(Boolean, nullable=False, default=False)
    can_manage_members = Column(Boolean, nullable=False, default=False)
    added_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow)


class TeamInvite(Base):
    __tablename__ = "team_invites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    role = Column(String(16), nullable=False, default="member")
    invited_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    invite_token = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class TeamFileShare(Base):
    __tablename__ = "team_file_shares"
    __table_args__ = (UniqueConstraint("team_id", "file_id", name="uq_team_file_shares_team_file"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    file_id = Column(String(36), ForeignKey("files.id"), nullable=False, index=True)
    space_id = Column(String(36), ForeignKey("spaces.id"), nullable=True)
    shared_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    shared_at = Column(DateTime, default=datetime.utcnow)


class Space(Base):
    __tablename__ = "spaces"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    parent_space_id = Column(String(36), ForeignKey("spaces.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class TeamPolicy(Base):
    __tablename__ = "team_policies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, unique=True)
    allow_external_sharing = Column(Boolean, nullable=False, default=True)
    require_password_for_shares = Column(Boolean, nullable=False, default=False)
    require_2fa = Column(Boolean, nullable=False, default=False)
    default_share_expiry_days = Column(Integer, nullable=True)
    max_file_size_mb = Column(Integer, nullable=True)
    retention_days = Column(Integer, nullable=True)
    auto_join_domain = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
