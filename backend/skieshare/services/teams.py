"""Team roles, permissions, invites, spaces, policies and team file access.

Roles are ranked (``readonly < guest < member < admin < owner``) and the
team's ``admin_id`` is always treated as owner. Permission flags are stored on
the membership row and can be overridden per member, so operations check the
stored flags; admins and the owner bypass them.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import IntEnum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.config import settings
from skieshare.core.errors import NotAuthorized, NotFound, PolicyViolation, ValidationError
from skieshare.models import (
    File,
    Space,
    Team,
    TeamFileShare,
    TeamInvite,
    TeamMember,
    TeamPolicy,
    User,
)
from skieshare.services import audit
from skieshare.services.files import set_file_lock
from skieshare.services.sharing import record_download
from skieshare.utils.dates import utcnow

logger = logging.getLogger("skieshare")


class Role(IntEnum):
    READONLY = 0
    GUEST = 1
    MEMBER = 2
    ADMIN = 3
    OWNER = 4

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValidationError(f"Unknown role: {value}")

    @property
    def label(self) -> str:
        return self.name.lower()


ASSIGNABLE_ROLES = (Role.ADMIN, Role.MEMBER, Role.GUEST, Role.READONLY)


@dataclass
class Permissions:
    can_view: bool = False
    can_edit: bool = False
    can_share: bool = False
    can_manage_members: bool = False

    @classmethod
    def for_role(cls, role: Role) -> "Permissions":
        if role >= Role.ADMIN:
            return cls(True, True, True, True)
        if role == Role.MEMBER:
            return cls(True, True, True, False)
        if role == Role.GUEST:
            return cls(True, False, True, False)
        return cls(True, False, False, False)

    @classmethod
    def from_member(cls, member: TeamMember) -> "Permissions":
        return cls(
            can_view=bool(member.can_view),
            can_edit=bool(member.can_edit),
            can_share=bool(member.can_share),
            can_manage_members=bool(member.can_manage_members),
        )

    def apply(self, member: TeamMember) -> None:
        for key, value in asdict(self).items():
            setattr(member, key, value)


# action -> permission flag a non-admin member needs
TEAM_FILE_ACTIONS = {
    "download": "can_view",
    "lock": "can_edit",
    "unlock": "can_edit",
    "remove": "can_share",
}


# -----------------------------
# Lookups and predicates
# -----------------------------

async def get_team(db: AsyncSession, team_id: str) -> Team:
    res = await db.execute(select(Team).where(Team.id == team_id))
    team = res.scalars().first()
    if not team:
        raise NotFound("Team not found")
    return team


async def get_membership(db: AsyncSession, team_id: str, user_id: str) -> TeamMember | None:
    res = await db.execute(
        select(TeamMember)
        .where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return res.scalars().first()


async def effective_role(db: AsyncSession, team_id: str, user_id: str) -> Role | None:
    admin_id = (await db.execute(select(Team.admin_id).where(Team.id == team_id))).scalar()
    if admin_id is None:
        return None
    if admin_id == user_id:
        return Role.OWNER
    member = await get_membership(db, team_id, user_id)
    if member is None:
        return None
    return Role.parse(member.role)


async def effective_permissions(db: AsyncSession, team_id: str, user_id: str) -> Permissions:
    role = await effective_role(db, team_id, user_id)
    if role is None:
        return Permissions()
    if role >= Role.ADMIN:
        return Permissions.for_role(role)
    return Permissions.from_member(await get_membership(db, team_id, user_id))


async def user_is_team_member(db: AsyncSession, team_id: str, user_id: str) -> bool:
    return await effective_role(db, team_id, user_id) is not None


async def user_is_team_admin(db: AsyncSession, team_id: str, user_id: str) -> bool:
    role = await effective_role(db, team_id, user_id)
    return role is not None and role >= Role.ADMIN


async def user_has_team_role(db: AsyncSession, team_id: str, user_id: str, required) -> bool:
    role = await effective_role(db, team_id, user_id)
    return role is not None and role >= Role.parse(required)


async def _require_member(db: AsyncSession, team_id: str, user: User) -> Role:
    await get_team(db, team_id)
    role = await effective_role(db, team_id, user.id)
    if role is None:
        raise NotAuthorized("You are not a member of this team")
    return role


async def _require_admin(db: AsyncSession, team_id: str, user: User) -> Role:
    role = await _require_member(db, team_id, user)
    if role < Role.ADMIN:
        raise NotAuthorized("Team admin rights required")
    return role


async def _require_permission(db: AsyncSession, team_id: str, user: User, flag: str) -> Role:
    role = await _require_member(db, team_id, user)
    if role >= Role.ADMIN:
        return role
    perms = await effective_permissions(db, team_id, user.id)
    if not getattr(perms, flag):
        raise NotAuthorized(f"Missing team permission: {flag}")
    return role


# -----------------------------
# Teams and members
# -----------------------------

async def create_team(db: AsyncSession, user: User, name: str) -> Team:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required")
    team = Team(admin_id=user.id, name=name)
    db.add(team)
    await db.flush()
    owner = TeamMember(team_id=team.id, user_id=user.id, role=Role.OWNER.label, added_by=user.id)
    Permissions.for_role(Role.OWNER).apply(owner)
    db.add(owner)
    db.add(TeamPolicy(team_id=team.id))
    await db.commit()
    logger.info("Team created team=%s admin=%s", team.id, user.id)
    await audit.log_audit_event(team.id, user.id, "team_created", "team", team.id, {"name": name})
    return team


async def rename_team(db: AsyncSession, user: User, team_id: str, name: str) -> Team:
    await _require_admin(db, team_id, user)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required")
    team = await get_team(db, team_id)
    team.name = name
    await db.commit()
    await audit.log_audit_event(team.id, user.id, "team_renamed", "team", team.id, {"name": name})
    return team


async def delete_team(db: AsyncSession, user: User, team_id: str) -> None:
    team = await get_team(db, team_id)
    if team.admin_id != user.id:
        raise NotAuthorized("Only the team owner can delete the team")
    await db.delete(team)
    await db.commit()
    logger.info("Team deleted team=%s by=%s", team_id, user.id)


async def _user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalars().first()


def _assignable(role) -> Role:
    role = Role.parse(role)
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError("The owner role cannot be assigned")
    return role


async def add_team_member(db: AsyncSession, actor: User, team_id: str, email: str, role="member") -> TeamMember:
    actor_role = await _require_permission(db, team_id, actor, "can_manage_members")
    role = _assignable(role)
    if role >= Role.ADMIN and actor_role < Role.ADMIN:
        raise NotAuthorized("Only admins can grant the admin role")

    target = await _user_by_email(db, email)
    if target is None:
        raise NotFound("No registered user found with this email")
    if await user_is_team_member(db, team_id, target.id):
        raise PolicyViolation("User is already a member of this team", reason="already_member")

    member = TeamMember(team_id=team_id, user_id=target.id, role=role.label, added_by=actor.id)
    Permissions.for_role(role).apply(member)
    db.add(member)
    await db.commit()
    await audit.log_audit_event(team_id, actor.id, "member_added", "team_member", member.id,
                                {"user_id": target.id, "role": role.label})
    return member


async def _get_member_row(db: AsyncSession, team: Team, user_id: str) -> TeamMember:
    member = await get_membership(db, team.id, user_id)
    if member is None:
        raise NotFound("Member not found")
    return member


async def update_member_role(
    db: AsyncSession,
    actor: User,
    team_id: str,
    user_id: str,
    role,
    permissions: Permissions | None = None,
) -> TeamMember:
    """Change a member's role. Flags follow the role unless ``permissions`` is given."""
    await _require_admin(db, team_id, actor)
    team = await get_team(db, team_id)
    if user_id == team.admin_id:
        raise PolicyViolation("The team owner's role cannot be changed", reason="owner_immutable")
    role = _assignable(role)
    member = await _get_member_row(db, team, user_id)
    previous = member.role
    member.role = role.label
    (permissions or Permissions.for_role(role)).apply(member)
    await db.commit()
    await audit.log_audit_event(team_id, actor.id, "member_role_updated", "team_member", member.id,
                                {"user_id": user_id, "from": previous, "to": role.label})
    return member


async def update_member_permissions(
    db: AsyncSession,
    actor: User,
    team_id: str,
    user_id: str,
    can_view: bool | None = None,
    can_edit: bool | None = None,
    can_share: bool | None = None,
    can_manage_members: bool | None = None,
) -> TeamMember:
    await _require_admin(db, team_id, actor)
    team = await get_team(db, team_id)
    if user_id == team.admin_id:
        raise PolicyViolation("The team owner's permissions cannot be changed", reason="owner_immutable")
    member = await _get_member_row(db, team, user_id)
    changes = {
        key: value
        for key, value in dict(
            can_view=can_view, can_edit=can_edit, can_share=can_share, can_manage_members=can_manage_members
        ).items()
        if value is not None
    }
    for key, value in changes.items():
        setattr(member, key, value)
    await db.commit()
    await audit.log_audit_event(team_id, actor.id, "permissions_updated", "team_member", member.id,
                                {"user_id": user_id, **changes})
    return member


async def remove_team_member(db: AsyncSession, actor: User, team_id: str, user_id: str) -> None:
    team = await get_team(db, team_id)
    if user_id == team.admin_id:
        raise PolicyViolation("The team owner cannot be removed", reason="cannot_remove_owner")

    member = await _get_member_row(db, team, user_id)
    if actor.id != user_id:
        actor_role = await _require_permission(db, team_id, actor, "can_manage_members")
        if Role.parse(member.role) >= Role.ADMIN and actor_role < Role.ADMIN:
            raise NotAuthorized("Only admins can remove other admins")

    await db.delete(member)
    await db.commit()
    action = "member_left" if actor.id == user_id else "member_removed"
    await audit.log_audit_event(team_id, actor.id, action, "team_member", member.id, {"user_id": user_id})


# -----------------------------
# Invites
# -----------------------------

async def send_team_invite(
    db: AsyncSession, actor: User, team_id: str, email: str, role="member", now: datetime | None = None
) -> TeamInvite:
    now = now or utcnow()
    actor_role = await _require_permission(db, team_id, actor, "can_manage_members")
    role = _assignable(role)
    if role >= Role.ADMIN and actor_role < Role.ADMIN:
        raise NotAuthorized("Only admins can invite admins")
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")

    invite = TeamInvite(
        team_id=team_id,
        email=email,
        role=role.label,
        invited_by=actor.id,
        invite_token=secrets.token_hex(16),
        expires_at=now + timedelta(days=settings.INVITE_EXPIRE_DAYS),
        status="pending",
        created_at=now,
    )
    db.add(invite)
    await db.commit()
    await audit.log_audit_event(team_id, actor.id, "invite_sent", "team_invite", invite.id,
                                {"email": email, "role": role.label})
    return invite


async def list_team_invites(db: AsyncSession, actor: User, team_id: str) -> list[TeamInvite]:
    await _require_permission(db, team_id, actor, "can_manage_members")
    res = await db.execute(
        select(TeamInvite).where(TeamInvite.team_id == team_id).order_by(TeamInvite.created_at.desc())
    )
    return list(res.scalars().all())


async def revoke_team_invite(db: AsyncSession, actor: User, team_id: str, invite_id: str) -> TeamInvite:
    await _require_permission(db, team_id, actor, "can_manage_members")
    res = await db.execute(
        update(TeamInvite)
        .where(TeamInvite.id == invite_id, TeamInvite.team_id == team_id, TeamInvite.status == "pending")
        .values(status="revoked")
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise PolicyViolation("Only pending invites can be revoked", reason="invite_not_pending")
    await db.commit()
    invite = (
        await db.execute(
            select(TeamInvite).where(TeamInvite.id == invite_id).execution_options(populate_existing=True)
        )
    ).scalars().first()
    await audit.log_audit_event(team_id, actor.id, "invite_revoked", "team_invite", invite_id,
                                {"email": invite.email})
    return invite


async def accept_team_invite(db: AsyncSession, token: str, user_id: str, now: datetime | None = None) -> dict:
    """Accept an invite once. Returns a status dict; failures have no side effects.

    The invite row flips from pending with a conditional UPDATE, so a double
    submission can only ever create one membership.
    """
    now = now or utcnow()
    res = await db.execute(
        select(TeamInvite).where(TeamInvite.invite_token == token).execution_options(populate_existing=True)
    )
    invite = res.scalars().first()
    if invite is None:
        return {"success": False, "error": "invalid_token"}
    if invite.status != "pending":
        return {"success": False, "error": "invite_not_pending", "status": invite.status}

    user = (await db.execute(select(User).where(User.id == user_id))).scalars().first()
    if user is None:
        return {"success": False, "error": "user_not_found"}

    if invite.expires_at <= now:
        await db.execute(
            update(TeamInvite)
            .where(TeamInvite.id == invite.id, TeamInvite.status == "pending")
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return {"success": False, "error": "invite_expired"}

    if user.email.lower() != invite.email.lower():
        return {"success": False, "error": "email_mismatch"}

    team_id, role = invite.team_id, Role.parse(invite.role)
    try:
        flipped = await db.execute(
            update(TeamInvite)
            .where(TeamInvite.id == invite.id, TeamInvite.status == "pending")
            .values(status="accepted", accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            await db.rollback()
            return {"success": False, "error": "invite_not_pending"}

        already_member = await user_is_team_member(db, team_id, user_id)
        if not already_member:
            member = TeamMember(team_id=team_id, user_id=user_id, role=role.label,
                                added_by=invite.invited_by, joined_at=now)
            Permissions.for_role(role).apply(member)
            db.add(member)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return {"success": False, "error": "already_member"}

    await audit.log_audit_event(team_id, user_id, "invite_accepted", "team_invite", invite.id,
                                {"role": role.label})
    return {"success": True, "team_id": team_id, "role": role.label, "already_member": already_member}


async def expire_stale_invites(db: AsyncSession, now: datetime | None = None) -> int:
    now = now or utcnow()
    res = await db.execute(
        update(TeamInvite)
        .where(TeamInvite.status == "pending", TeamInvite.expires_at <= now)
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount or 0


# -----------------------------
# Team files
# -----------------------------

async def _get_space(db: AsyncSession, team_id: str, space_id: str) -> Space:
    res = await db.execute(select(Space).where(Space.id == space_id, Space.team_id == team_id))
    space = res.scalars().first()
    if not space:
        raise NotFound("Space not found")
    return space


async def get_team_policy(db: AsyncSession, team_id: str) -> TeamPolicy:
    res = await db.execute(select(TeamPolicy).where(TeamPolicy.team_id == team_id))
    policy = res.scalars().first()
    if policy is None:
        policy = TeamPolicy(team_id=team_id)
        db.add(policy)
        await db.commit()
    return policy


async def share_file_to_team(
    db: AsyncSession, user: User, team_id: str, file_id: str, space_id: str | None = None
) -> TeamFileShare:
    await _require_permission(db, team_id, user, "can_share")
    file = (await db.execute(select(File).where(File.id == file_id))).scalars().first()
    if not file:
        raise NotFound("File not found")
    if file.user_id != user.id:
        raise NotAuthorized("Only the owner can share this file")
    if space_id:
        space = await _get_space(db, team_id, space_id)
        if space.is_archived:
            raise PolicyViolation("Space is archived", reason="space_archived")

    policy = await get_team_policy(db, team_id)
    if policy.max_file_size_mb and file.file_size > policy.max_file_size_mb * 1024 * 1024:
        raise PolicyViolation("File exceeds the team's size limit", reason="file_too_large")

    share = TeamFileShare(team_id=team_id, file_id=file.id, space_id=space_id, shared_by=user.id)
    db.add(share)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise PolicyViolation("File is already shared with this team", reason="already_shared")
    await audit.log_audit_event(team_id, user.id, "file_shared", "file", file.id,
                                {"file_name": file.original_name, "space_id": space_id})
    return share


async def authorize_team_file_action(
    db: AsyncSession, team_id: str, file_id: str, user_id: str, action: str
) -> tuple[TeamFileShare, File]:
    """The file must be shared into the team and the member must hold the action's flag.

    Team admins and the owner skip the flag check, as does the file's owner.
    """
    flag = TEAM_FILE_ACTIONS.get(action)
    if flag is None:
        raise ValidationError(f"Unknown team file action: {action}")

    res = await db.execute(
        select(TeamFileShare).where(TeamFileShare.team_id == team_id, TeamFileShare.file_id == file_id)
    )
    share = res.scalars().first()
    if share is None:
        raise NotFound("File is not shared with this team")
    file = (
        await db.execute(select(File).where(File.id == file_id).execution_options(populate_existing=True))
    ).scalars().first()
    if file is None:
        raise NotFound("File not found")

    role = await effective_role(db, team_id, user_id)
    if role is None:
        raise NotAuthorized("You are not a member of this team")
    if role >= Role.ADMIN or file.user_id == user_id:
        return share, file
    perms = await effective_permissions(db, team_id, user_id)
    if not getattr(perms, flag):
        raise NotAuthorized(f"Your role does not allow '{action}' on team files", reason=f"missing_{flag}")
    return share, file


async def toggle_team_file_lock(
    db: AsyncSession, user: User, team_id: str, file_id: str, is_locked: bool, password: str | None = None
) -> bool:
    _, file = await authorize_team_file_action(db, team_id, file_id, user.id, "lock" if is_locked else "unlock")
    set_file_lock(file, is_locked, password)
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "file_locked" if is_locked else "file_unlocked", "file", file.id)
    return file.is_locked


async def remove_team_file(db: AsyncSession, user: User, team_id: str, file_id: str) -> None:
    share, file = await authorize_team_file_action(db, team_id, file_id, user.id, "remove")
    await db.delete(share)
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "file_removed", "file", file.id,
                                {"file_name": file.original_name})


async def download_team_file(
    db: AsyncSession, user: User, team_id: str, file_id: str, ip: str | None = None, user_agent: str | None = None
) -> File:
    _, file = await authorize_team_file_action(db, team_id, file_id, user.id, "download")
    await record_download(db, file.id, method="team", ip=ip, user_agent=user_agent,
                          enforce_limit=file.user_id != user.id)
    return file


# -----------------------------
# Spaces
# -----------------------------

async def create_space(
    db: AsyncSession,
    user: User,
    team_id: str,
    name: str,
    description: str | None = None,
    parent_space_id: str | None = None,
) -> Space:
    await _require_permission(db, team_id, user, "can_edit")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Space name is required")
    if parent_space_id:
        parent = await _get_space(db, team_id, parent_space_id)
        if parent.is_archived:
            raise PolicyViolation("Parent space is archived", reason="space_archived")
    space = Space(team_id=team_id, name=name, description=description,
                  parent_space_id=parent_space_id, created_by=user.id)
    db.add(space)
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "space_created", "space", space.id, {"name": name})
    return space


async def get_team_spaces(db: AsyncSession, user: User, team_id: str, include_archived: bool = False) -> list[Space]:
    await _require_member(db, team_id, user)
    stmt = select(Space).where(Space.team_id == team_id)
    if not include_archived:
        stmt = stmt.where(Space.is_archived.is_(False))
    res = await db.execute(stmt.order_by(Space.name.asc()).execution_options(populate_existing=True))
    return list(res.scalars().all())


async def archive_space(db: AsyncSession, user: User, team_id: str, space_id: str, archived: bool = True) -> Space:
    await _require_admin(db, team_id, user)
    space = await _get_space(db, team_id, space_id)
    space.is_archived = archived
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "space_archived" if archived else "space_restored",
                                "space", space.id)
    return space


async def delete_space(db: AsyncSession, user: User, team_id: str, space_id: str) -> None:
    await _require_admin(db, team_id, user)
    space = await _get_space(db, team_id, space_id)
    # children move up a level, team files stay shared without a space
    await db.execute(
        update(Space)
        .where(Space.parent_space_id == space.id)
        .values(parent_space_id=space.parent_space_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(TeamFileShare)
        .where(TeamFileShare.space_id == space.id)
        .values(space_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(space)
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "space_deleted", "space", space_id, {"name": space.name})


# -----------------------------
# Policies
# -----------------------------

POLICY_FIELDS = (
    "allow_external_sharing",
    "require_password_for_shares",
    "require_2fa",
    "default_share_expiry_days",
    "max_file_size_mb",
    "retention_days",
    "auto_join_domain",
)


async def read_team_policy(db: AsyncSession, user: User, team_id: str) -> TeamPolicy:
    await _require_member(db, team_id, user)
    return await get_team_policy(db, team_id)


async def update_team_policy(db: AsyncSession, user: User, team_id: str, updates: dict) -> TeamPolicy:
    await _require_admin(db, team_id, user)
    unknown = set(updates) - set(POLICY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown policy fields: {', '.join(sorted(unknown))}")
    for key in ("default_share_expiry_days", "max_file_size_mb", "retention_days"):
        value = updates.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must not be negative")

    policy = await get_team_policy(db, team_id)
    for key, value in updates.items():
        setattr(policy, key, value)
    policy.updated_at = utcnow()
    await db.commit()
    await audit.log_audit_event(team_id, user.id, "policy_updated", "team_policy", policy.id, updates)
    return policy


# -----------------------------
# Read models
# -----------------------------

async def get_user_teams(db: AsyncSession, user_id: str) -> list[dict]:
    member_team_ids = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
    res = await db.execute(
        select(Team)
        .where((Team.admin_id == user_id) | Team.id.in_(member_team_ids))
        .order_by(Team.name.asc())
    )
    rows = []
    for team in res.scalars().all():
        role = await effective_role(db, team.id, user_id)
        perms = await effective_permissions(db, team.id, user_id)
        rows.append({
            "team_id": team.id,
            "team_name": team.name,
            "is_admin": role >= Role.ADMIN,
            "role": role.label,
            "permissions": asdict(perms),
        })
    return rows


async def get_team_members(db: AsyncSession, user: User, team_id: str) -> list[dict]:
    await _require_member(db, team_id, user)
    team = await get_team(db, team_id)
    res = await db.execute(
        select(TeamMember, User.email)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at.asc())
    )
    members = []
    for member, email in res.all():
        role = Role.OWNER if member.user_id == team.admin_id else Role.parse(member.role)
        members.append({
            "id": member.id,
            "user_id": member.user_id,
            "email": email,
            "role": role.label,
            "permissions": asdict(Permissions.from_member(member)),
            "joined_at": member.joined_at,
        })
    return members


async def get_my_team_files(db: AsyncSession, user_id: str) -> list[dict]:
    teams = {row["team_id"]: row for row in await get_user_teams(db, user_id)}
    if not teams:
        return []
    res = await db.execute(
        select(TeamFileShare, File, Team.name, User.email)
        .join(File, File.id == TeamFileShare.file_id)
        .join(Team, Team.id == TeamFileShare.team_id)
        .join(User, User.id == TeamFileShare.shared_by)
        .where(TeamFileShare.team_id.in_(list(teams)))
        .order_by(TeamFileShare.shared_at.desc())
    )
    rows = []
    for share, file, team_name, sharer_email in res.all():
        team = teams[share.team_id]
        is_admin = team["is_admin"]
        perms = team["permissions"]
        rows.append({
            "file_id": file.id,
            "file_name": file.original_name,
            "file_size": file.file_size,
            "file_type": file.file_type,
            "created_at": file.created_at,
            "is_locked": file.is_locked,
            "download_count": file.download_count,
            "team_id": share.team_id,
            "team_name": team_name,
            "space_id": share.space_id,
            "shared_by": share.shared_by,
            "shared_at": share.shared_at,
            "sharer_email": sharer_email,
            "can_download": is_admin or perms["can_view"],
            "can_edit": is_admin or perms["can_edit"],
            "is_team_admin": is_admin,
        })
    return rows


async def get_team_audit_log(db: AsyncSession, user: User, team_id: str, limit: int = 100):
    await _require_admin(db, team_id, user)
    return await audit.list_audit_events(db, team_id, limit)
