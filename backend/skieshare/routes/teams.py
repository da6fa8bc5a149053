from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from skieshare.core.database import get_db
from skieshare.core.errors import NotAuthorized
from skieshare.core.security import get_current_user
from skieshare.models.user import User
from skieshare.routes.download import client_info, close_stored_object, open_stored_object, stream_file_response
from skieshare.schemas.team import (
    AuditEventCreate,
    AuditEventInfo,
    InviteCreate,
    InviteInfo,
    MemberAdd,
    MemberPermissionsUpdate,
    MemberRoleUpdate,
    PolicyInfo,
    PolicyUpdate,
    SpaceArchive,
    SpaceCreate,
    SpaceInfo,
    TeamCreate,
    TeamFileLock,
    TeamFileShareCreate,
    TeamInfo,
)
from skieshare.services import audit, teams
from skieshare.utils.email import send_team_invite_email
from skieshare.utils.urls import build_external_url

logger = logging.getLogger("skieshare")

router = APIRouter(prefix="/teams", tags=["Teams"])


@router.post("", response_model=TeamInfo)
async def create_team(payload: TeamCreate, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    return await teams.create_team(db, current_user, payload.name)


@router.get("")
async def list_my_teams(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await teams.get_user_teams(db, current_user.id)


@router.get("/files/mine")
async def my_team_files(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await teams.get_my_team_files(db, current_user.id)


@router.post("/invites/{token}/accept")
async def accept_invite(token: str, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    result = await teams.accept_team_invite(db, token, current_user.id)
    if not result["success"]:
        status = 404 if result["error"] == "invalid_token" else 409
        raise HTTPException(status_code=status, detail=result["error"])
    return result


@router.patch("/{team_id}", response_model=TeamInfo)
async def rename_team(team_id: str, payload: TeamCreate, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    return await teams.rename_team(db, current_user, team_id, payload.name)


@router.delete("/{team_id}")
async def delete_team(team_id: str, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    await teams.delete_team(db, current_user, team_id)
    return {"status": "ok", "id": team_id}


# -----------------------------
# Members
# -----------------------------

@router.get("/{team_id}/members")
async def list_members(team_id: str, db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(get_current_user)):
    return await teams.get_team_members(db, current_user, team_id)


@router.post("/{team_id}/members")
async def add_member(team_id: str, payload: MemberAdd, db: AsyncSession = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    member = await teams.add_team_member(db, current_user, team_id, payload.email, payload.role)
    return {"id": member.id, "user_id": member.user_id, "role": member.role}


@router.patch("/{team_id}/members/{user_id}/role")
async def change_member_role(team_id: str, user_id: str, payload: MemberRoleUpdate,
                             db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    flags = payload.model_dump(exclude={"role"}, exclude_none=True)
    permissions = None
    if flags:
        permissions = teams.Permissions.for_role(teams.Role.parse(payload.role))
        for key, value in flags.items():
            setattr(permissions, key, value)
    member = await teams.update_member_role(db, current_user, team_id, user_id, payload.role, permissions)
    return {"id": member.id, "user_id": member.user_id, "role": member.role}


@router.patch("/{team_id}/members/{user_id}/permissions")
async def change_member_permissions(team_id: str, user_id: str, payload: MemberPermissionsUpdate,
                                    db: AsyncSession = Depends(get_db),
                                    current_user: User = Depends(get_current_user)):
    member = await teams.update_member_permissions(db, current_user, team_id, user_id, **payload.model_dump())
    return {
        "id": member.id,
        "user_id": member.user_id,
        "role": member.role,
        "permissions": {
            "can_view": member.can_view,
            "can_edit": member.can_edit,
            "can_share": member.can_share,
            "can_manage_members": member.can_manage_members,
        },
    }


@router.delete("/{team_id}/members/{user_id}")
async def remove_member(team_id: str, user_id: str, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    await teams.remove_team_member(db, current_user, team_id, user_id)
    return {"status": "ok", "user_id": user_id}


# -----------------------------
# Invites
# -----------------------------

@router.post("/{team_id}/invites", response_model=InviteInfo)
async def invite_member(team_id: str, payload: InviteCreate, request: Request,
                        db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    invite = await teams.send_team_invite(db, current_user, team_id, payload.email, payload.role)
    team = await teams.get_team(db, team_id)
    accept_url = build_external_url(request, f"/teams/invites/{invite.invite_token}/accept")
    await send_team_invite_email(invite.email, team.name, current_user.email, accept_url)
    return invite


@router.get("/{team_id}/invites", response_model=list[InviteInfo])
async def list_invites(team_id: str, db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(get_current_user)):
    return await teams.list_team_invites(db, current_user, team_id)


@router.delete("/{team_id}/invites/{invite_id}", response_model=InviteInfo)
async def revoke_invite(team_id: str, invite_id: str, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    return await teams.revoke_team_invite(db, current_user, team_id, invite_id)


# -----------------------------
# Team files
# -----------------------------

@router.get("/{team_id}/files")
async def list_team_files(team_id: str, db: AsyncSession = Depends(get_db),
                          current_user: User = Depends(get_current_user)):
    if not await teams.user_is_team_member(db, team_id, current_user.id):
        raise NotAuthorized("You are not a member of this team")
    return [f for f in await teams.get_my_team_files(db, current_user.id) if f["team_id"] == team_id]


@router.post("/{team_id}/files")
async def share_file(team_id: str, payload: TeamFileShareCreate, db: AsyncSession = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    share = await teams.share_file_to_team(db, current_user, team_id, payload.file_id, payload.space_id)
    return {"id": share.id, "team_id": share.team_id, "file_id": share.file_id, "space_id": share.space_id}


@router.post("/{team_id}/files/{file_id}/lock")
async def lock_team_file(team_id: str, file_id: str, payload: TeamFileLock,
                         db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    locked = await teams.toggle_team_file_lock(db, current_user, team_id, file_id, payload.is_locked,
                                               payload.password)
    return {"file_id": file_id, "is_locked": locked}


@router.delete("/{team_id}/files/{file_id}")
async def remove_team_file(team_id: str, file_id: str, db: AsyncSession = Depends(get_db),
                           current_user: User = Depends(get_current_user)):
    await teams.remove_team_file(db, current_user, team_id, file_id)
    return {"status": "ok", "file_id": file_id}


@router.get("/{team_id}/files/{file_id}/download")
async def download_team_file(team_id: str, file_id: str, request: Request,
                             db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    ip, user_agent = client_info(request)
    _, file = await teams.authorize_team_file_action(db, team_id, file_id, current_user.id, "download")
    obj = await open_stored_object(file)
    try:
        file = await teams.download_team_file(db, current_user, team_id, file_id, ip=ip, user_agent=user_agent)
    except Exception:
        await close_stored_object(obj)
        raise
    return stream_file_response(request, file, obj)


# -----------------------------
# Spaces
# -----------------------------

@router.get("/{team_id}/spaces", response_model=list[SpaceInfo])
async def list_spaces(team_id: str, include_archived: bool = False, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    return await teams.get_team_spaces(db, current_user, team_id, include_archived)


@router.post("/{team_id}/spaces", response_model=SpaceInfo)
async def create_space(team_id: str, payload: SpaceCreate, db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(get_current_user)):
    return await teams.create_space(db, current_user, team_id, payload.name, payload.description,
                                    payload.parent_space_id)


@router.post("/{team_id}/spaces/{space_id}/archive", response_model=SpaceInfo)
async def archive_space(team_id: str, space_id: str, payload: SpaceArchive, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    return await teams.archive_space(db, current_user, team_id, space_id, payload.archived)


@router.delete("/{team_id}/spaces/{space_id}")
async def delete_space(team_id: str, space_id: str, db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(get_current_user)):
    await teams.delete_space(db, current_user, team_id, space_id)
    return {"status": "ok", "id": space_id}


# -----------------------------
# Policy and audit
# -----------------------------

@router.get("/{team_id}/policy", response_model=PolicyInfo)
async def read_policy(team_id: str, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    return await teams.read_team_policy(db, current_user, team_id)


@router.patch("/{team_id}/policy", response_model=PolicyInfo)
async def update_policy(team_id: str, payload: PolicyUpdate, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    return await teams.update_team_policy(db, current_user, team_id, payload.model_dump(exclude_unset=True))


@router.get("/{team_id}/audit", response_model=list[AuditEventInfo])
async def read_audit_log(team_id: str, limit: int = 100, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(get_current_user)):
    return await teams.get_team_audit_log(db, current_user, team_id, min(max(limit, 1), 500))


@router.post("/{team_id}/audit")
async def write_audit_event(team_id: str, payload: AuditEventCreate, db: AsyncSession = Depends(get_db),
                            current_user: User = Depends(get_current_user)):
    if not await teams.user_is_team_member(db, team_id, current_user.id):
        raise NotAuthorized("You are not a member of this team")
    event_id = await audit.log_audit_event(team_id, current_user.id, payload.action, payload.entity_type,
                                           payload.entity_id, payload.metadata)
    return {"success": event_id is not None, "id": event_id}
