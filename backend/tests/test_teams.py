from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from conftest import make_file, make_user
from skieshare.core.errors import NotAuthorized, NotFound, PolicyViolation, ValidationError
from skieshare.models import AuditLog, File, TeamInvite, TeamMember
from skieshare.services import teams
from skieshare.services.teams import Permissions, Role


async def _audit_actions(db, team_id):
    res = await db.execute(select(AuditLog.action).where(AuditLog.team_id == team_id))
    return set(res.scalars().all())


async def _team_with(db, admin, members):
    team = await teams.create_team(db, admin, "Studio")
    for user, role in members:
        await teams.add_team_member(db, admin, team.id, user.email, role)
    return team


def test_role_ordering():
    assert Role.READONLY < Role.GUEST < Role.MEMBER < Role.ADMIN < Role.OWNER
    assert Role.parse("Admin") is Role.ADMIN
    with pytest.raises(ValidationError):
        Role.parse("superuser")


def test_default_permissions_per_role():
    assert Permissions.for_role(Role.OWNER) == Permissions(True, True, True, True)
    assert Permissions.for_role(Role.ADMIN) == Permissions(True, True, True, True)
    assert Permissions.for_role(Role.MEMBER) == Permissions(True, True, True, False)
    assert Permissions.for_role(Role.GUEST) == Permissions(True, False, True, False)
    assert Permissions.for_role(Role.READONLY) == Permissions(True, False, False, False)


async def test_create_team_sets_up_owner_policy_and_audit(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "  Studio ")
    assert team.name == "Studio"
    assert await teams.effective_role(db, team.id, admin.id) is Role.OWNER
    policy = await teams.get_team_policy(db, team.id)
    assert policy.allow_external_sharing and not policy.require_password_for_shares
    assert "team_created" in await _audit_actions(db, team.id)


@pytest.mark.parametrize("actual", ["readonly", "guest", "member", "admin"])
async def test_role_checks_are_monotonic(db, actual):
    admin = await make_user(db, "admin@example.com")
    user = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(user, actual)])

    for required in Role:
        expected = required <= Role.parse(actual)
        assert await teams.user_has_team_role(db, team.id, user.id, required.label) is expected
        assert await teams.user_has_team_role(db, team.id, admin.id, required.label) is True


async def test_non_member_has_no_role(db):
    admin = await make_user(db, "admin@example.com")
    outsider = await make_user(db, "out@example.com")
    team = await teams.create_team(db, admin, "Studio")
    assert not await teams.user_is_team_member(db, team.id, outsider.id)
    assert not await teams.user_has_team_role(db, team.id, outsider.id, "readonly")


async def test_readonly_member_cannot_lock_team_file(db):
    admin = await make_user(db, "admin@example.com")
    viewer = await make_user(db, "viewer@example.com")
    team = await _team_with(db, admin, [(viewer, "readonly")])
    f = await make_file(db, admin)
    await teams.share_file_to_team(db, admin, team.id, f.id)

    assert await teams.user_is_team_member(db, team.id, viewer.id)
    with pytest.raises(NotAuthorized):
        await teams.toggle_team_file_lock(db, viewer, team.id, f.id, True, "pw")

    # viewing is still allowed
    downloaded = await teams.download_team_file(db, viewer, team.id, f.id)
    assert downloaded.id == f.id


async def test_member_with_edit_can_lock_and_unlock(db):
    admin = await make_user(db, "admin@example.com")
    editor = await make_user(db, "editor@example.com")
    team = await _team_with(db, admin, [(editor, "member")])
    f = await make_file(db, admin)
    await teams.share_file_to_team(db, admin, team.id, f.id)

    assert await teams.toggle_team_file_lock(db, editor, team.id, f.id, True, "pw") is True
    assert await teams.toggle_team_file_lock(db, editor, team.id, f.id, False) is False
    actions = await _audit_actions(db, team.id)
    assert {"file_shared", "file_locked", "file_unlocked"} <= actions


async def test_admin_bypasses_granular_flags(db):
    owner = await make_user(db, "owner@example.com")
    admin = await make_user(db, "admin@example.com")
    team = await _team_with(db, owner, [(admin, "admin")])
    await teams.update_member_permissions(db, owner, team.id, admin.id, can_edit=False)
    f = await make_file(db, owner)
    await teams.share_file_to_team(db, owner, team.id, f.id)
    assert await teams.toggle_team_file_lock(db, admin, team.id, f.id, True, "pw")


async def test_permission_override_is_respected(db):
    admin = await make_user(db, "admin@example.com")
    member = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(member, "readonly")])
    await teams.update_member_permissions(db, admin, team.id, member.id, can_edit=True)
    f = await make_file(db, admin)
    await teams.share_file_to_team(db, admin, team.id, f.id)
    assert await teams.toggle_team_file_lock(db, member, team.id, f.id, True, "pw")


async def test_action_on_file_not_shared_with_team(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    f = await make_file(db, admin)
    with pytest.raises(NotFound):
        await teams.authorize_team_file_action(db, team.id, f.id, admin.id, "download")


async def test_team_size_policy_blocks_large_files(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    await teams.update_team_policy(db, admin, team.id, {"max_file_size_mb": 1})
    big = await make_file(db, admin, size=2 * 1024 * 1024)
    with pytest.raises(PolicyViolation) as exc:
        await teams.share_file_to_team(db, admin, team.id, big.id)
    assert exc.value.reason == "file_too_large"


async def test_sharing_same_file_twice_is_rejected(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    f = await make_file(db, admin)
    await teams.share_file_to_team(db, admin, team.id, f.id)
    with pytest.raises(PolicyViolation):
        await teams.share_file_to_team(db, admin, team.id, f.id)


async def test_remove_team_file_keeps_the_file(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    f = await make_file(db, admin)
    await teams.share_file_to_team(db, admin, team.id, f.id)
    await teams.remove_team_file(db, admin, team.id, f.id)
    assert await teams.get_my_team_files(db, admin.id) == []
    assert (await db.execute(select(File).where(File.id == f.id))).scalars().first() is not None


async def test_owner_cannot_be_removed_or_demoted(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    with pytest.raises(PolicyViolation):
        await teams.remove_team_member(db, admin, team.id, admin.id)
    with pytest.raises(PolicyViolation):
        await teams.update_member_role(db, admin, team.id, admin.id, "member")


async def test_member_can_leave_but_not_remove_others(db):
    admin = await make_user(db, "admin@example.com")
    a = await make_user(db, "a@example.com")
    b = await make_user(db, "b@example.com")
    team = await _team_with(db, admin, [(a, "member"), (b, "member")])
    with pytest.raises(NotAuthorized):
        await teams.remove_team_member(db, a, team.id, b.id)
    await teams.remove_team_member(db, a, team.id, a.id)
    assert not await teams.user_is_team_member(db, team.id, a.id)
    assert {"member_added", "member_left"} <= await _audit_actions(db, team.id)


async def test_role_change_rederives_flags(db):
    admin = await make_user(db, "admin@example.com")
    m = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(m, "readonly")])
    member = await teams.update_member_role(db, admin, team.id, m.id, "member")
    assert (member.can_view, member.can_edit, member.can_share, member.can_manage_members) == (True, True, True, False)


async def test_role_change_with_explicit_flags(db):
    admin = await make_user(db, "admin@example.com")
    m = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(m, "readonly")])
    member = await teams.update_member_role(db, admin, team.id, m.id, "member",
                                            Permissions(can_view=True, can_edit=False))
    assert member.role == "member"
    assert (member.can_view, member.can_edit, member.can_share) == (True, False, False)


async def test_adding_existing_member_is_rejected(db):
    admin = await make_user(db, "admin@example.com")
    m = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(m, "member")])
    with pytest.raises(PolicyViolation):
        await teams.add_team_member(db, admin, team.id, m.email, "guest")


# -----------------------------
# Invites
# -----------------------------

async def test_accepting_an_invite_twice_creates_one_membership(db):
    admin = await make_user(db, "admin@example.com")
    invitee = await make_user(db, "new@example.com")
    team = await teams.create_team(db, admin, "Studio")
    invite = await teams.send_team_invite(db, admin, team.id, "new@example.com", "guest")
    assert len(invite.invite_token) == 32

    first = await teams.accept_team_invite(db, invite.invite_token, invitee.id)
    assert first["success"] and first["role"] == "guest"
    second = await teams.accept_team_invite(db, invite.invite_token, invitee.id)
    assert second == {"success": False, "error": "invite_not_pending", "status": "accepted"}

    count = (await db.execute(
        select(func.count()).select_from(TeamMember)
        .where(TeamMember.team_id == team.id, TeamMember.user_id == invitee.id)
    )).scalar_one()
    assert count == 1
    assert await teams.effective_role(db, team.id, invitee.id) is Role.GUEST
    assert {"invite_sent", "invite_accepted"} <= await _audit_actions(db, team.id)


async def test_expired_invite_is_marked_expired(db):
    admin = await make_user(db, "admin@example.com")
    invitee = await make_user(db, "new@example.com")
    team = await teams.create_team(db, admin, "Studio")
    sent_at = datetime(2026, 1, 1, 9, 0)
    invite = await teams.send_team_invite(db, admin, team.id, invitee.email, now=sent_at)
    assert invite.expires_at == sent_at + timedelta(days=7)

    result = await teams.accept_team_invite(db, invite.invite_token, invitee.id, now=sent_at + timedelta(days=8))
    assert result == {"success": False, "error": "invite_expired"}
    stored = (await db.execute(
        select(TeamInvite).where(TeamInvite.id == invite.id).execution_options(populate_existing=True)
    )).scalars().first()
    assert stored.status == "expired"
    assert not await teams.user_is_team_member(db, team.id, invitee.id)


async def test_revoked_invite_cannot_be_accepted_or_revoked_again(db):
    admin = await make_user(db, "admin@example.com")
    invitee = await make_user(db, "new@example.com")
    team = await teams.create_team(db, admin, "Studio")
    invite = await teams.send_team_invite(db, admin, team.id, invitee.email)

    revoked = await teams.revoke_team_invite(db, admin, team.id, invite.id)
    assert revoked.status == "revoked"
    with pytest.raises(PolicyViolation):
        await teams.revoke_team_invite(db, admin, team.id, invite.id)
    result = await teams.accept_team_invite(db, invite.invite_token, invitee.id)
    assert result["error"] == "invite_not_pending"


async def test_invite_for_another_address_is_refused(db):
    admin = await make_user(db, "admin@example.com")
    stranger = await make_user(db, "stranger@example.com")
    team = await teams.create_team(db, admin, "Studio")
    invite = await teams.send_team_invite(db, admin, team.id, "new@example.com")
    result = await teams.accept_team_invite(db, invite.invite_token, stranger.id)
    assert result == {"success": False, "error": "email_mismatch"}


async def test_unknown_invite_token(db):
    user = await make_user(db, "u@example.com")
    assert await teams.accept_team_invite(db, "nope", user.id) == {"success": False, "error": "invalid_token"}


async def test_guest_cannot_invite(db):
    admin = await make_user(db, "admin@example.com")
    guest = await make_user(db, "g@example.com")
    team = await _team_with(db, admin, [(guest, "guest")])
    with pytest.raises(NotAuthorized):
        await teams.send_team_invite(db, guest, team.id, "x@example.com")


async def test_expire_stale_invites(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    sent_at = datetime(2026, 1, 1, 9, 0)
    await teams.send_team_invite(db, admin, team.id, "a@example.com", now=sent_at)
    await teams.send_team_invite(db, admin, team.id, "b@example.com", now=sent_at + timedelta(days=5))
    assert await teams.expire_stale_invites(db, now=sent_at + timedelta(days=8)) == 1


# -----------------------------
# Spaces, policy, read models
# -----------------------------

async def test_space_lifecycle(db):
    admin = await make_user(db, "admin@example.com")
    team = await teams.create_team(db, admin, "Studio")
    parent = await teams.create_space(db, admin, team.id, "Marketing")
    child = await teams.create_space(db, admin, team.id, "Campaigns", parent_space_id=parent.id)

    await teams.archive_space(db, admin, team.id, child.id)
    assert [s.name for s in await teams.get_team_spaces(db, admin, team.id)] == ["Marketing"]
    assert len(await teams.get_team_spaces(db, admin, team.id, include_archived=True)) == 2

    await teams.delete_space(db, admin, team.id, parent.id)
    remaining = await teams.get_team_spaces(db, admin, team.id, include_archived=True)
    assert [(s.name, s.parent_space_id) for s in remaining] == [("Campaigns", None)]
    assert {"space_created", "space_archived", "space_deleted"} <= await _audit_actions(db, team.id)


async def test_readonly_member_cannot_create_space(db):
    admin = await make_user(db, "admin@example.com")
    viewer = await make_user(db, "v@example.com")
    team = await _team_with(db, admin, [(viewer, "readonly")])
    with pytest.raises(NotAuthorized):
        await teams.create_space(db, viewer, team.id, "Mine")


async def test_policy_update_is_admin_only_and_audited(db):
    admin = await make_user(db, "admin@example.com")
    m = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(m, "member")])
    with pytest.raises(NotAuthorized):
        await teams.update_team_policy(db, m, team.id, {"require_password_for_shares": True})
    with pytest.raises(ValidationError):
        await teams.update_team_policy(db, admin, team.id, {"colour": "blue"})

    policy = await teams.update_team_policy(db, admin, team.id, {"require_password_for_shares": True})
    assert policy.require_password_for_shares
    entry = (await db.execute(
        select(AuditLog).where(AuditLog.team_id == team.id, AuditLog.action == "policy_updated")
    )).scalars().first()
    assert entry.details == {"require_password_for_shares": True}


async def test_read_models(db):
    admin = await make_user(db, "admin@example.com")
    viewer = await make_user(db, "v@example.com")
    team = await _team_with(db, admin, [(viewer, "readonly")])
    f = await make_file(db, admin, name="plan.pdf")
    await teams.share_file_to_team(db, admin, team.id, f.id)

    mine = await teams.get_user_teams(db, viewer.id)
    assert [(t["team_name"], t["role"], t["is_admin"]) for t in mine] == [("Studio", "readonly", False)]

    members = await teams.get_team_members(db, viewer, team.id)
    assert {(m["email"], m["role"]) for m in members} == {("admin@example.com", "owner"), ("v@example.com", "readonly")}

    files = await teams.get_my_team_files(db, viewer.id)
    assert len(files) == 1
    row = files[0]
    assert row["file_name"] == "plan.pdf" and row["sharer_email"] == "admin@example.com"
    assert row["can_download"] and not row["can_edit"] and not row["is_team_admin"]


async def test_audit_log_is_admin_only(db):
    admin = await make_user(db, "admin@example.com")
    m = await make_user(db, "m@example.com")
    team = await _team_with(db, admin, [(m, "member")])
    events = await teams.get_team_audit_log(db, admin, team.id)
    assert {e.action for e in events} >= {"team_created", "member_added"}
    with pytest.raises(NotAuthorized):
        await teams.get_team_audit_log(db, m, team.id)
