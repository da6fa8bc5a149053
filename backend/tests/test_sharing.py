from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import make_file, make_folder, make_user
from skieshare.core.errors import NotAuthorized, PolicyViolation, ValidationError
from skieshare.models import DownloadLog, File, SharedLink, TeamPolicy
from skieshare.services import credentials
from skieshare.services.access import get_link_by_token
from skieshare.services.credentials import hash_password
from skieshare.services.sharing import (
    create_file_share,
    create_folder_share,
    delete_shared_link,
    list_shared_links,
    record_download,
    update_shared_link_settings,
    validate_share_password,
)
from skieshare.services.teams import add_team_member, create_team, share_file_to_team


async def _policy(db, team_id, **fields):
    policy = (await db.execute(select(TeamPolicy).where(TeamPolicy.team_id == team_id))).scalars().first()
    for key, value in fields.items():
        setattr(policy, key, value)
    await db.commit()


async def test_direct_share_has_token_and_no_code(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id)
    assert share.share_token and share.share_code is None
    link = await get_link_by_token(db, share.share_token)
    assert link.file_id == f.id and link.folder_id is None and link.is_active


async def test_code_share_mirrors_code_onto_file(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, link_type="code")
    refreshed = (await db.execute(select(File).where(File.id == f.id).execution_options(populate_existing=True))).scalars().first()
    assert refreshed.share_code == share.share_code


async def test_share_codes_are_unique_across_links(db, monkeypatch):
    owner = await make_user(db, "o@example.com")
    f1 = await make_file(db, owner, name="a.txt")
    f2 = await make_file(db, owner, name="b.txt")
    candidates = iter(["SAME2345", "SAME2345", "NEXT2345"])
    monkeypatch.setattr(credentials, "generate_share_code", lambda length=None: next(candidates))

    first = await create_file_share(db, owner, f1.id, link_type="code")
    second = await create_file_share(db, owner, f2.id, link_type="code")
    assert first.share_code == "SAME2345"
    assert second.share_code == "NEXT2345"


async def test_only_owner_can_share(db):
    owner = await make_user(db, "o@example.com")
    other = await make_user(db, "x@example.com")
    f = await make_file(db, owner)
    with pytest.raises(NotAuthorized):
        await create_file_share(db, other, f.id)


@pytest.mark.parametrize("kwargs", [
    {"link_type": "carrier-pigeon"},
    {"download_limit": 0},
    {"expires_at": datetime.utcnow() - timedelta(minutes=1)},
    {"link_type": "email"},
])
async def test_invalid_share_requests_are_rejected(db, kwargs):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    with pytest.raises(ValidationError):
        await create_file_share(db, owner, f.id, **kwargs)
    assert (await db.execute(select(SharedLink))).scalars().first() is None


async def test_team_password_policy_blocks_passwordless_share(db):
    admin = await make_user(db, "admin@example.com")
    team = await create_team(db, admin, "Design")
    await _policy(db, team.id, require_password_for_shares=True)
    f = await make_file(db, admin)

    with pytest.raises(PolicyViolation) as exc:
        await create_file_share(db, admin, f.id)
    assert exc.value.reason == "password_required"

    share = await create_file_share(db, admin, f.id, password_hash=hash_password("s3cret"))
    assert share.link_id


async def test_policy_of_team_the_file_was_shared_into_applies(db):
    admin = await make_user(db, "admin@example.com")
    member = await make_user(db, "member@example.com")
    team = await create_team(db, admin, "Design")
    await _policy(db, team.id, require_password_for_shares=True)
    await add_team_member(db, admin, team.id, member.email, "member")
    f = await make_file(db, member)
    await share_file_to_team(db, member, team.id, f.id)

    with pytest.raises(PolicyViolation):
        await create_file_share(db, member, f.id)


async def test_team_default_expiry_is_applied(db):
    admin = await make_user(db, "admin@example.com")
    team = await create_team(db, admin, "Ops")
    await _policy(db, team.id, default_share_expiry_days=3)
    f = await make_file(db, admin)
    now = datetime(2026, 5, 1, 9, 0)
    share = await create_file_share(db, admin, f.id, now=now)
    assert share.expires_at == now + timedelta(days=3)


async def test_external_sharing_restricted_to_team_domain(db):
    admin = await make_user(db, "admin@corp.example")
    team = await create_team(db, admin, "Corp")
    await _policy(db, team.id, allow_external_sharing=False, auto_join_domain="corp.example")
    f = await make_file(db, admin)

    with pytest.raises(PolicyViolation) as exc:
        await create_file_share(db, admin, f.id, link_type="email", recipient_email="someone@else.example")
    assert exc.value.reason == "external_sharing_disabled"
    share = await create_file_share(db, admin, f.id, link_type="email", recipient_email="colleague@corp.example")
    assert share.link_id


async def test_folder_share_defaults_to_code(db):
    owner = await make_user(db, "o@example.com")
    folder = await make_folder(db, owner)
    share = await create_folder_share(db, owner, folder.id)
    assert share.share_code
    with pytest.raises(ValidationError):
        await create_folder_share(db, owner, folder.id, link_type="email")


async def test_link_without_password_cannot_be_locked(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id)

    with pytest.raises(PolicyViolation) as exc:
        await update_shared_link_settings(db, owner, share.link_id, is_active=False)
    assert exc.value.reason == "password_required_to_lock"
    assert (await get_link_by_token(db, share.share_token)).is_active

    assert await update_shared_link_settings(
        db, owner, share.link_id, is_active=False, password_hash=hash_password("pw")
    )
    assert not (await get_link_by_token(db, share.share_token)).is_active
    assert await update_shared_link_settings(db, owner, share.link_id, is_active=True)


async def test_settings_update_is_partial(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, download_limit=5)
    await update_shared_link_settings(db, owner, share.link_id, download_limit=10)
    link = await get_link_by_token(db, share.share_token)
    assert link.download_limit == 10 and link.is_active and link.expires_at is None


async def test_only_owner_updates_settings(db):
    owner = await make_user(db, "o@example.com")
    other = await make_user(db, "x@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id)
    with pytest.raises(NotAuthorized):
        await update_shared_link_settings(db, other, share.link_id, download_limit=2)


async def test_link_password_can_be_cleared(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, password_hash=hash_password("pw"))

    with pytest.raises(ValidationError):
        await update_shared_link_settings(db, owner, share.link_id, password_hash=hash_password("new"),
                                          clear_password=True)

    assert await update_shared_link_settings(db, owner, share.link_id, clear_password=True)
    link = await get_link_by_token(db, share.share_token)
    assert link.password_hash is None
    assert await validate_share_password(db, share.share_token, None)


async def test_locked_link_keeps_its_password_until_reactivated(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id)
    await update_shared_link_settings(db, owner, share.link_id, is_active=False, password_hash=hash_password("pw"))

    with pytest.raises(PolicyViolation) as exc:
        await update_shared_link_settings(db, owner, share.link_id, clear_password=True)
    assert exc.value.reason == "password_required_to_lock"
    assert (await get_link_by_token(db, share.share_token)).password_hash

    assert await update_shared_link_settings(db, owner, share.link_id, is_active=True, clear_password=True)
    link = await get_link_by_token(db, share.share_token)
    assert link.is_active and link.password_hash is None


async def test_team_password_policy_blocks_clearing(db):
    owner = await make_user(db, "o@example.com")
    team = await create_team(db, owner, "Studio")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, password_hash=hash_password("pw"))
    await _policy(db, team.id, require_password_for_shares=True)

    with pytest.raises(PolicyViolation) as exc:
        await update_shared_link_settings(db, owner, share.link_id, clear_password=True)
    assert exc.value.reason == "password_required"


async def test_validate_share_password(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    open_share = await create_file_share(db, owner, f.id)
    locked_share = await create_file_share(db, owner, f.id, password_hash=hash_password("pw"))
    assert await validate_share_password(db, open_share.share_token, None)
    assert await validate_share_password(db, locked_share.share_token, "pw")
    assert not await validate_share_password(db, locked_share.share_token, "nope")
    assert not await validate_share_password(db, "missing", "pw")


async def test_record_download_stops_at_the_limit(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, download_limit=2)

    await record_download(db, f.id, shared_link_id=share.link_id, ip="10.0.0.1")
    await record_download(db, f.id, shared_link_id=share.link_id)
    with pytest.raises(PolicyViolation) as exc:
        await record_download(db, f.id, shared_link_id=share.link_id)
    assert exc.value.reason == "limit_reached"

    logs = (await db.execute(select(DownloadLog))).scalars().all()
    assert len(logs) == 2
    assert (await get_link_by_token(db, share.share_token)).download_count == 2


async def test_delete_link_keeps_download_history(db):
    owner = await make_user(db, "o@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, link_type="code")
    await record_download(db, f.id, shared_link_id=share.link_id)

    await delete_shared_link(db, owner, share.link_id)
    assert await list_shared_links(db, owner) == []
    log = (await db.execute(select(DownloadLog))).scalars().first()
    assert log.shared_link_id is None
    refreshed = (await db.execute(select(File).where(File.id == f.id).execution_options(populate_existing=True))).scalars().first()
    assert refreshed.share_code is None
