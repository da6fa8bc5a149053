from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import make_file, make_folder, make_user
from skieshare.core.errors import NotAuthorized, QuotaExceeded, ValidationError
from skieshare.models import Folder
from skieshare.services import files as file_service
from skieshare.services.credentials import verify_password
from skieshare.services.quota import get_profile
from skieshare.services.sharing import create_folder_share


async def test_upload_charges_quota_and_caps_retention(db, alice):
    now = datetime(2026, 3, 1, 12, 0)
    f = await file_service.upload_file(db, alice, "notes.txt", "text/plain", 2048, "k/notes.txt", now=now)
    assert f.expires_at == now + timedelta(hours=48)
    profile = await get_profile(db, alice.id)
    assert profile.storage_used == 2048
    assert profile.daily_upload_count == 1


async def test_upload_keeps_earlier_expiry(db, alice):
    now = datetime(2026, 3, 1, 12, 0)
    wanted = now + timedelta(hours=2)
    f = await file_service.upload_file(db, alice, "a.txt", None, 10, "k/a.txt", expires_at=wanted, now=now)
    assert f.expires_at == wanted
    assert f.file_type == "application/octet-stream"


async def test_pro_uploads_have_no_retention_cap(db):
    pro = await make_user(db, "pro@example.com", tier="pro")
    f = await file_service.upload_file(db, pro, "big.iso", None, 10, "k/big.iso")
    assert f.expires_at is None


async def test_upload_over_quota_leaves_nothing_behind(db):
    user = await make_user(db, "full@example.com", storage_limit=1000, storage_used=900)
    with pytest.raises(QuotaExceeded):
        await file_service.upload_file(db, user, "x.bin", None, 200, "k/x.bin")
    profile = await get_profile(db, user.id)
    assert profile.storage_used == 900
    assert profile.daily_upload_count == 0
    folders, files = await file_service.list_folder(db, user)
    assert files == []


@pytest.mark.parametrize("name", ["", "   ", "a/b", "x" * 300])
async def test_upload_rejects_bad_names(db, alice, name):
    with pytest.raises(ValidationError):
        await file_service.upload_file(db, alice, name, None, 1, "k/x")


async def test_delete_file_releases_storage(db):
    user = await make_user(db, "u@example.com", storage_used=5000)
    f = await make_file(db, user, size=3000, storage_path="u/obj")
    assert await file_service.delete_file(db, user, f.id) == "u/obj"
    assert (await get_profile(db, user.id)).storage_used == 2000


async def test_only_owner_can_modify(db, alice, bob):
    f = await make_file(db, alice)
    with pytest.raises(NotAuthorized):
        await file_service.rename_file(db, bob, f.id, "mine.pdf")
    with pytest.raises(NotAuthorized):
        await file_service.delete_file(db, bob, f.id)


async def test_lock_requires_password(db, alice):
    f = await make_file(db, alice)
    with pytest.raises(ValidationError):
        await file_service.toggle_file_lock_status(db, alice, f.id, True)
    locked = await file_service.toggle_file_lock_status(db, alice, f.id, True, "s3cret")
    assert locked.is_locked and verify_password("s3cret", locked.password_hash)
    unlocked = await file_service.toggle_file_lock_status(db, alice, f.id, False)
    assert not unlocked.is_locked and unlocked.password_hash is None


async def test_folder_cannot_move_into_descendant(db, alice):
    top = await file_service.create_folder(db, alice, "Top")
    mid = await file_service.create_folder(db, alice, "Mid", parent_id=top.id)
    leaf = await file_service.create_folder(db, alice, "Leaf", parent_id=mid.id)

    with pytest.raises(ValidationError):
        await file_service.move_folder(db, alice, top.id, leaf.id)
    with pytest.raises(ValidationError):
        await file_service.move_folder(db, alice, top.id, top.id)

    moved = await file_service.move_folder(db, alice, leaf.id, None)
    assert moved.parent_id is None


async def test_delete_folder_moves_contents_to_root(db, alice):
    docs = await make_folder(db, alice, "Docs")
    sub = await make_folder(db, alice, "Sub", parent_id=docs.id)
    f = await make_file(db, alice, name="inside.pdf", folder_id=docs.id)
    await create_folder_share(db, alice, docs.id)

    await file_service.delete_folder(db, alice, docs.id)

    folders, files = await file_service.list_folder(db, alice)
    assert [x.id for x in folders] == [sub.id]
    assert [x.id for x in files] == [f.id]
    assert (await db.execute(select(Folder).where(Folder.id == docs.id))).scalars().first() is None


async def test_move_file_between_folders(db, alice, bob):
    f = await make_file(db, alice)
    docs = await make_folder(db, alice, "Docs")
    theirs = await make_folder(db, bob, "Theirs")

    moved = await file_service.move_file(db, alice, f.id, docs.id)
    assert moved.folder_id == docs.id
    _, inside = await file_service.list_folder(db, alice, docs.id)
    assert [x.id for x in inside] == [f.id]

    with pytest.raises(NotAuthorized):
        await file_service.move_file(db, alice, f.id, theirs.id)
