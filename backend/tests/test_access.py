from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from conftest import make_file, make_folder, make_user
from skieshare.models import SharedLink
from skieshare.services import access
from skieshare.services.access import check_file_access, check_folder_access, evaluate_access, get_link_by_code
from skieshare.services.credentials import hash_password
from skieshare.services.sharing import create_file_share, create_folder_share, record_download

NOW = datetime(2026, 5, 1, 12, 0)


def _file(**kw):
    base = dict(user_id="owner", is_public=False, is_locked=False, password_hash=None,
                expires_at=None, download_limit=None, download_count=0)
    base.update(kw)
    return SimpleNamespace(**base)


def _link(**kw):
    base = dict(is_active=True, expires_at=None, download_limit=None, download_count=0, password_hash=None)
    base.update(kw)
    return SimpleNamespace(**base)


def _decide(resource, link, password=None, user_id=None, route=True):
    return evaluate_access(resource, link, user_id=user_id, password=password, route_supplied=route, now=NOW)


def test_owner_always_has_access():
    f = _file(expires_at=NOW - timedelta(days=1))
    assert _decide(f, None, user_id="owner", route=False) == (True, access.OWNER)


def test_missing_resource_is_not_found():
    assert _decide(None, None) == (False, access.NOT_FOUND)


def test_private_file_without_route():
    assert _decide(_file(), None, route=False) == (False, access.PRIVATE)


def test_public_file_without_route_is_granted():
    assert _decide(_file(is_public=True), None, route=False) == (True, access.GRANTED)


def test_route_that_resolves_to_nothing_is_not_found():
    assert _decide(_file(), None, route=True) == (False, access.NOT_FOUND)


def test_inactive_link_is_locked():
    assert _decide(_file(), _link(is_active=False)) == (False, access.LOCKED)


def test_expired_link_wins_over_correct_password():
    pw = hash_password("abc")
    link = _link(expires_at=NOW - timedelta(seconds=1), password_hash=pw)
    assert _decide(_file(), link, password="abc") == (False, access.EXPIRED)


def test_expired_file_denies_even_through_valid_link():
    assert _decide(_file(expires_at=NOW), _link()) == (False, access.EXPIRED)


@pytest.mark.parametrize("password", [None, "wrong", "abc"])
def test_limit_reached_regardless_of_password(password):
    link = _link(download_limit=3, download_count=3, password_hash=hash_password("abc"))
    assert _decide(_file(), link, password=password) == (False, access.LIMIT_REACHED)


def test_password_checks():
    link = _link(password_hash=hash_password("abc"))
    assert _decide(_file(), link) == (False, access.BAD_PASSWORD)
    assert _decide(_file(), link, password="nope") == (False, access.BAD_PASSWORD)
    assert _decide(_file(), link, password="abc") == (True, access.GRANTED)


def test_locked_file_requires_its_password_through_open_link():
    f = _file(is_locked=True, password_hash=hash_password("filepw"))
    assert _decide(f, _link()) == (False, access.BAD_PASSWORD)
    assert _decide(f, _link(), password="filepw") == (True, access.GRANTED)


def test_file_in_shared_folder_keeps_its_own_gates():
    def folder_file(f, password=None, user_id=None):
        return access.evaluate_folder_file(f, user_id=user_id, password=password, now=NOW)

    locked = _file(is_locked=True, password_hash=hash_password("filepw"))
    assert folder_file(locked) == (False, access.BAD_PASSWORD)
    assert folder_file(locked, password="filepw") == (True, access.GRANTED)
    assert folder_file(locked, user_id="owner") == (True, access.OWNER)
    assert folder_file(_file(expires_at=NOW), password="x") == (False, access.EXPIRED)
    assert folder_file(_file(download_limit=2, download_count=2)) == (False, access.LIMIT_REACHED)
    assert folder_file(None) == (False, access.NOT_FOUND)
    assert folder_file(_file()) == (True, access.GRANTED)


def test_decision_is_deterministic():
    f = _file()
    link = _link(password_hash=hash_password("abc"), download_limit=5, download_count=2)
    first = _decide(f, link, password="abc")
    assert all(_decide(f, link, password="abc") == first for _ in range(5))


async def test_download_limit_of_one_allows_a_single_download(db):
    owner = await make_user(db, "u1@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, download_limit=1)

    decision = await check_file_access(db, f.id, share_token=share.share_token)
    assert decision.as_dict() == {"can_access": True, "reason": "granted"}
    await record_download(db, f.id, shared_link_id=share.link_id)

    link = await access.get_link_by_token(db, share.share_token)
    assert link.download_count == 1
    decision = await check_file_access(db, f.id, share_token=share.share_token)
    assert decision.as_dict() == {"can_access": False, "reason": "limit_reached"}


async def test_expired_share_with_correct_password_is_expired(db):
    owner = await make_user(db, "u1@example.com")
    f = await make_file(db, owner)
    link = SharedLink(file_id=f.id, share_token="expired-token", link_type="direct",
                      password_hash=hash_password("abc"), expires_at=datetime.utcnow() - timedelta(seconds=1))
    db.add(link)
    await db.commit()

    decision = await check_file_access(db, f.id, password="abc", share_token="expired-token")
    assert (decision.can_access, decision.reason) == (False, "expired")


async def test_token_for_another_file_is_not_found(db):
    owner = await make_user(db, "u1@example.com")
    f1 = await make_file(db, owner, name="a.txt")
    f2 = await make_file(db, owner, name="b.txt")
    share = await create_file_share(db, owner, f1.id)
    decision = await check_file_access(db, f2.id, share_token=share.share_token)
    assert decision.reason == "not_found"


async def test_share_code_lookup_is_case_insensitive(db):
    owner = await make_user(db, "u1@example.com")
    f = await make_file(db, owner)
    share = await create_file_share(db, owner, f.id, link_type="code")
    link = await get_link_by_code(db, share.share_code.lower())
    assert link is not None and link.id == share.link_id
    decision = await check_file_access(db, f.id, share_code=share.share_code)
    assert decision.reason == "granted"


async def test_folder_link_lists_current_contents(db):
    owner = await make_user(db, "u1@example.com")
    folder = await make_folder(db, owner)
    share = await create_folder_share(db, owner, folder.id)
    await make_file(db, owner, name="later.txt", folder_id=folder.id)

    decision = await check_folder_access(db, folder.id, share_code=share.share_code)
    assert decision.can_access
    assert [f.original_name for f in decision.files] == ["later.txt"]


async def test_owner_is_reported_as_owner(db):
    owner = await make_user(db, "u1@example.com")
    f = await make_file(db, owner)
    decision = await check_file_access(db, f.id, user_id=owner.id)
    assert decision.reason == "owner"
