"""Password hashing and share token/code generation.

Share tokens are the only thing protecting a passwordless direct link, so they
come from ``secrets`` and are long enough to be unguessable. Share codes are
typed by hand, so they are short and drawn from an alphabet without
look-alike characters; uniqueness is checked against the database before a
code is handed out.
"""
from __future__ import annotations

import logging
import secrets

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from skieshare.core.config import settings
from skieshare.core.errors import ShareCodeExhausted
from skieshare.models import File, Folder, SharedLink

logger = logging.getLogger("skieshare")

SHARE_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def hash_password(plaintext: str) -> str:
    if not plaintext:
        raise ValueError("Password must not be empty")
    return generate_password_hash(plaintext)


def verify_password(plaintext: str | None, password_hash: str | None) -> bool:
    if not plaintext or not password_hash:
        return False
    try:
        return check_password_hash(password_hash, plaintext)
    except (ValueError, TypeError):
        logger.warning("Unrecognised password hash format")
        return False


def generate_share_token() -> str:
    return secrets.token_urlsafe(24)


def generate_share_code(length: int | None = None) -> str:
    length = length or settings.SHARE_CODE_LENGTH
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))


async def share_code_in_use(db: AsyncSession, code: str) -> bool:
    stmt = select(
        or_(
            exists().where(SharedLink.share_code == code),
            exists().where(File.share_code == code),
            exists().where(Folder.share_code == code),
        )
    )
    return bool((await db.execute(stmt)).scalar())


async def generate_unique_share_code(db: AsyncSession, attempts: int | None = None) -> str:
    attempts = attempts or settings.SHARE_CODE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        code = generate_share_code()
        if not await share_code_in_use(db, code):
            return code
        logger.info("Share code collision (attempt %s/%s)", attempt, attempts)
    raise ShareCodeExhausted("Could not allocate a unique share code, try again")
