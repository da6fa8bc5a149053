from __future__ import annotations

import html
import logging
import math
import urllib.parse
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from skieshare.core import minio_client as storage
from skieshare.core.database import get_db
from skieshare.core.security import get_optional_user
from skieshare.models import File, SharedLink, User
from skieshare.monitoring.setup import access_decisions
from skieshare.services import access
from skieshare.services.access import AccessDecision
from skieshare.services.sharing import record_download
from skieshare.utils.dates import utcnow
from skieshare.utils.urls import build_external_url

logger = logging.getLogger("skieshare")

router = APIRouter(tags=["Download"])

DENIAL_STATUS = {
    access.NOT_FOUND: 404,
    access.PRIVATE: 403,
    access.LOCKED: 403,
    access.EXPIRED: 410,
    access.LIMIT_REACHED: 410,
    access.BAD_PASSWORD: 401,
}

DENIAL_MESSAGES = {
    access.NOT_FOUND: "File not found",
    access.PRIVATE: "This file is private",
    access.LOCKED: "This link has been locked by its owner",
    access.EXPIRED: "This link has expired",
    access.LIMIT_REACHED: "The download limit for this link has been reached",
    access.BAD_PASSWORD: "A valid password is required",
}


# -----------------------------
# Helpers
# -----------------------------

def _rfc5987_filename(value: str) -> str:
    # Build a robust Content-Disposition filename / filename* pair
    quoted = urllib.parse.quote(value, safe="")
    return f'filename="{value.encode("latin-1", "ignore").decode("latin-1")}"; filename*=UTF-8\'\'{quoted}'

def _human_size(n: int) -> str:
    if n is None:
        return "unknown"
    units = ["B", "KB", "MB", "GB", "TB"]
    if n == 0:
        return "0 B"
    p = min(int(math.log(n, 1024)), len(units) - 1)
    return f"{n / (1024 ** p):.2f} {units[p]}"

async def _aiter_minio(obj) -> AsyncIterator[bytes]:
    try:
        # read in chunks via threadpool to avoid blocking loop
        while True:
            chunk = await run_in_threadpool(obj.read, 1024 * 1024)  # 1 MiB
            if not chunk:
                break
            yield chunk
    finally:
        await close_stored_object(obj)

def _deny(decision: AccessDecision):
    raise HTTPException(
        status_code=DENIAL_STATUS.get(decision.reason, 403),
        detail=DENIAL_MESSAGES.get(decision.reason, "Access denied"),
    )

def client_info(request: Request) -> tuple[str | None, str | None]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


async def _stream_file(db: AsyncSession, request: Request, file: File, link: Optional[SharedLink],
                       method: str, owner: bool) -> StreamingResponse:
    ip, user_agent = client_info(request)
    # open the object first so a storage outage does not use up a download
    obj = await open_stored_object(file)
    try:
        # owners are not counted against the link and bypass limits
        await record_download(
            db,
            file.id,
            shared_link_id=None if owner or link is None else link.id,
            method=method,
            ip=ip,
            user_agent=user_agent,
            enforce_limit=not owner,
        )
    except Exception:
        await close_stored_object(obj)
        raise
    return stream_file_response(request, file, obj)


async def open_stored_object(file: File):
    try:
        return await storage.get_object(file.storage_path)
    except Exception as e:
        logger.warning("Storage read failed object=%s err=%s", file.storage_path, e)
        raise HTTPException(status_code=503, detail="Storage is temporarily unavailable")


async def close_stored_object(obj) -> None:
    await run_in_threadpool(obj.close)
    release = getattr(obj, "release_conn", None)
    if release:
        await run_in_threadpool(release)


def stream_file_response(request: Request, file: File, obj) -> StreamingResponse:
    override = request.query_params.get("filename")
    effective_name = override or file.original_name or "download.bin"
    headers = {"Content-Disposition": f"attachment; {_rfc5987_filename(effective_name)}"}
    if file.file_size is not None:
        headers["Content-Length"] = str(file.file_size)

    return StreamingResponse(
        _aiter_minio(obj),
        media_type=file.file_type or "application/octet-stream",
        headers=headers,
    )


def _password_form(token: str, error: bool) -> str:
    notice = '<p class="err">Wrong password, try again.</p>' if error else ""
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Protected file</title>
  <style>
    body {{ margin:0; background:#0b0d10; color:#e7edf3; font-family: ui-sans-serif, system-ui, sans-serif; }}
    .wrap {{ max-width:480px; margin:0 auto; padding:40px 20px; }}
    .card {{ background:#151a20; border-radius:20px; padding:28px; }}
    input, button {{ padding:10px 14px; border-radius:10px; border:0; }}
    button {{ background:#2a7cff; color:white; font-weight:600; }}
    .err {{ color:#ff7a7a; }}
  </style>
</head>
<body>
  <div class="wrap"><div class="card">
    <h1>This file is password protected</h1>
    {notice}
    <form method="get" action="/s/{html.escape(token)}">
      <input type="password" name="password" placeholder="Password" autofocus>
      <button type="submit">Unlock</button>
    </form>
  </div></div>
</body>
</html>"""


def _landing_page(title: str, body: str) -> str:
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
  <style>
    :root {{ --bg:#0b0d10; --card:#151a20; --fg:#e7edf3; --muted:#9fb0c3; }}
    body {{ margin:0; background:var(--bg); color:var(--fg); font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; }}
    .wrap {{ max-width:720px; margin:0 auto; padding:40px 20px; }}
    .card {{ background:var(--card); border-radius:20px; padding:28px; box-shadow: 0 10px 30px rgba(0,0,0,.25); }}
    h1 {{ font-size:22px; margin:0 0 12px; }}
    p, li {{ margin: 6px 0; color:var(--muted); }}
    .btn {{ text-decoration:none; display:inline-block; padding:12px 18px; border-radius:12px; background:#2a7cff; color:white; font-weight:600; }}
    a {{ color:#8fb8ff; }}
  </style>
</head>
<body>
  <div class="wrap"><div class="card">
{body}
  </div></div>
</body>
</html>"""


# -----------------------------
# Public HTML landing page for a share token
# -----------------------------

@router.get("/s/{token}", response_class=HTMLResponse)
async def share_landing(
    token: str,
    request: Request,
    password: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    """Landing page for a share token. File links offer a download button,
    folder links list the folder's current contents.
    """
    link = await access.get_link_by_token(db, token)
    decision = await access.check_link_access(
        db, link, user_id=current_user.id if current_user else None, password=password
    )
    if decision.reason == access.BAD_PASSWORD:
        return HTMLResponse(_password_form(token, error=password is not None), status_code=401,
                            headers={"Cache-Control": "no-store"})
    if not decision.can_access:
        _deny(decision)

    suffix = "?" + urllib.parse.urlencode({"password": password}) if password else ""

    if decision.folder is not None:
        base = build_external_url(request, f"/download/{token}")
        rows = []
        for f in decision.files:
            query = {"file_id": f.id}
            if password:
                query["password"] = password
            href = html.escape(f"{base}?{urllib.parse.urlencode(query)}")
            rows.append(f'      <li><a href="{href}">{html.escape(f.original_name)}</a> ({_human_size(f.file_size)})</li>')
        items = "\n".join(rows) or "      <li>This folder is empty.</li>"
        body = (
            f"    <h1>{html.escape(decision.folder.name)}</h1>\n"
            f"    <ul>\n{items}\n    </ul>"
        )
        return HTMLResponse(_landing_page(html.escape(decision.folder.name), body),
                            headers={"Cache-Control": "no-store"})

    file = decision.file
    direct_url = build_external_url(request, f"/download/{token}") + suffix
    safe_filename = html.escape(file.original_name)
    expires = link.expires_at or file.expires_at
    # the download itself is counted by /download/{token}, refreshing this page is free
    body = f"""    <h1>{safe_filename}</h1>
    <p>Size: {_human_size(file.file_size)}{(' · expires: ' + expires.isoformat()) if expires else ''}</p>
    <p><a id="dl" class="btn" href="{html.escape(direct_url)}" download="{safe_filename}">Download</a></p>
    <script>setTimeout(() => document.getElementById('dl').click(), 250);</script>"""
    return HTMLResponse(_landing_page(f"Downloading {safe_filename}", body), headers={"Cache-Control": "no-store"})


# -----------------------------
# Direct file download by token (streams the object)
# -----------------------------

@router.get("/download/{token}")
async def download_by_token(
    token: str,
    request: Request,
    password: str | None = Query(None),
    file_id: str | None = Query(None, description="File inside a shared folder"),
    file_password: str | None = Query(None, description="Lock password of a file inside a shared folder"),
    x_share_password: str | None = Header(None),
    x_file_password: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    password = x_share_password or password
    user_id = current_user.id if current_user else None
    link = await access.get_link_by_token(db, token)
    decision = await access.check_link_access(db, link, user_id=user_id, password=password)
    if not decision.can_access:
        _deny(decision)

    owner = decision.reason == access.OWNER
    if decision.folder is not None:
        file = next((f for f in decision.files if f.id == file_id), None)
        if file is None:
            raise HTTPException(status_code=404, detail="File not found")
        if not owner:
            # a locked file falls back to the folder password when no file password is sent
            allowed, reason = access.evaluate_folder_file(
                file, user_id=user_id, password=x_file_password or file_password or password, now=utcnow()
            )
            access_decisions.labels(reason=reason).inc()
            if not allowed:
                _deny(AccessDecision(allowed, reason, file=file))
        return await _stream_file(db, request, file, link, "folder_link", owner)

    return await _stream_file(db, request, decision.file, link, link.link_type, owner)


# -----------------------------
# Share code lookup
# -----------------------------

@router.get("/code/{share_code}")
async def resolve_share_code(
    share_code: str,
    request: Request,
    password: str | None = Query(None),
    x_share_password: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    link = await access.get_link_by_code(db, share_code)
    decision = await access.check_link_access(
        db, link, user_id=current_user.id if current_user else None, password=x_share_password or password
    )
    if not decision.can_access:
        return JSONResponse(
            status_code=DENIAL_STATUS.get(decision.reason, 403),
            content={**decision.as_dict(), "detail": DENIAL_MESSAGES.get(decision.reason, "Access denied")},
        )

    payload = {**decision.as_dict(), "share_url": build_external_url(request, f"/s/{link.share_token}")}
    if decision.folder is not None:
        payload["folder"] = {"id": decision.folder.id, "name": decision.folder.name}
        payload["files"] = [
            {"id": f.id, "name": f.original_name, "size": f.file_size, "type": f.file_type}
            for f in decision.files
        ]
    else:
        file = decision.file
        payload["file"] = {"id": file.id, "name": file.original_name, "size": file.file_size, "type": file.file_type}
        payload["download_url"] = build_external_url(request, f"/download/{link.share_token}")
    return payload
