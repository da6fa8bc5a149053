import html
import logging

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from starlette.concurrency import run_in_threadpool

from skieshare.core.config import settings

logger = logging.getLogger("skieshare")


def _send(to_email: str, subject: str, body: str) -> bool:
    message = Mail(
        from_email=(settings.EMAIL_FROM, settings.EMAIL_FROM_NAME),
        to_emails=to_email,
        subject=subject,
        html_content=body,
    )
    response = SendGridAPIClient(settings.SENDGRID_API_KEY).send(message)
    # SendGrid answers 202 Accepted on success
    if response.status_code == 202:
        return True
    logger.warning("SendGrid API error: %s %s", response.status_code, response.body)
    return False


async def send_email(to_email: str, subject: str, body: str) -> bool:
    """
    Send an email through SendGrid. Failures are logged, never raised.
    """
    if not settings.EMAIL_ENABLED or not settings.SENDGRID_API_KEY:
        logger.info("Email disabled, skipping '%s' to %s", subject, to_email)
        return False
    try:
        return await run_in_threadpool(_send, to_email, subject, body)
    except Exception as e:
        logger.exception("SendGrid send failed to %s: %s", to_email, e)
        return False


async def send_share_email(to_email: str, sender_email: str, file_name: str, share_url: str,
                           message: str | None = None, expires_at=None) -> bool:
    note = f"<p>{html.escape(message)}</p>" if message else ""
    expiry = f"<p>The link expires on {expires_at:%Y-%m-%d %H:%M} UTC.</p>" if expires_at else ""
    body = (
        f"<p>{html.escape(sender_email)} shared <strong>{html.escape(file_name)}</strong> with you.</p>"
        f"{note}"
        f'<p><a href="{html.escape(share_url)}">Open the file</a></p>'
        f"{expiry}"
    )
    return await send_email(to_email, f"{sender_email} shared a file with you", body)


async def send_team_invite_email(to_email: str, team_name: str, inviter_email: str, accept_url: str) -> bool:
    body = (
        f"<p>{html.escape(inviter_email)} invited you to join "
        f"<strong>{html.escape(team_name)}</strong> on SkieShare.</p>"
        f'<p><a href="{html.escape(accept_url)}">Accept the invitation</a></p>'
        f"<p>The invitation is valid for {settings.INVITE_EXPIRE_DAYS} days.</p>"
    )
    return await send_email(to_email, f"Join {team_name} on SkieShare", body)
