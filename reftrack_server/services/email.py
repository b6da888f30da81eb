# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation email rendering and sending. Logs to console when SMTP not configured."""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from reftrack_server.config import Settings

logger = logging.getLogger(__name__)


def render_invitation_email(
    app_name: str,
    inviter_name: str,
    invitee_identifier: str,
    accept_url: str,
    content: str | None = None,
) -> str:
    """Minimal HTML invitation with an accept button. All inputs are escaped."""
    message = content or f"You've been invited by {inviter_name} to join {app_name}!"
    body = html.escape(message).replace("\n", "<br>\n")
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Invitation to {html.escape(app_name)}</title></head>
<body style="font-family: system-ui, sans-serif; color: #333; max-width: 600px;">
<h1 style="font-size: 24px;">You're invited to {html.escape(app_name)}</h1>
<p>Hi {html.escape(invitee_identifier)},</p>
<div>{body}</div>
<p style="margin: 32px 0;">
<a href="{html.escape(accept_url, quote=True)}" style="background: #3182ce; color: #fff; padding: 12px 24px; border-radius: 6px; text-decoration: none;">Accept invitation</a>
</p>
<p style="font-size: 12px; color: #718096;">Invited by {html.escape(inviter_name)}.</p>
</body>
</html>"""


class EmailSender:
    """Sends HTML mail through SMTP. Raises on failure; callers decide whether that matters."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.smtp_user)

    def _build(self, to: str, from_name: str, subject: str, html_body: str, reply_to: str | None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name, self.settings.smtp_from))
        msg["To"] = to
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _send_sync(self, to: str, msg: MIMEMultipart) -> None:
        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.email_timeout_seconds) as server:
            server.starttls()
            server.login(s.smtp_user, s.smtp_password or "")
            server.sendmail(s.smtp_from, [to], msg.as_string())

    async def send(
        self,
        to: str,
        from_name: str,
        subject: str,
        html_body: str,
        reply_to: str | None = None,
    ) -> None:
        if "@" not in to:
            raise ValueError("Invalid recipient email address")
        if not self.configured:
            logger.info("Email (SMTP not configured): To=%s Subject=%s", to, subject)
            return
        msg = self._build(to, from_name, subject, html_body, reply_to)
        await asyncio.to_thread(self._send_sync, to, msg)
        logger.info("Invitation email sent to %s", to)
