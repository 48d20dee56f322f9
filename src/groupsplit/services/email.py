"""Outgoing email: magic links and group invitations.

Messages go out over SMTP in a worker thread. Without a configured SMTP
host they are logged and kept in an in-memory outbox instead, which is what
local development and the tests rely on.
"""

import asyncio
import smtplib
import ssl
from collections import deque
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Deque, Optional

from ..config import SmtpConfig, get_config
from ..utils.logging_config import get_logger

logger = get_logger("email")

OUTBOX_SIZE = 100


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the SMTP server."""


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text: str
    html: str


def _cta_button(href: str, label: str) -> str:
    return (
        '<p style="text-align: center; margin: 32px 0;">'
        f'<a href="{escape(href)}" style="background-color: #3b82f6; color: white; '
        "padding: 12px 24px; text-decoration: none; border-radius: 6px; "
        f'display: inline-block; font-weight: 500;">{escape(label)}</a></p>'
    )


def _wrap_html(app_name: str, body_html: str) -> str:
    safe = escape(app_name)
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '  <meta charset="utf-8">\n'
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        "</head>\n"
        '<body style="font-family: -apple-system, BlinkMacSystemFont, \'Segoe UI\', '
        'Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; '
        'margin: 0 auto; padding: 20px;">\n'
        f'  <h1 style="color: #1a1a1a; font-size: 24px; margin-bottom: 24px;">{safe}</h1>\n'
        f"  {body_html}\n"
        '  <hr style="border: none; border-top: 1px solid #eee; margin: 32px 0;">\n'
        f'  <p style="color: #999; font-size: 12px;">L\'équipe {safe}</p>\n'
        "</body>\n</html>"
    )


def magic_link_email(app_name: str, url: str, ttl_minutes: int = 15) -> EmailContent:
    """Sign-in email carrying a magic link."""
    text = (
        "Bonjour,\n\n"
        "Cliquez sur le lien ci-dessous pour vous connecter :\n\n"
        f"{url}\n\n"
        f"Ce lien expire dans {ttl_minutes} minutes.\n\n"
        "Si vous n'avez pas demandé ce lien, ignorez cet email.\n\n"
        f"L'équipe {app_name}"
    )
    html = _wrap_html(
        app_name,
        "<p>Bonjour,</p>\n"
        "  <p>Cliquez sur le bouton ci-dessous pour vous connecter :</p>\n"
        f"  {_cta_button(url, 'Se connecter')}\n"
        f'  <p style="color: #666; font-size: 14px;">Ce lien expire dans {ttl_minutes} minutes.</p>\n'
        '  <p style="color: #666; font-size: 14px;">Si vous n\'avez pas demandé ce lien, '
        "ignorez cet email.</p>",
    )
    return EmailContent(f"Votre lien de connexion {app_name}", text, html)


def invitation_email(
    app_name: str, inviter_name: str, group_name: str, invite_url: str, ttl_days: int = 7
) -> EmailContent:
    """Invitation to join a group."""
    subject = f'{inviter_name} vous invite à rejoindre "{group_name}" sur {app_name}'
    text = (
        "Bonjour,\n\n"
        f'{inviter_name} vous invite à rejoindre le groupe "{group_name}" sur {app_name}.\n\n'
        "Cliquez sur le lien ci-dessous pour accepter l'invitation :\n\n"
        f"{invite_url}\n\n"
        f"Ce lien expire dans {ttl_days} jours.\n\n"
        f"L'équipe {app_name}"
    )
    html = _wrap_html(
        app_name,
        "<p>Bonjour,</p>\n"
        f"  <p><strong>{escape(inviter_name)}</strong> vous invite à rejoindre le groupe "
        f'<strong>"{escape(group_name)}"</strong>.</p>\n'
        f"  {_cta_button(invite_url, 'Accepter l’invitation')}\n"
        f'  <p style="color: #666; font-size: 14px;">Ce lien expire dans {ttl_days} jours.</p>',
    )
    return EmailContent(subject, text, html)


class Mailer:
    """Sends EmailContent to a recipient over SMTP, or into the outbox."""

    def __init__(self, smtp: Optional[SmtpConfig] = None, app_name: Optional[str] = None):
        config = get_config()
        self.smtp = smtp or config.smtp
        self.app_name = app_name or config.app.app_name
        self.outbox: Deque[EmailMessage] = deque(maxlen=OUTBOX_SIZE)

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp.host)

    def build_message(self, to: str, content: EmailContent) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = content.subject
        msg["From"] = self.smtp.sender
        msg["To"] = to
        msg.set_content(content.text)
        msg.add_alternative(content.html, subtype="html")
        return msg

    async def send(self, to: str, content: EmailContent) -> None:
        """Deliver a message.

        Raises:
            EmailDeliveryError: If the SMTP exchange fails
        """
        msg = self.build_message(to, content)

        if not self.is_configured:
            self.outbox.append(msg)
            logger.info(f"SMTP not configured, kept email in outbox: to={to} subject={content.subject!r}")
            logger.debug(content.text)
            return

        try:
            await asyncio.to_thread(self._smtp_send, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.exception(f"Email error: host={self.smtp.host} to={to}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(f"Email sent: to={to} subject={content.subject!r}")

    def _smtp_send(self, msg: EmailMessage) -> None:
        """Blocking SMTP send (called via to_thread)."""
        with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=30) as server:
            if self.smtp.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp.username:
                server.login(self.smtp.username, self.smtp.password)
            server.send_message(msg)

    async def send_magic_link(self, to: str, url: str, ttl_minutes: int) -> None:
        await self.send(to, magic_link_email(self.app_name, url, ttl_minutes))

    async def send_invitation(
        self, to: str, inviter_name: str, group_name: str, invite_url: str, ttl_days: int
    ) -> None:
        await self.send(
            to, invitation_email(self.app_name, inviter_name, group_name, invite_url, ttl_days)
        )


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    """FastAPI dependency returning the process-wide mailer."""
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer
