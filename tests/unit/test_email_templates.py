"""Unit tests for outgoing email content and delivery."""

import smtplib

import pytest

from groupsplit.config import SmtpConfig
from groupsplit.services.email import (
    EmailDeliveryError,
    Mailer,
    invitation_email,
    magic_link_email,
)


@pytest.mark.unit
class TestTemplates:
    """Test subjects and bodies of the two emails the app sends."""

    def test_magic_link(self):
        content = magic_link_email("GroupSplit", "http://localhost:5173/auth/verify?token=abc", 15)

        assert content.subject == "Votre lien de connexion GroupSplit"
        assert "http://localhost:5173/auth/verify?token=abc" in content.text
        assert "15 minutes" in content.text
        assert "Se connecter" in content.html

    def test_invitation(self):
        content = invitation_email(
            "GroupSplit", "Alice", "Coloc", "http://localhost:5173/invite/tok", 7
        )

        assert content.subject == 'Alice vous invite à rejoindre "Coloc" sur GroupSplit'
        assert "http://localhost:5173/invite/tok" in content.text
        assert "7 jours" in content.text

    def test_html_is_escaped(self):
        content = invitation_email(
            "GroupSplit", "<script>", "Tom & Jerry", "http://localhost:5173/invite/tok"
        )

        assert "<script>" not in content.html
        assert "&lt;script&gt;" in content.html
        assert "Tom &amp; Jerry" in content.html


@pytest.mark.unit
class TestMailer:
    """Test delivery through the outbox and over SMTP."""

    async def test_outbox_without_smtp_host(self):
        mailer = Mailer(smtp=SmtpConfig(), app_name="GroupSplit")

        await mailer.send_magic_link("alice@example.com", "http://x/verify?token=t", 15)

        assert len(mailer.outbox) == 1
        message = mailer.outbox[0]
        assert message["To"] == "alice@example.com"
        assert message["Subject"] == "Votre lien de connexion GroupSplit"

    async def test_message_has_text_and_html_parts(self):
        mailer = Mailer(smtp=SmtpConfig(), app_name="GroupSplit")

        await mailer.send_invitation("bob@example.com", "Alice", "Coloc", "http://x/invite/t", 7)

        message = mailer.outbox[0]
        assert message.get_body(preferencelist=("plain",)) is not None
        assert message.get_body(preferencelist=("html",)) is not None

    async def test_smtp_failure(self, monkeypatch):
        mailer = Mailer(smtp=SmtpConfig(host="smtp.invalid"), app_name="GroupSplit")

        def refuse(msg):
            raise smtplib.SMTPRecipientsRefused({"bob@example.com": (550, b"no")})

        monkeypatch.setattr(mailer, "_smtp_send", refuse)

        with pytest.raises(EmailDeliveryError):
            await mailer.send_magic_link("bob@example.com", "http://x", 15)
        assert len(mailer.outbox) == 0

    async def test_smtp_success(self, monkeypatch):
        mailer = Mailer(smtp=SmtpConfig(host="smtp.example.com"), app_name="GroupSplit")
        sent = []
        monkeypatch.setattr(mailer, "_smtp_send", sent.append)

        await mailer.send_magic_link("bob@example.com", "http://x", 15)

        assert sent[0]["To"] == "bob@example.com"
        assert len(mailer.outbox) == 0
