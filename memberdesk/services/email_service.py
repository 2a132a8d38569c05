"""
MemberDesk
Email Service.

Sends HTML e-mails over SMTP. When SMTP is not configured, e-mails are
logged but not sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    status: str             # "sent" | "logged" | "failed"
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class EmailService:
    """SMTP sender with a log-only fallback."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        reply_to: str | None = None,
    ) -> DeliveryResult:
        """Send an e-mail. Never raises on SMTP failure; the result says so."""
        if not cls.is_configured():
            logger.info("Email (dev mode): to=%s subject='%s'", to_email, subject)
            return DeliveryResult(status="logged")

        try:
            cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body,
                           text_body=text_body, reply_to=reply_to)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return DeliveryResult(status="failed", error=str(exc)[:1000])

        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return DeliveryResult(status="sent")

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str,
                   text_body: str | None, reply_to: str | None) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        if reply_to:
            msg["Reply-To"] = reply_to
        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
