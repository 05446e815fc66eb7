"""
notify/email.py -- The email collaborator used by the auth service.

The auth core only ever asks for one thing: "send a verification email to
this address, greeting this person, carrying this token". EmailSender is that
contract. Two implementations ship:

  SmtpEmailSender    renders notify/templates/verification.html with Jinja2
                     and delivers it over SMTP (STARTTLS by default).
  LoggingEmailSender logs the verification link instead of sending anything.
                     Selected automatically when SMTP_HOST is empty, which is
                     the normal local-development setup.

Delivery is synchronous: a failure raises EmailDeliveryError, and the auth
service lets that fail the whole register/resend call so its transaction rolls
back.

Layer rule: notify/ imports only core/ and third-party libraries.
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings, get_settings
from core.errors import EmailDeliveryError
from core.logutil import log_event

logger = logging.getLogger("lorekeeper.notify")

VERIFICATION_SUBJECT = "Verify Your Email - Lorekeeper"

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


class EmailSender(Protocol):
    def send_verification(self, to_email: str, display_name: str, token: str) -> None: ...


def build_verification_link(frontend_url: str, token: str) -> str:
    """Return '{frontend_url}/verify-email?token={token}' with the token URL-encoded."""
    return f"{frontend_url.rstrip('/')}/verify-email?{urlencode({'token': token})}"


def render_verification_email(username: str, link: str, valid_hours: int) -> str:
    """Render the HTML body of the verification email."""
    return _templates.get_template("verification.html").render(
        username=username,
        verification_link=link,
        valid_hours=valid_hours,
        current_year=datetime.now(timezone.utc).year,
    )


class LoggingEmailSender:
    """Development sender: logs the link so a developer can click it from the console."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def send_verification(self, to_email: str, display_name: str, token: str) -> None:
        link = build_verification_link(self._settings.frontend_url, token)
        log_event(logger, logging.INFO, "Verification email (not sent, SMTP disabled)", to=to_email, link=link)


class SmtpEmailSender:
    """Production sender: HTML email over SMTP."""

    def __init__(self, settings: Settings | None = None, timeout: float = 10.0) -> None:
        self._settings = settings or get_settings()
        self._timeout = timeout

    def send_verification(self, to_email: str, display_name: str, token: str) -> None:
        s = self._settings
        link = build_verification_link(s.frontend_url, token)

        msg = EmailMessage()
        msg["Subject"] = VERIFICATION_SUBJECT
        msg["From"] = s.email_from
        msg["To"] = to_email
        msg.set_content(f"Hi {display_name},\n\nVerify your email address: {link}\n")
        msg.add_alternative(
            render_verification_email(display_name, link, s.verification_token_hours),
            subtype="html",
        )

        try:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=self._timeout) as smtp:
                if s.smtp_starttls:
                    smtp.starttls()
                if s.smtp_username:
                    smtp.login(s.smtp_username, s.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log_event(logger, logging.ERROR, "Verification email failed", to=to_email, error=type(exc).__name__)
            raise EmailDeliveryError(detail=str(exc)) from exc

        log_event(logger, logging.INFO, "Verification email sent", to=to_email)


def build_email_sender(settings: Settings | None = None) -> EmailSender:
    """Pick the SMTP sender when SMTP_HOST is configured, else the logging sender."""
    settings = settings or get_settings()
    if settings.smtp_host:
        return SmtpEmailSender(settings)
    return LoggingEmailSender(settings)
