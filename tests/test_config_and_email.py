"""Unit tests for core/config.py and notify/email.py.

Covers:
- SECRET_KEY policy: required in production, generated in debug, minimum length
- secure_cookies follows DEBUG unless set explicitly
- verification link building and template rendering
- build_email_sender() picks SMTP only when SMTP_HOST is set
- SmtpEmailSender wraps SMTP failures in EmailDeliveryError
- LoggingEmailSender logs the link instead of sending
"""

import logging
import smtplib

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.errors import EmailDeliveryError
from notify.email import (
    LoggingEmailSender,
    SmtpEmailSender,
    build_email_sender,
    build_verification_link,
    render_verification_email,
)

GOOD_KEY = "k" * 40


class TestSettings:
    def test_production_requires_secret_key(self) -> None:
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(debug=False, secret_key="")

    def test_debug_generates_secret_key(self) -> None:
        settings = Settings(debug=True, secret_key="")
        assert len(settings.secret_key) >= 32

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(debug=True, secret_key="too-short")

    def test_secure_cookies_follow_debug(self) -> None:
        assert Settings(debug=False, secret_key=GOOD_KEY).secure_cookies is True
        assert Settings(debug=True, secret_key=GOOD_KEY).secure_cookies is False
        assert Settings(debug=True, secret_key=GOOD_KEY, secure_cookies=True).secure_cookies is True


class TestVerificationEmail:
    def test_link(self) -> None:
        assert build_verification_link("https://app.example/", "a b") == "https://app.example/verify-email?token=a+b"

    def test_template_escapes_and_includes_link(self) -> None:
        html = render_verification_email("<script>", "https://app.example/verify-email?token=abc", 24)
        assert "&lt;script&gt;" in html
        assert "https://app.example/verify-email?token=abc" in html
        assert "24" in html

    def test_sender_selection(self) -> None:
        assert isinstance(build_email_sender(Settings(debug=True, secret_key=GOOD_KEY)), LoggingEmailSender)
        smtp = Settings(debug=True, secret_key=GOOD_KEY, smtp_host="mail.example")
        assert isinstance(build_email_sender(smtp), SmtpEmailSender)

    def test_logging_sender_logs_link(self, caplog) -> None:
        sender = LoggingEmailSender(Settings(debug=True, secret_key=GOOD_KEY, frontend_url="http://ui"))
        with caplog.at_level(logging.INFO, logger="lorekeeper.notify"):
            sender.send_verification("sam@example.com", "sam", "tok")
        assert "http://ui/verify-email?token=tok" in caplog.text

    def test_smtp_failure_raises_delivery_error(self, monkeypatch) -> None:
        class _Refusing:
            def __init__(self, *args, **kwargs):
                raise smtplib.SMTPConnectError(421, "go away")

        monkeypatch.setattr("notify.email.smtplib.SMTP", _Refusing)
        sender = SmtpEmailSender(Settings(debug=True, secret_key=GOOD_KEY, smtp_host="mail.example"))
        with pytest.raises(EmailDeliveryError):
            sender.send_verification("sam@example.com", "sam", "tok")

    def test_smtp_sends_message(self, monkeypatch) -> None:
        sent = []

        class _FakeSMTP:
            def __init__(self, host, port, timeout):
                self.host = host

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def starttls(self):
                pass

            def login(self, user, password):
                pass

            def send_message(self, msg):
                sent.append(msg)

        monkeypatch.setattr("notify.email.smtplib.SMTP", _FakeSMTP)
        sender = SmtpEmailSender(Settings(debug=True, secret_key=GOOD_KEY, smtp_host="mail.example"))
        sender.send_verification("sam@example.com", "sam", "tok")
        assert len(sent) == 1
        assert sent[0]["To"] == "sam@example.com"
        assert sent[0]["Subject"] == "Verify Your Email - Lorekeeper"
