from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
    pass


@dataclass(frozen=True)
class SmtpMailer:
    host: str
    port: int
    user: str
    password: str
    sender: str
    use_tls: bool = True
    timeout_seconds: int = 30

    @classmethod
    def from_config(cls, config: Any) -> "SmtpMailer":
        return cls(
            host=config.get("SMTP_HOST") or "",
            port=int(config.get("SMTP_PORT") or 587),
            user=config.get("SMTP_USER") or "",
            password=config.get("SMTP_PASS") or "",
            sender=config.get("SMTP_FROM") or "",
            use_tls=bool(config.get("SMTP_USE_TLS", True)),
        )

    def needs_auth(self) -> bool:
        # Port 25 relays accept unauthenticated mail.
        return self.port != 25

    def is_configured(self) -> bool:
        if not (self.host and self.port and self.sender):
            return False
        if self.needs_auth() and not (self.user and self.password):
            return False
        return True

    def send(self, to_email: str, subject: str, html: str, text: str | None = None) -> None:
        if not self.is_configured():
            raise MailerError("SMTP is not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_email
        if text:
            msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
                if self.use_tls and self.port != 25:
                    server.starttls()
                if self.needs_auth():
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailerError(f"SMTP send failed: {e}") from e
        logger.info("Email sent to=%s subject=%s", to_email, subject)
