"""Send HTML mail through SMTP."""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, host: str, port: int = 25, sender: str = "", user: str = "",
                 password: str = "", use_tls: bool = False, timeout: float = 30):
        self.host = host
        self.port = port
        self.sender = sender or user
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg) -> "Mailer":
        s = cfg.smtp
        return cls(s.host, port=s.port, sender=s.sender, user=s.user, password=s.password,
                   use_tls=s.use_tls, timeout=s.timeout)

    def send(self, recipients: list[str], subject: str, html: str) -> dict[str, Any]:
        """Send one message to all ``recipients``.

        Returns:
            A dict with ``success`` (bool), ``recipients``, and ``error`` (str)
            on failure.
        """
        recipients = sorted({r for r in recipients if r})
        if not recipients:
            return {"success": False, "recipients": [], "error": "no recipients"}

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg, from_addr=self.sender, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as e:
            return {"success": False, "recipients": recipients, "error": str(e)}

        logger.info("Mail %r sent to %s", subject, ", ".join(recipients))
        return {"success": True, "recipients": recipients}
