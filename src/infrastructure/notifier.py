"""
Email notifier.

Messages are rendered from the small template table below and delivered
over SMTP (STARTTLS) on a worker thread so the event loop never blocks.
With no ``smtp_host`` configured, delivery is skipped and the message is
only logged.  Callers treat every send as best effort.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Optional

logger = logging.getLogger(__name__)

TEMPLATES: dict[str, tuple[str, str]] = {
    "verify_email": (
        "Verify Your Email Address",
        "Hi {first_name},\n\nPlease verify your email address by opening "
        "this link:\n{verification_url}\n\nThe link expires in 24 hours.",
    ),
    "welcome": (
        "Welcome to Kenyan Ride Share",
        "Hi {first_name},\n\nYour {user_type} account is ready.",
    ),
    "ride_accepted": (
        "Your ride has been accepted",
        "Your driver {driver_name} ({vehicle}, {license_plate}) is on the way.",
    ),
    "ride_receipt": (
        "Your ride receipt",
        "Ride #{ride_id}: {distance_km:.1f} km, {duration_minutes} min.\n"
        "Total fare: KES {fare:.2f}",
    ),
    "payment_received": (
        "Payment received",
        "We received KES {amount:.2f} for ride #{ride_id}. "
        "M-Pesa receipt: {receipt}.",
    ),
}


class EmailNotifier:
    def __init__(
        self,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        from_email: str = "noreply@kenyanrideshare.com",
        from_name: str = "Kenyan Ride Share",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "EmailNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
        )

    @staticmethod
    def render(template: str, data: dict[str, Any]) -> tuple[str, str]:
        subject, body = TEMPLATES[template]
        return subject, body.format(**data)

    async def send(
        self, recipient: Optional[str], template: str, data: dict[str, Any]
    ) -> None:
        if not recipient:
            return
        subject, body = self.render(template, data)
        if not self.host:
            logger.info("Email delivery disabled; would send %r to %s", subject, recipient)
            return

        message = EmailMessage()
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        await asyncio.to_thread(self._deliver, message)
        logger.info("Sent %s email to %s", template, recipient)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
