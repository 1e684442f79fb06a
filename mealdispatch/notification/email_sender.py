"""SMTP delivery channel.

Each call to ``send_batch`` delivers one chunk over a single SMTP
session.  A recipient-level refusal fails only that message; a
connection or session failure raises ``ChannelError`` and the caller
treats the whole chunk as failed, since it cannot tell which messages
went out.

Safety: recipient addresses are never logged -- only recipient ids.
"""
from __future__ import annotations

import logging
import smtplib
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Literal

from mealdispatch.campaign.errors import ChannelError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Message and receipt
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutboundMessage:
    """One rendered email.  Built just before sending, never persisted."""

    recipient_id: str
    to: str
    subject: str
    html_body: str
    text_body: str | None = None


@dataclass
class DeliveryReceipt:
    """Outcome of a single message within a chunk."""

    recipient_id: str
    status: Literal["SENT", "FAILED"]
    timestamp: datetime
    smtp_response: str | None = None


# ---------------------------------------------------------------------------
# SmtpEmailChannel
# ---------------------------------------------------------------------------

class SmtpEmailChannel:
    """Send chunks of ``OutboundMessage`` through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        mail_from: str = "noreply@mealplan.local",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.mail_from = mail_from
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_mime(self, message: OutboundMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.mail_from
        msg["To"] = message.to
        # Clients render the last alternative they support, so HTML goes last.
        if message.text_body:
            msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    def _send_one(self, server: smtplib.SMTP, message: OutboundMessage) -> DeliveryReceipt:
        msg = self._build_mime(message)
        try:
            server.sendmail(self.mail_from, [message.to], msg.as_string())
        except (smtplib.SMTPRecipientsRefused, smtplib.SMTPDataError) as exc:
            logger.warning("SMTP refused message for recipient %s: %s", message.recipient_id, exc.__class__.__name__)
            return DeliveryReceipt(
                recipient_id=message.recipient_id,
                status="FAILED",
                timestamp=datetime.now(timezone.utc),
                smtp_response=str(exc),
            )
        return DeliveryReceipt(
            recipient_id=message.recipient_id,
            status="SENT",
            timestamp=datetime.now(timezone.utc),
            smtp_response="250 OK",
        )

    def send_batch(self, messages: Sequence[OutboundMessage]) -> list[DeliveryReceipt]:
        """Deliver *messages* over one SMTP session.

        Raises ``ChannelError`` when the session itself fails.
        """
        if not messages:
            return []
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password or "")
                receipts = [self._send_one(server, m) for m in messages]
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelError(f"SMTP session failed: {exc.__class__.__name__}: {exc}") from exc

        sent = sum(1 for r in receipts if r.status == "SENT")
        logger.info("SMTP chunk delivered: %d sent, %d failed", sent, len(receipts) - sent)
        return receipts


def build_smtp_channel() -> SmtpEmailChannel:
    from mealdispatch.core.settings import get_settings

    settings = get_settings()
    return SmtpEmailChannel(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        mail_from=settings.mail_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )
