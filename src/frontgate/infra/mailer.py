"""SMTP mail delivery.

Every send states its failure policy explicitly:
- "propagate": raise MailDeliveryError (caller's operation fails)
- "log": log the failure and return False (caller's primary write stands)
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Literal, Sequence

from frontgate.domain.errors import MailDeliveryError
from frontgate.infra.settings import Settings, get_settings
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

OnFailure = Literal["propagate", "log"]


@dataclass
class Attachment:
    """Binary attachment for an outgoing message."""

    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


@dataclass
class Mailer:
    """Thin SMTP client configured from Settings."""

    host: str | None
    port: int = 587
    user: str | None = None
    password: str | None = None
    from_addr: str = "no-reply@frontgate.local"
    timeout: int = 15

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Mailer":
        s = settings or get_settings()
        return cls(
            host=s.smtp_host,
            port=s.smtp_port,
            user=s.smtp_user,
            password=s.smtp_password,
            from_addr=s.mail_from,
            timeout=s.smtp_timeout_seconds,
        )

    def _build_message(
        self,
        to: str,
        subject: str,
        html: str,
        attachments: Sequence[Attachment],
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        msg["Message-ID"] = make_msgid()
        msg.set_content(html, subtype="html")
        for att in attachments:
            maintype, _, subtype = att.mime_type.partition("/")
            msg.add_attachment(
                att.content,
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=att.filename,
            )
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        if not self.host:
            raise MailDeliveryError("SMTP host not configured")
        use_ssl = self.port == 465
        smtp_cls = smtplib.SMTP_SSL if use_ssl else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            if not use_ssl:
                server.starttls()
                server.ehlo()
            if self.user:
                server.login(self.user, self.password or "")
            server.send_message(msg)

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        attachments: Sequence[Attachment] = (),
        *,
        on_failure: OnFailure,
    ) -> bool:
        """Send one message.

        Returns:
            True when delivered; False when delivery failed under on_failure="log".

        Raises:
            MailDeliveryError: On failure when on_failure="propagate".
        """
        msg = self._build_message(to, subject, html, attachments)
        try:
            self._deliver(msg)
        except (smtplib.SMTPException, OSError, MailDeliveryError) as exc:
            logger.error(
                "mail delivery failed",
                exc_info=True,
                extra={
                    "extra_fields": safe_log_context(
                        to=to,
                        subject=subject,
                        on_failure=on_failure,
                        error_type=type(exc).__name__,
                    )
                },
            )
            if on_failure == "propagate":
                if isinstance(exc, MailDeliveryError):
                    raise
                raise MailDeliveryError("Could not deliver e-mail, please try again") from exc
            return False

        logger.info(
            "mail delivered",
            extra={"extra_fields": safe_log_context(to=to, subject=subject)},
        )
        return True


def get_mailer() -> Mailer:
    """FastAPI dependency: mailer built from process settings."""
    return Mailer.from_settings()
