import smtplib
from email.message import EmailMessage
from typing import Protocol

import structlog

logger = structlog.get_logger()


class MailDeliveryError(Exception):
    pass


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class SmtpMailer:
    def __init__(self, host: str, port: int, username: str, password: str,
                 sender: str, use_tls: bool = True, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(str(exc)) from exc
        logger.info("email_sent", to=to, subject=subject)


class DisabledMailer:
    """Used when SMTP credentials are missing; every send fails."""

    def send(self, to: str, subject: str, body: str) -> None:
        raise MailDeliveryError("email delivery is not configured")


def build_mailer(settings) -> Mailer:
    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.warning("smtp_not_configured", missing=["SMTP_USERNAME", "SMTP_PASSWORD"])
        return DisabledMailer()
    return SmtpMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        sender=settings.EMAIL_FROM,
        use_tls=settings.SMTP_USE_TLS,
    )
