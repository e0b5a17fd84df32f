from typing import Callable

import structlog

from ...domain.entities import User, utcnow
from ...domain.errors import EmailNotVerified, Unauthorized
from ...infrastructure.mailer import MailDeliveryError
from ..ports import IMailer, IPasswordHasher, IUserRepository

logger = structlog.get_logger()

INVALID_CREDENTIALS = "Invalid credentials"


class LoginUser:
    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher,
                 verification_tokens=None, mailer: IMailer | None = None):
        self.repo = repo
        self.hasher = hasher
        self.verification_tokens = verification_tokens
        self.mailer = mailer

    def execute(self, email: str, password: str,
                link_for: Callable[[str], str] | None = None) -> User:
        user = self.repo.get_by_email(email.strip().lower())
        if user is None:
            # same amount of hashing work as a real mismatch
            self.hasher.dummy_verify()
            logger.info("login_failed", reason="invalid_credentials")
            raise Unauthorized(INVALID_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("login_failed", reason="invalid_credentials")
            raise Unauthorized(INVALID_CREDENTIALS)

        if user.requires_email_verification:
            undelivered = self._resend_verification(user, link_for)
            logger.info("login_failed", reason="email_not_verified", user_id=user.id)
            if undelivered:
                # the fresh token replaced any earlier one, so hand it back directly
                raw, url = undelivered
                raise EmailNotVerified(verificationToken=raw, verificationUrl=url)
            raise EmailNotVerified()

        self.repo.touch_last_login(user.id, utcnow())
        logger.info("login_succeeded", user_id=user.id, role=user.role.value)
        return user

    def _resend_verification(self, user: User,
                             link_for: Callable[[str], str] | None) -> tuple[str, str | None] | None:
        """Store and mail a fresh token; returns (raw, url) when the mail did not go out."""
        if self.verification_tokens is None or self.mailer is None:
            return None
        secret = self.verification_tokens.generate()
        self.repo.set_email_verification(user.id, secret.stored, secret.expires_at)
        url = link_for(secret.raw) if link_for else None
        try:
            self.mailer.send(user.email, "Verify Your GitTutor Account",
                             f"Please verify your email: {url or secret.raw}")
        except MailDeliveryError as exc:
            logger.warning("email_delivery_failed", purpose="email_verification",
                           user_id=user.id, error=str(exc))
            return secret.raw, url
        return None
