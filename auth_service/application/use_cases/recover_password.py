from typing import Callable

import structlog

from ...domain.entities import User, utcnow
from ...domain.errors import DeliveryFailed, InvalidToken, NotFound, TokenExpired
from ...infrastructure.mailer import MailDeliveryError
from ..ports import IMailer, IPasswordHasher, IUserRepository

logger = structlog.get_logger()


class RequestPasswordReset:
    def __init__(self, repo: IUserRepository, reset_tokens, mailer: IMailer):
        self.repo = repo
        self.reset_tokens = reset_tokens
        self.mailer = mailer

    def execute(self, email: str, link_for: Callable[[str], str] | None = None) -> None:
        user = self.repo.get_by_email(email.strip().lower())
        if user is None:
            raise NotFound("No user found with that email")

        secret = self.reset_tokens.generate()
        self.repo.set_reset_token(user.id, secret.stored, secret.expires_at)
        url = link_for(secret.raw) if link_for else secret.raw
        try:
            self.mailer.send(
                user.email,
                "Password Reset Token",
                "You are receiving this email because you (or someone else) has requested "
                f"the reset of a password. Please make a PUT request to:\n\n{url}",
            )
        except MailDeliveryError as exc:
            # the token was never delivered, so it must not stay redeemable
            self.repo.clear_reset_token(user.id)
            logger.warning("email_delivery_failed", purpose="password_reset",
                           user_id=user.id, error=str(exc))
            raise DeliveryFailed() from exc
        logger.info("password_reset_requested", user_id=user.id)


class ResetPassword:
    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher, reset_tokens):
        self.repo = repo
        self.hasher = hasher
        self.reset_tokens = reset_tokens

    def execute(self, raw_token: str, new_password: str) -> User:
        stored = self.reset_tokens.stored_form(raw_token)
        user = self.repo.find_by_reset_token(stored)
        if user is None:
            raise InvalidToken("Invalid or expired token")
        now = utcnow()
        if user.reset_password_expires is None or user.reset_password_expires <= now:
            raise TokenExpired("Password reset token has expired. Please request a new one.")

        pwd_hash = self.hasher.hash(new_password)
        if not self.repo.consume_reset_token(user.id, stored, now, pwd_hash):
            # another request redeemed the same token first
            raise InvalidToken("Invalid or expired token")
        logger.info("password_reset_completed", user_id=user.id)
        return self.repo.get_by_id(user.id)
