import structlog

from ...domain.entities import User, utcnow
from ...domain.errors import InvalidToken, TokenExpired
from ..ports import IUserRepository

logger = structlog.get_logger()


class VerifyEmail:
    def __init__(self, repo: IUserRepository, verification_tokens):
        self.repo = repo
        self.verification_tokens = verification_tokens

    def execute(self, raw_token: str) -> User:
        if not raw_token:
            raise InvalidToken("Verification token is required")
        stored = self.verification_tokens.stored_form(raw_token)
        user = self.repo.find_by_email_verification(stored)
        if user is None:
            raise InvalidToken("Invalid verification token")
        now = utcnow()
        if user.email_verification_expires is None or user.email_verification_expires <= now:
            raise TokenExpired(
                "Verification token has expired. Please request a new verification email."
            )
        if not self.repo.consume_email_verification(user.id, stored, now):
            raise InvalidToken("Invalid verification token")
        logger.info("email_verified", user_id=user.id)
        return self.repo.get_by_id(user.id)
