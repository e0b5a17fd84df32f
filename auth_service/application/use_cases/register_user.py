import secrets
from typing import Callable

import structlog

from ...domain.entities import EmailDomainPolicy, Role, utcnow
from ...domain.errors import Conflict, Forbidden, ValidationFailed
from ...infrastructure.mailer import MailDeliveryError
from ..dto import RegisterUserInput, RegistrationResult
from ..ports import IMailer, IPasswordHasher, ITeacherGrantRepository, IUserRepository

logger = structlog.get_logger()

TEACHER_NOT_AUTHORIZED = "This email is not authorized for teacher access or has already been used."


class RegisterUser:
    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher,
                 policy: EmailDomainPolicy, grants: ITeacherGrantRepository | None = None,
                 verification_tokens=None, mailer: IMailer | None = None,
                 admin_key: str | None = None):
        self.repo = repo
        self.hasher = hasher
        self.policy = policy
        self.grants = grants
        self.verification_tokens = verification_tokens
        self.mailer = mailer
        self.admin_key = admin_key

    def execute(self, data: RegisterUserInput,
                link_for: Callable[[str], str] | None = None) -> RegistrationResult:
        email = data.email.strip().lower()
        role = Role(data.role)

        # domain rule runs before anything touches the store
        if not self.policy.allows(email, role):
            domain = self.policy.required_domain(role)
            raise ValidationFailed(
                f"{role.value.capitalize()} registration requires a @{domain} email address."
            )
        if role is Role.ADMIN:
            self._check_admin_key(data.admin_key)
        if self.repo.get_by_email(email):
            raise Conflict("User already exists with this email")
        if role is Role.TEACHER:
            grant = self.grants.get_by_email(email)
            if grant is None or grant.is_used or not grant.is_verified:
                raise ValidationFailed(TEACHER_NOT_AUTHORIZED)

        pwd_hash = self.hasher.hash(data.password)

        if role is not Role.TEACHER:
            user = self.repo.create(data.name.strip(), email, pwd_hash, role=role,
                                    is_email_verified=True)
            logger.info("user_registered", user_id=user.id, role=role.value)
            return RegistrationResult(user=user)

        return self._register_teacher(data.name.strip(), email, pwd_hash, link_for)

    def _register_teacher(self, name: str, email: str, pwd_hash: str,
                          link_for: Callable[[str], str] | None) -> RegistrationResult:
        secret = self.verification_tokens.generate()
        user = self.repo.create(name, email, pwd_hash, role=Role.TEACHER,
                                is_email_verified=False,
                                verification=(secret.stored, secret.expires_at),
                                commit=False)
        # grant is consumed in the same transaction as the insert
        if not self.grants.mark_used(email, utcnow(), commit=False):
            self.repo.rollback()
            raise ValidationFailed(TEACHER_NOT_AUTHORIZED)
        self.repo.commit()
        logger.info("user_registered", user_id=user.id, role=Role.TEACHER.value)

        url = link_for(secret.raw) if link_for else None
        minutes = int(self.verification_tokens.ttl.total_seconds() // 60)
        body = (
            "Thank you for registering as a teacher.\n\n"
            f"Verify your account: {url or secret.raw}\n\n"
            f"This link will expire in {minutes} minutes."
        )
        try:
            self.mailer.send(user.email, "Verify Your GitTutor Account", body)
            sent = True
        except MailDeliveryError as exc:
            logger.warning("email_delivery_failed", purpose="email_verification",
                           user_id=user.id, error=str(exc))
            sent = False
        return RegistrationResult(user=user, verification_token=secret.raw,
                                  verification_url=url, email_sent=sent)

    def _check_admin_key(self, presented: str | None) -> None:
        if not self.admin_key:
            raise Forbidden("Admin registration is disabled")
        if not presented or not secrets.compare_digest(presented, self.admin_key):
            raise Forbidden("Invalid admin key")
