"""
Teacher allow-list: admins pre-authorize staff emails, the owner of an email
proves control with a one-time code, and registration consumes the grant.
"""
import csv
import io
from typing import Callable

import structlog

from ...domain.entities import EmailDomainPolicy, Role, TeacherGrant, utcnow
from ...domain.errors import Conflict, DeliveryFailed, InvalidToken, TokenExpired, ValidationFailed
from ...infrastructure.mailer import MailDeliveryError
from ..dto import ImportRow
from ..ports import IMailer, ITeacherGrantRepository

logger = structlog.get_logger()


class AddTeacherEmail:
    def __init__(self, grants: ITeacherGrantRepository, policy: EmailDomainPolicy,
                 requires_verification: bool = True):
        self.grants = grants
        self.policy = policy
        self.requires_verification = requires_verification

    def execute(self, email: str, added_by: int | None) -> TeacherGrant:
        email = email.strip().lower()
        if not self.policy.allows(email, Role.TEACHER):
            domain = self.policy.required_domain(Role.TEACHER)
            raise ValidationFailed(f"Please provide a valid teacher email ending with @{domain}")
        if self.grants.get_by_email(email):
            raise Conflict("This email is already in the system")
        grant = self.grants.create(email, added_by, is_verified=not self.requires_verification)
        logger.info("teacher_email_added", grant_id=grant.id, added_by=added_by)
        return grant


class ImportTeacherEmails:
    def __init__(self, add: AddTeacherEmail):
        self.add = add

    def execute(self, content: bytes, added_by: int | None) -> list[ImportRow]:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationFailed("Please upload a UTF-8 encoded CSV file")

        results: list[ImportRow] = []
        seen: set[str] = set()
        for row in csv.reader(io.StringIO(text)):
            if not row:
                continue
            email = row[0].strip().lower()
            if not email or email == "email" or email in seen:
                continue
            seen.add(email)
            try:
                self.add.execute(email, added_by)
                results.append(ImportRow(email=email, status="added"))
            except Conflict:
                results.append(ImportRow(email=email, status="exists"))
            except ValidationFailed:
                results.append(ImportRow(email=email, status="invalid"))
        logger.info("teacher_emails_imported", total=len(results),
                    added=sum(1 for r in results if r.status == "added"))
        return results


class RequestTeacherVerification:
    def __init__(self, grants: ITeacherGrantRepository, codes, mailer: IMailer):
        self.grants = grants
        self.codes = codes
        self.mailer = mailer

    def execute(self, email: str, link_for: Callable[[str], str] | None = None) -> None:
        grant = self.grants.get_by_email(email.strip().lower())
        if grant is None or grant.is_verified or grant.is_used:
            raise ValidationFailed("This email is not authorized for teacher access")

        secret = self.codes.generate()
        self.grants.set_code(grant.id, secret.stored, secret.expires_at)
        hours = int(self.codes.ttl.total_seconds() // 3600)
        if link_for:
            instruction = f"Please open the following link to verify your teacher account: {link_for(secret.raw)}"
        else:
            instruction = f"Your teacher verification code is {secret.raw}"
        try:
            self.mailer.send(grant.email, "Verify Your Teacher Account",
                             f"{instruction}\n\nIt expires in {hours} hours.")
        except MailDeliveryError as exc:
            logger.warning("email_delivery_failed", purpose="teacher_code",
                           grant_id=grant.id, error=str(exc))
            raise DeliveryFailed("Error sending verification email") from exc
        logger.info("teacher_code_sent", grant_id=grant.id)


class VerifyTeacherCode:
    def __init__(self, grants: ITeacherGrantRepository, codes, max_attempts: int = 5):
        self.grants = grants
        self.codes = codes
        self.max_attempts = max_attempts

    def execute(self, email: str, code: str) -> TeacherGrant:
        email = email.strip().lower()
        stored = self.codes.stored_form(code)
        grant = self.grants.find_by_code(email, stored)
        if grant is None:
            self.grants.record_failed_attempt(email, self.max_attempts)
            raise InvalidToken("Invalid verification code", code="INVALID_CODE")
        now = utcnow()
        if grant.verification_expires is None or grant.verification_expires <= now:
            raise TokenExpired("Verification code has expired. Please request a new one.",
                               code="CODE_EXPIRED")
        if not self.grants.consume_code(grant.id, stored, now):
            raise InvalidToken("Invalid verification code", code="INVALID_CODE")
        logger.info("teacher_email_verified", grant_id=grant.id)
        return self.grants.get_by_email(email)
