from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class User:
    id: int | None
    name: str
    email: str
    role: Role = Role.STUDENT
    is_email_verified: bool = False
    password_hash: str = field(default="", repr=False)
    password_changed_at: datetime | None = None
    email_verification_expires: datetime | None = None
    reset_password_expires: datetime | None = None
    created_at: datetime | None = None

    @property
    def requires_email_verification(self) -> bool:
        return self.role is Role.TEACHER and not self.is_email_verified


@dataclass(frozen=True)
class TeacherGrant:
    id: int | None
    email: str
    added_by: int | None = None
    is_verified: bool = False
    is_used: bool = False
    verification_expires: datetime | None = None
    verified_at: datetime | None = None
    used_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class EmailDomainPolicy:
    """Maps each role to the email domain it may register with."""

    student_domain: str
    staff_domain: str

    def required_domain(self, role: Role) -> str:
        if role is Role.STUDENT:
            return self.student_domain
        return self.staff_domain

    def allows(self, email: str, role: Role) -> bool:
        _, sep, domain = email.strip().lower().rpartition("@")
        return bool(sep) and domain == self.required_domain(role).lower()
