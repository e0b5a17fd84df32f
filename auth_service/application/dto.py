from dataclasses import dataclass

from ..domain.entities import Role, User


@dataclass
class RegisterUserInput:
    name: str
    email: str
    password: str
    role: Role = Role.STUDENT
    admin_key: str | None = None


@dataclass
class RegistrationResult:
    user: User
    verification_token: str | None = None
    verification_url: str | None = None
    email_sent: bool = False


@dataclass
class ImportRow:
    email: str
    status: str
