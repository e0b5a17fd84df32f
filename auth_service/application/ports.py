from datetime import datetime

from ..domain.entities import Role, TeacherGrant, User


class IUserRepository:
    def get_by_id(self, user_id: int) -> User | None: ...
    def get_by_email(self, email: str) -> User | None: ...
    def create(self, name: str, email: str, password_hash: str, role: Role = Role.STUDENT,
               is_email_verified: bool = True, verification: tuple[str, datetime] | None = None,
               commit: bool = True) -> User: ...
    def set_email_verification(self, user_id: int, stored: str, expires_at: datetime) -> None: ...
    def find_by_email_verification(self, stored: str) -> User | None: ...
    def consume_email_verification(self, user_id: int, stored: str, now: datetime) -> bool: ...
    def set_reset_token(self, user_id: int, stored: str, expires_at: datetime) -> None: ...
    def clear_reset_token(self, user_id: int) -> None: ...
    def find_by_reset_token(self, stored: str) -> User | None: ...
    def consume_reset_token(self, user_id: int, stored: str, now: datetime, password_hash: str) -> bool: ...
    def touch_last_login(self, user_id: int, now: datetime) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


class ITeacherGrantRepository:
    def get_by_email(self, email: str) -> TeacherGrant | None: ...
    def list_all(self) -> list[TeacherGrant]: ...
    def create(self, email: str, added_by: int | None, is_verified: bool = False) -> TeacherGrant: ...
    def set_code(self, grant_id: int, stored: str, expires_at: datetime) -> None: ...
    def find_by_code(self, email: str, stored: str) -> TeacherGrant | None: ...
    def record_failed_attempt(self, email: str, max_attempts: int) -> None: ...
    def consume_code(self, grant_id: int, stored: str, now: datetime) -> bool: ...
    def mark_used(self, email: str, now: datetime, commit: bool = True) -> bool: ...


class IPasswordHasher:
    def hash(self, plain: str) -> str: ...
    def verify(self, plain: str, hashed: str | None) -> bool: ...
    def dummy_verify(self) -> bool: ...


class IMailer:
    def send(self, to: str, subject: str, body: str) -> None: ...
