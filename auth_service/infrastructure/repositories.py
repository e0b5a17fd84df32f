from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import TeacherEmailORM, UserORM
from ..domain.entities import Role, TeacherGrant, User
from ..domain.errors import Conflict
from ..application.ports import ITeacherGrantRepository, IUserRepository


def to_domain(u: UserORM) -> User:
    return User(
        id=u.id,
        name=u.name,
        email=u.email,
        role=Role(u.role),
        is_email_verified=u.is_email_verified,
        password_hash=u.password_hash,
        password_changed_at=u.password_changed_at,
        email_verification_expires=u.email_verification_expires,
        reset_password_expires=u.reset_password_expires,
        created_at=u.created_at,
    )


def grant_to_domain(g: TeacherEmailORM) -> TeacherGrant:
    return TeacherGrant(
        id=g.id,
        email=g.email,
        added_by=g.added_by,
        is_verified=g.is_verified,
        is_used=g.is_used,
        verification_expires=g.verification_expires,
        verified_at=g.verified_at,
        used_at=g.used_at,
        created_at=g.created_at,
    )


class SqlRepository:
    def __init__(self, db: Session): self.db = db

    def commit(self) -> None: self.db.commit()

    def rollback(self) -> None: self.db.rollback()

    def _update(self, stmt, commit: bool = True) -> int:
        """Run a conditional UPDATE; the row count says whether it matched."""
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if commit:
            self.db.commit()
        return result.rowcount


class UserRepository(SqlRepository, IUserRepository):
    def get_by_id(self, user_id: int) -> User | None:
        row = self.db.get(UserORM, user_id)
        return to_domain(row) if row else None

    def get_by_email(self, email: str) -> User | None:
        row = self.db.query(UserORM).filter(UserORM.email == email.lower()).first()
        return to_domain(row) if row else None

    def create(self, name: str, email: str, password_hash: str, role: Role = Role.STUDENT,
               is_email_verified: bool = True, verification: tuple[str, datetime] | None = None,
               commit: bool = True) -> User:
        row = UserORM(name=name, email=email.lower(), password_hash=password_hash,
                      role=Role(role).value, is_email_verified=is_email_verified)
        if verification:
            row.email_verification_token, row.email_verification_expires = verification
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # unique index on email settles concurrent registrations
            self.db.rollback()
            raise Conflict("User already exists with this email") from exc
        if commit:
            self.db.commit(); self.db.refresh(row)
        return to_domain(row)

    def set_email_verification(self, user_id: int, stored: str, expires_at: datetime) -> None:
        self._update(update(UserORM).where(UserORM.id == user_id).values(
            email_verification_token=stored, email_verification_expires=expires_at))

    def find_by_email_verification(self, stored: str) -> User | None:
        row = self.db.query(UserORM).filter(UserORM.email_verification_token == stored).first()
        return to_domain(row) if row else None

    def consume_email_verification(self, user_id: int, stored: str, now: datetime) -> bool:
        stmt = (
            update(UserORM)
            .where(UserORM.id == user_id,
                   UserORM.email_verification_token == stored,
                   UserORM.email_verification_expires > now)
            .values(is_email_verified=True,
                    email_verification_token=None,
                    email_verification_expires=None)
        )
        return self._update(stmt) == 1

    def set_reset_token(self, user_id: int, stored: str, expires_at: datetime) -> None:
        self._update(update(UserORM).where(UserORM.id == user_id).values(
            reset_password_token=stored, reset_password_expires=expires_at))

    def clear_reset_token(self, user_id: int) -> None:
        self._update(update(UserORM).where(UserORM.id == user_id).values(
            reset_password_token=None, reset_password_expires=None))

    def find_by_reset_token(self, stored: str) -> User | None:
        row = self.db.query(UserORM).filter(UserORM.reset_password_token == stored).first()
        return to_domain(row) if row else None

    def consume_reset_token(self, user_id: int, stored: str, now: datetime, password_hash: str) -> bool:
        stmt = (
            update(UserORM)
            .where(UserORM.id == user_id,
                   UserORM.reset_password_token == stored,
                   UserORM.reset_password_expires > now)
            .values(password_hash=password_hash,
                    password_changed_at=now,
                    reset_password_token=None,
                    reset_password_expires=None)
        )
        return self._update(stmt) == 1

    def touch_last_login(self, user_id: int, now: datetime) -> None:
        self._update(update(UserORM).where(UserORM.id == user_id).values(last_login_at=now))


class TeacherEmailRepository(SqlRepository, ITeacherGrantRepository):
    def get_by_email(self, email: str) -> TeacherGrant | None:
        row = self.db.query(TeacherEmailORM).filter(TeacherEmailORM.email == email.lower()).first()
        return grant_to_domain(row) if row else None

    def list_all(self) -> list[TeacherGrant]:
        rows = (self.db.query(TeacherEmailORM)
                .order_by(TeacherEmailORM.created_at.desc(), TeacherEmailORM.id.desc())
                .all())
        return [grant_to_domain(r) for r in rows]

    def create(self, email: str, added_by: int | None, is_verified: bool = False) -> TeacherGrant:
        row = TeacherEmailORM(email=email.lower(), added_by=added_by, is_verified=is_verified)
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("This email is already in the system") from exc
        self.db.commit(); self.db.refresh(row)
        return grant_to_domain(row)

    def set_code(self, grant_id: int, stored: str, expires_at: datetime) -> None:
        self._update(update(TeacherEmailORM).where(TeacherEmailORM.id == grant_id).values(
            verification_code=stored, verification_expires=expires_at, verification_attempts=0))

    def find_by_code(self, email: str, stored: str) -> TeacherGrant | None:
        row = (self.db.query(TeacherEmailORM)
               .filter(TeacherEmailORM.email == email.lower(),
                       TeacherEmailORM.verification_code == stored)
               .first())
        return grant_to_domain(row) if row else None

    def record_failed_attempt(self, email: str, max_attempts: int) -> None:
        """Count a wrong code; the pending code is dropped once the limit is reached."""
        email = email.lower()
        self._update(update(TeacherEmailORM)
                     .where(TeacherEmailORM.email == email,
                            TeacherEmailORM.verification_code.is_not(None))
                     .values(verification_attempts=TeacherEmailORM.verification_attempts + 1),
                     commit=False)
        self._update(update(TeacherEmailORM)
                     .where(TeacherEmailORM.email == email,
                            TeacherEmailORM.verification_attempts >= max_attempts)
                     .values(verification_code=None, verification_expires=None))

    def consume_code(self, grant_id: int, stored: str, now: datetime) -> bool:
        stmt = (
            update(TeacherEmailORM)
            .where(TeacherEmailORM.id == grant_id,
                   TeacherEmailORM.verification_code == stored,
                   TeacherEmailORM.verification_expires > now,
                   TeacherEmailORM.is_verified.is_(False),
                   TeacherEmailORM.is_used.is_(False))
            .values(is_verified=True,
                    verified_at=now,
                    verification_code=None,
                    verification_expires=None)
        )
        return self._update(stmt) == 1

    def mark_used(self, email: str, now: datetime, commit: bool = True) -> bool:
        stmt = (
            update(TeacherEmailORM)
            .where(TeacherEmailORM.email == email.lower(),
                   TeacherEmailORM.is_verified.is_(True),
                   TeacherEmailORM.is_used.is_(False))
            .values(is_used=True, used_at=now)
        )
        return self._update(stmt, commit=commit) == 1
