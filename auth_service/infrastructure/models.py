from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain.entities import utcnow


class Base(DeclarativeBase): pass


class UserORM(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default="student", nullable=False)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # sha256 hex of the raw secret; unique so one secret resolves to one account
    email_verification_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    email_verification_expires: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reset_password_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    reset_password_expires: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    password_changed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"UserORM(id={self.id!r}, email={self.email!r}, role={self.role!r})"


class TeacherEmailORM(Base):
    __tablename__ = "teacher_emails"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    added_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # numeric codes are stored raw, opaque tokens as sha256 hex; looked up by (email, code)
    verification_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verification_expires: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # wrong codes entered against the pending code
    verification_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"TeacherEmailORM(id={self.id!r}, email={self.email!r}, used={self.is_used!r})"
