from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./auth.db"
    SECRET_KEY: str = "dev-secret-auth"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 30
    BCRYPT_ROUNDS: int = Field(default=12, ge=10, le=16)
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # email domain suffix accepted per role
    STUDENT_EMAIL_DOMAIN: str = "students.git.edu"
    STAFF_EMAIL_DOMAIN: str = "git.edu"
    ADMIN_REGISTRATION_KEY: str | None = None

    EMAIL_VERIFICATION_TTL_MINUTES: int = 10
    RESET_PASSWORD_TTL_MINUTES: int = 10
    TEACHER_CODE_TTL_HOURS: int = 24
    TEACHER_CODE_STRATEGY: Literal["numeric", "opaque"] = "numeric"
    TEACHER_CODE_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    TEACHER_GRANT_REQUIRES_VERIFICATION: bool = True

    AUTH_COOKIE_ENABLED: bool = False
    AUTH_COOKIE_NAME: str = "token"

    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "GitTutor <noreply@git.edu>"
    FRONTEND_URL: str | None = None

    RATE_LIMIT_ENABLED: bool = True
    # e.g. redis://localhost:6379/1 in deployments
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_PER_MINUTE: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
