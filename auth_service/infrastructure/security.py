from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext

from ..domain.entities import Role


class PasswordHasher:
    """Adaptive one-way password hashing; every hash embeds its own salt."""

    def __init__(self, rounds: int = 12):
        if rounds < 10:
            raise ValueError("bcrypt cost factor must be at least 10")
        self._ctx = CryptContext(
            schemes=["bcrypt_sha256"],
            deprecated="auto",
            bcrypt_sha256__rounds=rounds,
        )

    def hash(self, plain: str) -> str: return self._ctx.hash(plain)

    def verify(self, plain: str, hashed: str | None) -> bool:
        if not hashed:
            return False
        try:
            return self._ctx.verify(plain, hashed)
        except (ValueError, TypeError):
            return False

    def dummy_verify(self) -> bool:
        """Spend one verification worth of time for an unknown account."""
        return self._ctx.dummy_verify()


class TokenError(Exception):
    """Base for bearer token verification failures."""


class TokenMalformedError(TokenError):
    """The token cannot be parsed into a claim set."""


class TokenInvalidError(TokenError):
    """The signature does not verify against the signing secret."""


class TokenExpiredError(TokenError):
    """The signature is valid but `exp` is in the past."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: Role
    issued_at: datetime | None = None


class TokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24 * 30):
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime = timedelta(minutes=expire_minutes)

    def issue(self, user_id: int, role: Role | str, expires_in: timedelta | None = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": Role(role).value,
            "iat": now,
            "exp": now + (expires_in if expires_in is not None else self.lifetime),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenMalformedError("token could not be parsed") from exc

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("token has expired") from exc
        except JWTError as exc:
            raise TokenInvalidError("token signature is invalid") from exc

        return self._claims(payload)

    @staticmethod
    def _claims(payload: dict) -> TokenClaims:
        try:
            user_id = int(payload["sub"])
            role = Role(payload["role"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenMalformedError("token is missing identity claims") from exc
        iat = payload.get("iat")
        issued_at = None
        if isinstance(iat, (int, float)):
            issued_at = datetime.fromtimestamp(iat, tz=timezone.utc).replace(tzinfo=None)
        return TokenClaims(user_id=user_id, role=role, issued_at=issued_at)
