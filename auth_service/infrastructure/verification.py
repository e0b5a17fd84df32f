"""
Single-use, time-boxed secrets for email verification, password reset and
teacher pre-authorization.

Two strategies exist and a deployment picks one per flow:

* ``opaque`` - 32 random bytes, hex encoded. Only the sha256 digest is stored;
  the raw value travels to the user inside a link.
* ``numeric`` - a six digit code typed in by a person. Stored and compared as
  is, so it is only suitable for short-lived, rate-limited flows.
"""
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..domain.entities import utcnow


@dataclass(frozen=True)
class IssuedSecret:
    raw: str
    stored: str
    expires_at: datetime


class OpaqueTokenStrategy:
    name = "opaque"

    def __init__(self, nbytes: int = 32):
        self.nbytes = nbytes

    def new_raw(self) -> str:
        return secrets.token_bytes(self.nbytes).hex()

    def stored_form(self, raw: str) -> str:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class NumericCodeStrategy:
    name = "numeric"

    def __init__(self, digits: int = 6):
        self.low = 10 ** (digits - 1)
        self.span = 9 * self.low

    def new_raw(self) -> str:
        return str(self.low + secrets.randbelow(self.span))

    def stored_form(self, raw: str) -> str:
        return raw.strip()


STRATEGIES = {
    OpaqueTokenStrategy.name: OpaqueTokenStrategy,
    NumericCodeStrategy.name: NumericCodeStrategy,
}


class VerificationTokenGenerator:
    def __init__(self, strategy, ttl: timedelta):
        self.strategy = strategy
        self.ttl = ttl

    @classmethod
    def for_strategy(cls, name: str, ttl: timedelta) -> "VerificationTokenGenerator":
        try:
            strategy = STRATEGIES[name]()
        except KeyError:
            raise ValueError(f"unknown token strategy: {name!r}") from None
        return cls(strategy, ttl)

    def generate(self, now: datetime | None = None) -> IssuedSecret:
        raw = self.strategy.new_raw()
        return IssuedSecret(
            raw=raw,
            stored=self.strategy.stored_form(raw),
            expires_at=(now or utcnow()) + self.ttl,
        )

    def stored_form(self, raw: str) -> str:
        return self.strategy.stored_form(raw)


def email_verification_tokens(settings) -> VerificationTokenGenerator:
    return VerificationTokenGenerator(
        OpaqueTokenStrategy(), timedelta(minutes=settings.EMAIL_VERIFICATION_TTL_MINUTES)
    )


def password_reset_tokens(settings) -> VerificationTokenGenerator:
    return VerificationTokenGenerator(
        OpaqueTokenStrategy(), timedelta(minutes=settings.RESET_PASSWORD_TTL_MINUTES)
    )


def teacher_codes(settings) -> VerificationTokenGenerator:
    return VerificationTokenGenerator.for_strategy(
        settings.TEACHER_CODE_STRATEGY, timedelta(hours=settings.TEACHER_CODE_TTL_HOURS)
    )
