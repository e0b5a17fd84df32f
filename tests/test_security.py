from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth_service.domain.entities import Role
from auth_service.infrastructure.security import (
    PasswordHasher,
    TokenExpiredError,
    TokenInvalidError,
    TokenMalformedError,
    TokenService,
)

SECRET = "unit-test-secret"


@pytest.fixture(scope="module")
def hasher():
    return PasswordHasher(rounds=10)


@pytest.fixture
def tokens():
    return TokenService(secret=SECRET, algorithm="HS256", expire_minutes=60)


def test_hash_verifies_plain_password(hasher):
    """Хеш проверяется исходным паролем и не совпадает с ним"""
    hashed = hasher.hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert hasher.verify("s3cret-pass", hashed) is True


def test_hash_rejects_other_password(hasher):
    hashed = hasher.hash("s3cret-pass")
    assert hasher.verify("S3cret-pass", hashed) is False


def test_hash_is_salted(hasher):
    """Два хеша одного пароля различаются (соль)"""
    assert hasher.hash("same-password") != hasher.hash("same-password")


def test_verify_never_raises_on_bad_hash(hasher):
    assert hasher.verify("anything", "not-a-bcrypt-hash") is False
    assert hasher.verify("anything", "") is False
    assert hasher.verify("anything", None) is False


def test_low_cost_factor_is_rejected():
    with pytest.raises(ValueError):
        PasswordHasher(rounds=4)


def test_issue_and_verify_roundtrip(tokens):
    """Выданный токен проверяется и содержит id и роль"""
    token = tokens.issue(42, Role.TEACHER)
    claims = tokens.verify(token)
    assert claims.user_id == 42
    assert claims.role is Role.TEACHER
    assert claims.issued_at is not None


def test_expired_token(tokens):
    token = tokens.issue(1, Role.STUDENT, expires_in=timedelta(seconds=-10))
    with pytest.raises(TokenExpiredError):
        tokens.verify(token)


def test_token_signed_with_other_secret_is_invalid(tokens):
    foreign = TokenService(secret="someone-else").issue(1, Role.ADMIN)
    with pytest.raises(TokenInvalidError):
        tokens.verify(foreign)


def test_tampered_payload_is_invalid(tokens):
    """Подмена роли в полезной нагрузке ломает подпись"""
    header, _, signature = tokens.issue(7, Role.STUDENT).split(".")
    now = datetime.now(timezone.utc)
    forged = jwt.encode({"sub": "7", "role": "admin", "iat": now, "exp": now + timedelta(hours=1)},
                        "attacker")
    _, forged_payload, _ = forged.split(".")
    with pytest.raises(TokenInvalidError):
        tokens.verify(f"{header}.{forged_payload}.{signature}")


@pytest.mark.parametrize("garbage", ["not-a-token", "a.b", "abc.def.ghi"])
def test_garbage_is_malformed(tokens, garbage):
    with pytest.raises(TokenMalformedError):
        tokens.verify(garbage)


def test_missing_identity_claims_are_malformed(tokens):
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": "1", "exp": now + timedelta(hours=1)}, SECRET, algorithm="HS256")
    with pytest.raises(TokenMalformedError):
        tokens.verify(token)
