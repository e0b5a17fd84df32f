from dataclasses import dataclass, replace
from typing import Callable

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from ...config import settings
from ...domain.entities import Role, User
from ...domain.errors import Forbidden, Unauthorized
from ...infrastructure.db import get_db
from ...infrastructure.repositories import UserRepository
from ...infrastructure.security import (
    TokenExpiredError,
    TokenInvalidError,
    TokenMalformedError,
    TokenService,
)
from .deps import get_tokens

NOT_AUTHORIZED = "Not authorized to access this route"


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved from the bearer token for the current request."""

    user: User

    @property
    def role(self) -> Role:
        return self.user.role


def extract_token(request: Request, authorization: str | None) -> str | None:
    if authorization:
        scheme, _, value = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    if settings.AUTH_COOKIE_ENABLED:
        return request.cookies.get(settings.AUTH_COOKIE_NAME) or None
    return None


def protect(
    request: Request,
    authorization: str | None = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> AuthContext:
    token = extract_token(request, authorization)
    if not token:
        raise Unauthorized(NOT_AUTHORIZED)

    try:
        claims = tokens.verify(token)
    except TokenMalformedError:
        raise Unauthorized("Not authorized, token malformed", code="TOKEN_MALFORMED")
    except TokenInvalidError:
        raise Unauthorized("Not authorized, token invalid", code="TOKEN_INVALID")
    except TokenExpiredError:
        raise Unauthorized("Not authorized, token expired", code="TOKEN_EXPIRED")

    user = UserRepository(db).get_by_id(claims.user_id)
    if user is None:
        raise Unauthorized("The user belonging to this token no longer exists")
    # токены, выданные до смены пароля, больше не принимаются
    if (user.password_changed_at and claims.issued_at
            and user.password_changed_at.replace(microsecond=0) > claims.issued_at):
        raise Unauthorized("User recently changed password. Please log in again.")

    ctx = AuthContext(user=replace(user, password_hash=""))
    request.state.auth = ctx
    return ctx


def authorize(*roles: Role | str) -> Callable[..., AuthContext]:
    allowed = {Role(r) for r in roles}

    def dependency(ctx: AuthContext = Depends(protect)) -> AuthContext:
        if ctx is None:
            raise Unauthorized(NOT_AUTHORIZED)
        if ctx.role not in allowed:
            raise Forbidden(f"User role {ctx.role.value} is not authorized to access this route")
        return ctx

    return dependency
