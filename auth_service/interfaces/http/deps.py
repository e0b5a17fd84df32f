from fastapi import Request

from ...config import settings
from ...domain.entities import EmailDomainPolicy
from ...infrastructure.mailer import Mailer
from ...infrastructure.security import PasswordHasher, TokenService


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher

def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens

def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer

def domain_policy() -> EmailDomainPolicy:
    return EmailDomainPolicy(
        student_domain=settings.STUDENT_EMAIL_DOMAIN,
        staff_domain=settings.STAFF_EMAIL_DOMAIN,
    )
