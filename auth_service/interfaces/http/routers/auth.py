from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ....application.dto import RegisterUserInput
from ....application.use_cases.login_user import LoginUser
from ....application.use_cases.recover_password import RequestPasswordReset, ResetPassword
from ....application.use_cases.register_user import RegisterUser
from ....application.use_cases.verify_email import VerifyEmail
from ....config import settings
from ....domain.entities import Role
from ....domain.errors import AuthError
from ....infrastructure.db import get_db
from ....infrastructure.mailer import Mailer
from ....infrastructure.metrics import auth_events_total
from ....infrastructure.rate_limit import DEFAULT_LIMIT, LOGIN_LIMIT, limiter
from ....infrastructure.repositories import TeacherEmailRepository, UserRepository
from ....infrastructure.security import PasswordHasher, TokenService
from ....infrastructure.verification import email_verification_tokens, password_reset_tokens
from ..authz import AuthContext, protect
from ..deps import domain_policy, get_hasher, get_mailer, get_tokens
from ..schemas import (
    AdminRegisterReq,
    AuthResp,
    ForgotPasswordReq,
    LoginReq,
    MeResp,
    MessageResp,
    RegisterReq,
    RegisterResp,
    ResetPasswordReq,
    UserResp,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/health")
def health():
    return {"status": "ok"}


def _verify_link(request: Request):
    return lambda raw: str(request.url_for("verify_email", token=raw))


def _register_impl(request: Request, payload: RegisterReq, role: Role, db: Session,
                   hasher: PasswordHasher, mailer: Mailer, admin_key: str | None = None):
    uc = RegisterUser(
        repo=UserRepository(db),
        hasher=hasher,
        policy=domain_policy(),
        grants=TeacherEmailRepository(db),
        verification_tokens=email_verification_tokens(settings),
        mailer=mailer,
        admin_key=settings.ADMIN_REGISTRATION_KEY,
    )
    data = RegisterUserInput(name=payload.name, email=payload.email, password=payload.password,
                             role=role, admin_key=admin_key)
    try:
        result = uc.execute(data, link_for=_verify_link(request))
    except AuthError:
        auth_events_total.labels(event="register", outcome="failure").inc()
        raise
    auth_events_total.labels(event="register", outcome="success").inc()

    if role is not Role.TEACHER:
        return RegisterResp(message="Registration successful! You can now log in.")
    if result.email_sent:
        return RegisterResp(
            message="Registration successful! Please check your email to verify your account."
        )
    # доставка не удалась - отдаём токен, чтобы можно было подтвердить вручную
    return RegisterResp(
        message="Registration successful! However, we encountered an issue sending the "
                "verification email. Please use the verification token provided to verify "
                "your account.",
        verification_token=result.verification_token,
        verification_url=result.verification_url,
    )


@router.post("/register", response_model=RegisterResp, response_model_exclude_none=True,
             status_code=status.HTTP_201_CREATED)
@limiter.limit(DEFAULT_LIMIT)
def register(
    request: Request,
    payload: RegisterReq,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    mailer: Mailer = Depends(get_mailer),
):
    return _register_impl(request, payload, Role.STUDENT, db, hasher, mailer)


@router.post("/register/teacher", response_model=RegisterResp, response_model_exclude_none=True,
             status_code=status.HTTP_201_CREATED)
@limiter.limit(DEFAULT_LIMIT)
def register_teacher(
    request: Request,
    payload: RegisterReq,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    mailer: Mailer = Depends(get_mailer),
):
    return _register_impl(request, payload, Role.TEACHER, db, hasher, mailer)


@router.post("/register/admin", response_model=RegisterResp, response_model_exclude_none=True,
             status_code=status.HTTP_201_CREATED)
@limiter.limit(DEFAULT_LIMIT)
def register_admin(
    request: Request,
    payload: AdminRegisterReq,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    mailer: Mailer = Depends(get_mailer),
):
    return _register_impl(request, payload, Role.ADMIN, db, hasher, mailer,
                          admin_key=payload.admin_key)


def _session_response(response: Response, token: str) -> None:
    if settings.AUTH_COOKIE_ENABLED:
        response.set_cookie(
            settings.AUTH_COOKIE_NAME,
            token,
            max_age=settings.JWT_EXPIRE_MINUTES * 60,
            httponly=True,
            secure=not settings.DEBUG,
            samesite="lax",
        )


@router.post("/login", response_model=AuthResp, response_model_exclude_none=True)
@limiter.limit(LOGIN_LIMIT)
def login(
    request: Request,
    response: Response,
    payload: LoginReq,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_tokens),
    mailer: Mailer = Depends(get_mailer),
):
    uc = LoginUser(
        repo=UserRepository(db),
        hasher=hasher,
        verification_tokens=email_verification_tokens(settings),
        mailer=mailer,
    )
    try:
        user = uc.execute(payload.email, payload.password, link_for=_verify_link(request))
    except AuthError:
        auth_events_total.labels(event="login", outcome="failure").inc()
        raise
    auth_events_total.labels(event="login", outcome="success").inc()

    token = tokens.issue(user.id, user.role)
    _session_response(response, token)
    return AuthResp(token=token, user=UserResp.model_validate(user))


@router.get("/me", response_model=MeResp)
def me(ctx: AuthContext = Depends(protect)):
    return MeResp(data=UserResp.model_validate(ctx.user))


@router.post("/forgotpassword", response_model=MessageResp)
@limiter.limit(DEFAULT_LIMIT)
def forgot_password(
    request: Request,
    payload: ForgotPasswordReq,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    uc = RequestPasswordReset(
        repo=UserRepository(db),
        reset_tokens=password_reset_tokens(settings),
        mailer=mailer,
    )
    uc.execute(payload.email,
               link_for=lambda raw: str(request.url_for("reset_password", token=raw)))
    auth_events_total.labels(event="forgot_password", outcome="success").inc()
    return MessageResp(message="Email sent")


@router.put("/resetpassword/{token}", response_model=AuthResp, response_model_exclude_none=True,
            name="reset_password")
@limiter.limit(DEFAULT_LIMIT)
def reset_password(
    request: Request,
    response: Response,
    token: str,
    payload: ResetPasswordReq,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_tokens),
):
    uc = ResetPassword(repo=UserRepository(db), hasher=hasher,
                       reset_tokens=password_reset_tokens(settings))
    try:
        user = uc.execute(token, payload.password)
    except AuthError:
        auth_events_total.labels(event="reset_password", outcome="failure").inc()
        raise
    auth_events_total.labels(event="reset_password", outcome="success").inc()

    bearer = tokens.issue(user.id, user.role)
    _session_response(response, bearer)
    return AuthResp(token=bearer, user=UserResp.model_validate(user))


@router.get("/verify-email/{token}", response_model=AuthResp, name="verify_email")
def verify_email(
    response: Response,
    token: str,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
):
    uc = VerifyEmail(repo=UserRepository(db),
                     verification_tokens=email_verification_tokens(settings))
    try:
        user = uc.execute(token)
    except AuthError:
        auth_events_total.labels(event="verify_email", outcome="failure").inc()
        raise
    auth_events_total.labels(event="verify_email", outcome="success").inc()

    bearer = tokens.issue(user.id, user.role)
    _session_response(response, bearer)
    return AuthResp(
        token=bearer,
        user=UserResp.model_validate(user),
        message="Email verified successfully! You can now log in with your credentials.",
    )
