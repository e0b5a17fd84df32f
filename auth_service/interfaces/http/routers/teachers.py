from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from sqlalchemy.orm import Session

from ....application.use_cases.teacher_grants import (
    AddTeacherEmail,
    ImportTeacherEmails,
    RequestTeacherVerification,
    VerifyTeacherCode,
)
from ....config import settings
from ....domain.entities import Role
from ....domain.errors import ValidationFailed
from ....infrastructure.db import get_db
from ....infrastructure.mailer import Mailer
from ....infrastructure.rate_limit import DEFAULT_LIMIT, TEACHER_CODE_LIMIT, limiter
from ....infrastructure.repositories import TeacherEmailRepository
from ....infrastructure.verification import teacher_codes
from ..authz import AuthContext, authorize
from ..deps import domain_policy, get_mailer
from ..schemas import (
    ImportResp,
    ImportRowOut,
    MessageResp,
    TeacherEmailListResp,
    TeacherEmailOut,
    TeacherEmailReq,
    TeacherEmailResp,
    TeacherVerifyReq,
)

router = APIRouter(prefix="/api/teachers", tags=["teachers"])

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = {"text/csv", "text/plain", "application/vnd.ms-excel", "application/octet-stream"}


def _add_use_case(db: Session) -> AddTeacherEmail:
    return AddTeacherEmail(
        grants=TeacherEmailRepository(db),
        policy=domain_policy(),
        requires_verification=settings.TEACHER_GRANT_REQUIRES_VERIFICATION,
    )


# --- Admin-only allow-list management:

@router.get("/emails", response_model=TeacherEmailListResp)
def list_teacher_emails(
    ctx: AuthContext = Depends(authorize(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    rows = TeacherEmailRepository(db).list_all()
    return TeacherEmailListResp(count=len(rows), data=[TeacherEmailOut.model_validate(r) for r in rows])


@router.post("/emails", response_model=TeacherEmailResp, status_code=status.HTTP_201_CREATED)
def add_teacher_email(
    payload: TeacherEmailReq,
    ctx: AuthContext = Depends(authorize(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    grant = _add_use_case(db).execute(payload.email, added_by=ctx.user.id)
    return TeacherEmailResp(data=TeacherEmailOut.model_validate(grant))


@router.post("/upload", response_model=ImportResp)
def upload_teacher_emails(
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(authorize(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    filename = (file.filename or "").lower()
    if file.content_type not in ALLOWED_UPLOAD_TYPES and not filename.endswith((".csv", ".txt")):
        raise ValidationFailed("Only CSV files are allowed")
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if not content:
        raise ValidationFailed("Please upload a CSV file")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("File exceeds the 5MB limit")

    rows = ImportTeacherEmails(_add_use_case(db)).execute(content, added_by=ctx.user.id)
    return ImportResp(
        results=[ImportRowOut(email=r.email, status=r.status) for r in rows],
        message="Teacher emails processed successfully",
    )


# --- Public one-time code flow:

@router.post("/request-verification", response_model=MessageResp)
@limiter.limit(DEFAULT_LIMIT)
def request_teacher_verification(
    request: Request,
    payload: TeacherEmailReq,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    link_for = None
    if settings.FRONTEND_URL and settings.TEACHER_CODE_STRATEGY == "opaque":
        base = settings.FRONTEND_URL.rstrip("/")
        link_for = lambda raw: f"{base}/verify-teacher?token={raw}"  # noqa: E731
    uc = RequestTeacherVerification(grants=TeacherEmailRepository(db),
                                    codes=teacher_codes(settings), mailer=mailer)
    uc.execute(payload.email, link_for=link_for)
    return MessageResp(message="Verification email sent. Please check your email.")


@router.post("/verify", response_model=MessageResp)
@limiter.limit(TEACHER_CODE_LIMIT)
def verify_teacher(
    request: Request,
    payload: TeacherVerifyReq,
    db: Session = Depends(get_db),
):
    uc = VerifyTeacherCode(grants=TeacherEmailRepository(db), codes=teacher_codes(settings),
                           max_attempts=settings.TEACHER_CODE_MAX_ATTEMPTS)
    uc.execute(payload.email, payload.code)
    return MessageResp(message="Email verified successfully. You can now register as a teacher.")
