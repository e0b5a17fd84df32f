from datetime import timedelta

from sqlalchemy import update

from auth_service.config import settings
from auth_service.domain.entities import utcnow
from auth_service.infrastructure.db import SessionLocal
from auth_service.infrastructure.models import TeacherEmailORM, UserORM

from conftest import bearer

TEACHER = {"name": "Tom", "email": "tom@git.edu", "password": "password123"}
CODE = r"code is (\d{6})"
VERIFY_LINK = r"verify-email/([0-9a-f]{64})"


def add_grant(client, admin_token, email=TEACHER["email"]):
    return client.post("/api/teachers/emails", json={"email": email}, headers=bearer(admin_token))


def verify_grant(client, mailer, email=TEACHER["email"]):
    response = client.post("/api/teachers/request-verification", json={"email": email})
    assert response.status_code == 200, response.text
    code = mailer.last_match(CODE)
    response = client.post("/api/teachers/verify", json={"email": email, "code": code})
    assert response.status_code == 200, response.text
    return code


def register_teacher(client, **overrides):
    return client.post("/api/auth/register/teacher", json={**TEACHER, **overrides})


def login_teacher(client, password=TEACHER["password"]):
    return client.post("/api/auth/login", json={"email": TEACHER["email"], "password": password})


def grant_row(email=TEACHER["email"]):
    with SessionLocal() as s:
        row = s.query(TeacherEmailORM).filter_by(email=email).one()
        s.expunge(row)
        return row


# --- Admin allow-list management:

def test_allow_list_requires_token(client):
    response = client.get("/api/teachers/emails")
    assert response.status_code == 401


def test_allow_list_requires_admin_role(client):
    """Студент получает 403 на админском маршруте"""
    client.post("/api/auth/register", json={"name": "Alice", "email": "alice@students.git.edu",
                                            "password": "password123"})
    token = client.post("/api/auth/login", json={"email": "alice@students.git.edu",
                                                 "password": "password123"}).json()["token"]
    response = client.get("/api/teachers/emails", headers=bearer(token))
    assert response.status_code == 403
    assert response.json()["message"] == "User role student is not authorized to access this route"


def test_add_and_list_teacher_emails(client, admin_token):
    response = add_grant(client, admin_token, email="Tom@Git.Edu")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "tom@git.edu"
    assert data["isVerified"] is False
    assert data["isUsed"] is False
    assert data["addedBy"] is not None

    add_grant(client, admin_token, email="ann@git.edu")
    listing = client.get("/api/teachers/emails", headers=bearer(admin_token)).json()
    assert listing["count"] == 2
    assert {row["email"] for row in listing["data"]} == {"tom@git.edu", "ann@git.edu"}


def test_add_duplicate_and_wrong_domain(client, admin_token):
    add_grant(client, admin_token)
    duplicate = add_grant(client, admin_token)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "This email is already in the system"

    foreign = add_grant(client, admin_token, email="tom@gmail.com")
    assert foreign.status_code == 400
    assert foreign.json()["code"] == "VALIDATION_ERROR"


def test_upload_csv(client, admin_token):
    """CSV: заголовок пропускается, дубликаты и чужие домены помечаются"""
    add_grant(client, admin_token, email="old@git.edu")
    content = "email\nnew@git.edu\nold@git.edu\nbad@gmail.com\nNEW@git.edu\n\n"
    response = client.post(
        "/api/teachers/upload",
        files={"file": ("teachers.csv", content.encode(), "text/csv")},
        headers=bearer(admin_token),
    )
    assert response.status_code == 200, response.text
    results = {r["email"]: r["status"] for r in response.json()["results"]}
    assert results == {"new@git.edu": "added", "old@git.edu": "exists", "bad@gmail.com": "invalid"}


def test_upload_rejects_other_files(client, admin_token):
    response = client.post(
        "/api/teachers/upload",
        files={"file": ("teachers.pdf", b"%PDF-1.4", "application/pdf")},
        headers=bearer(admin_token),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Only CSV files are allowed"


# --- One-time code flow:

def test_request_verification_unknown_email(client, mailer):
    response = client.post("/api/teachers/request-verification", json={"email": "tom@git.edu"})
    assert response.status_code == 400
    assert response.json()["message"] == "This email is not authorized for teacher access"
    assert mailer.sent == []


def test_code_can_be_used_once(client, admin_token, mailer):
    add_grant(client, admin_token)
    code = verify_grant(client, mailer)
    assert grant_row().is_verified is True
    assert grant_row().verification_code is None

    replay = client.post("/api/teachers/verify", json={"email": TEACHER["email"], "code": code})
    assert replay.status_code == 400
    assert replay.json()["code"] == "INVALID_CODE"

    again = client.post("/api/teachers/request-verification", json={"email": TEACHER["email"]})
    assert again.status_code == 400


def test_wrong_code(client, admin_token, mailer):
    add_grant(client, admin_token)
    client.post("/api/teachers/request-verification", json={"email": TEACHER["email"]})
    code = mailer.last_match(CODE)
    wrong = "000000" if code != "000000" else "111111"
    response = client.post("/api/teachers/verify", json={"email": TEACHER["email"], "code": wrong})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CODE"
    assert grant_row().is_verified is False


def test_expired_code(client, admin_token, mailer):
    add_grant(client, admin_token)
    client.post("/api/teachers/request-verification", json={"email": TEACHER["email"]})
    code = mailer.last_match(CODE)
    with SessionLocal() as s:
        s.execute(update(TeacherEmailORM).values(verification_expires=utcnow() - timedelta(seconds=1)))
        s.commit()
    response = client.post("/api/teachers/verify", json={"email": TEACHER["email"], "code": code})
    assert response.status_code == 400
    assert response.json()["code"] == "CODE_EXPIRED"


def test_code_mail_failure(client, admin_token, mailer):
    add_grant(client, admin_token)
    mailer.fail = True
    response = client.post("/api/teachers/request-verification", json={"email": TEACHER["email"]})
    assert response.status_code == 500
    assert response.json()["message"] == "Error sending verification email"


# --- Teacher registration:

def test_teacher_without_grant_is_rejected(client):
    """Без гранта учитель не регистрируется и ничего не пишется в БД"""
    response = register_teacher(client)
    assert response.status_code == 400
    assert "not authorized for teacher access" in response.json()["message"]
    with SessionLocal() as s:
        assert s.query(UserORM).count() == 0


def test_unverified_grant_is_rejected(client, admin_token):
    add_grant(client, admin_token)
    response = register_teacher(client)
    assert response.status_code == 400
    assert grant_row().is_used is False


def test_teacher_registration_flow(client, admin_token, mailer):
    """Полный путь учителя: грант, код, регистрация, подтверждение email, вход"""
    add_grant(client, admin_token)
    verify_grant(client, mailer)

    response = register_teacher(client)
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"] == ("Registration successful! Please check your email "
                               "to verify your account.")
    assert "token" not in body
    assert "verificationToken" not in body

    grant = grant_row()
    assert grant.is_used is True
    assert grant.used_at is not None

    assert mailer.sent[-1].to == TEACHER["email"]
    raw = mailer.last_match(VERIFY_LINK)
    with SessionLocal() as s:
        row = s.query(UserORM).filter_by(email=TEACHER["email"]).one()
        assert row.is_email_verified is False
        assert row.email_verification_token != raw

    blocked = login_teacher(client)
    assert blocked.status_code == 401
    assert blocked.json()["code"] == "EMAIL_NOT_VERIFIED"
    assert "verificationToken" not in blocked.json()
    # вход неподтверждённого учителя отправляет новую ссылку
    raw = mailer.last_match(VERIFY_LINK)

    verified = client.get(f"/api/auth/verify-email/{raw}")
    assert verified.status_code == 200, verified.text
    assert verified.json()["token"]
    assert verified.json()["user"]["isEmailVerified"] is True

    replay = client.get(f"/api/auth/verify-email/{raw}")
    assert replay.status_code == 400
    assert replay.json()["code"] == "INVALID_TOKEN"

    response = login_teacher(client)
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "teacher"


def test_grant_cannot_be_reused(client, admin_token, mailer):
    add_grant(client, admin_token)
    verify_grant(client, mailer)
    assert register_teacher(client).status_code == 201

    with SessionLocal() as s:
        s.query(UserORM).filter_by(email=TEACHER["email"]).delete()
        s.commit()
    response = register_teacher(client)
    assert response.status_code == 400
    assert "already been used" in response.json()["message"]


def test_registration_survives_mail_failure(client, admin_token, mailer):
    """Если письмо не ушло, токен подтверждения возвращается в ответе"""
    add_grant(client, admin_token)
    verify_grant(client, mailer)
    mailer.fail = True

    response = register_teacher(client)
    assert response.status_code == 201
    body = response.json()
    assert body["verificationToken"]
    assert body["verificationUrl"].endswith(f"/api/auth/verify-email/{body['verificationToken']}")

    verified = client.get(f"/api/auth/verify-email/{body['verificationToken']}")
    assert verified.status_code == 200


def test_expired_email_verification(client, admin_token, mailer):
    add_grant(client, admin_token)
    verify_grant(client, mailer)
    register_teacher(client)
    raw = mailer.last_match(VERIFY_LINK)
    with SessionLocal() as s:
        s.execute(update(UserORM).values(email_verification_expires=utcnow() - timedelta(seconds=1)))
        s.commit()

    response = client.get(f"/api/auth/verify-email/{raw}")
    assert response.status_code == 400
    assert response.json()["code"] == "TOKEN_EXPIRED"


def test_grants_preverified_when_verification_disabled(client, admin_token, monkeypatch):
    monkeypatch.setattr(settings, "TEACHER_GRANT_REQUIRES_VERIFICATION", False)
    response = add_grant(client, admin_token)
    assert response.json()["data"]["isVerified"] is True
    assert register_teacher(client).status_code == 201


def test_login_returns_fresh_token_when_mail_fails(client, admin_token, mailer):
    """Вход без подтверждения при сбое почты отдаёт новый токен, иначе аккаунт не подтвердить"""
    add_grant(client, admin_token)
    verify_grant(client, mailer)
    mailer.fail = True
    registered = register_teacher(client).json()

    blocked = login_teacher(client)
    assert blocked.status_code == 401
    body = blocked.json()
    assert body["code"] == "EMAIL_NOT_VERIFIED"
    fresh = body["verificationToken"]
    assert fresh != registered["verificationToken"]
    assert body["verificationUrl"].endswith(f"/api/auth/verify-email/{fresh}")

    stale = client.get(f"/api/auth/verify-email/{registered['verificationToken']}")
    assert stale.status_code == 400
    verified = client.get(f"/api/auth/verify-email/{fresh}")
    assert verified.status_code == 200
    assert verified.json()["user"]["isEmailVerified"] is True


def test_code_discarded_after_too_many_wrong_attempts(client, admin_token, mailer):
    """После лимита неверных попыток код сгорает, нужен новый"""
    add_grant(client, admin_token)
    client.post("/api/teachers/request-verification", json={"email": TEACHER["email"]})
    code = mailer.last_match(CODE)
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(settings.TEACHER_CODE_MAX_ATTEMPTS):
        response = client.post("/api/teachers/verify", json={"email": TEACHER["email"], "code": wrong})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CODE"
    assert grant_row().verification_code is None

    late = client.post("/api/teachers/verify", json={"email": TEACHER["email"], "code": code})
    assert late.status_code == 400
    assert late.json()["code"] == "INVALID_CODE"
    assert grant_row().is_verified is False

    # новый запрос сбрасывает счётчик
    verify_grant(client, mailer)
    assert grant_row().is_verified is True
    assert grant_row().verification_attempts == 0
