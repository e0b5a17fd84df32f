import pytest
import os
import re
import sys
from dataclasses import dataclass

CURRENT_DIR = os.path.dirname(__file__)
SERVICE_ROOT = os.path.dirname(CURRENT_DIR)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

# настройки читаются при импорте, поэтому окружение задаём до импорта приложения
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["ADMIN_REGISTRATION_KEY"] = "test-admin-key"
os.environ["TEACHER_CODE_STRATEGY"] = "numeric"
os.environ.pop("SMTP_USERNAME", None)
os.environ.pop("SMTP_PASSWORD", None)

from fastapi.testclient import TestClient

from auth_service.infrastructure.db import SessionLocal, engine
from auth_service.infrastructure.mailer import MailDeliveryError
from auth_service.infrastructure.models import Base
from auth_service.interfaces.http.deps import get_mailer
from auth_service.main import app

ADMIN_KEY = "test-admin-key"


@dataclass
class SentMail:
    to: str
    subject: str
    body: str


class RecordingMailer:
    """Фейковый почтовый клиент: запоминает письма или падает по флагу"""

    def __init__(self):
        self.sent: list[SentMail] = []
        self.fail = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailDeliveryError("smtp unavailable")
        self.sent.append(SentMail(to=to, subject=subject, body=body))

    def last_match(self, pattern: str) -> str:
        for mail in reversed(self.sent):
            m = re.search(pattern, mail.body)
            if m:
                return m.group(1)
        raise AssertionError(f"no mail matching {pattern!r}")


@pytest.fixture
def db_engine():
    """Чистая БД в памяти для каждого теста"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(db_engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer():
    fake = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_mailer, None)


@pytest.fixture
def client(db_engine, mailer):
    """Фикстура для тестового клиента"""
    yield TestClient(app)


def register_admin(client, email="dean@git.edu", password="adminpass123"):
    response = client.post(
        "/api/auth/register/admin",
        json={"name": "Dean", "email": email, "password": password, "adminKey": ADMIN_KEY},
    )
    assert response.status_code == 201, response.text
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    return login.json()["token"]


@pytest.fixture
def admin_token(client):
    return register_admin(client)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
