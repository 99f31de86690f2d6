import aiosmtplib
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from config import Settings
from main import create_app
from security import CredentialVerifier

JWT_SECRET = "storefront-test-secret-0123456789abcdef"
ADMIN_EMAIL = "admin@example.com"
OPERATOR_EMAIL = "operator@example.com"


class FakeMailer:
    """Mailer double that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "SMTP relay unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "SMTP relay unavailable"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.should_succeed:
            raise aiosmtplib.SMTPServerDisconnected(self.failure_reason)
        self.sent_emails.append({"to": to, "subject": subject, "html": html_body})


def make_settings(**overrides) -> Settings:
    values = dict(
        mongo_db_name="storefront_test",
        jwt_secret=JWT_SECRET,
        admin_emails=frozenset({ADMIN_EMAIL}),
        email_user="store@example.com",
        operator_email=OPERATOR_EMAIL,
        bcrypt_rounds=4,
        environment="test",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def verifier():
    return CredentialVerifier(JWT_SECRET)


@pytest.fixture()
def app(settings, mongo_client, mailer):
    return create_app(settings, mongo_client=mongo_client, mailer=mailer)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(verifier):
    def _headers(email: str = "a@example.com", user_id: str = "user-1") -> dict:
        return {"Authorization": f"Bearer {verifier.issue(email, user_id=user_id)}"}

    return _headers
