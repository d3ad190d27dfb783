import os
import tempfile
import unittest
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401  registers every table on Base.metadata
from app.config import Settings, settings
from app.database import Base, build_engine, get_db
from app.main import create_app
from app.models.user import User
from app.services.oauth_providers import OAuthExchangeError, ProviderProfile
from app.services.password_service import PasswordService
from app.services.session_service import SessionService
from app.services.verification_service import VerificationService
from app.utils.email import EmailSender
from app.utils.security import hash_password
from app.utils.tokens import SigningContext, SigningKey, TokenIssuer, TokenVerifier

PASSWORD = "Secret123"


class RecordingEmailSender(EmailSender):
    """Keeps every message instead of logging it."""

    def __init__(self, config: Settings = settings):
        super().__init__(config)
        self.outbox: list[dict] = []

    def deliver(self, to, subject, template_kind, params):
        self.outbox.append({"to": to, "subject": subject, "kind": template_kind, "params": params})
        return True

    def last(self, kind: str) -> dict:
        return [m for m in self.outbox if m["kind"] == kind][-1]

    def last_token(self, kind: str) -> str:
        url = self.last(kind)["params"]["url"]
        return parse_qs(urlparse(url).query)["token"][0]


class FakeProvider:
    """In-memory OAuth provider: every code maps to a prepared profile."""

    def __init__(self, name: str = "google"):
        self.name = name
        self.profiles: dict[str, ProviderProfile] = {}

    def authorization_url(self, state: str) -> str:
        return f"https://{self.name}.example/authorize?state={state}"

    def exchange_code_for_profile(self, code: str) -> ProviderProfile:
        try:
            return self.profiles[code]
        except KeyError:
            raise OAuthExchangeError(f"{self.name} rejected code {code}")


def make_signing_context(secret: str = "unit-test-secret", issuer: str | None = "session-authority") -> SigningContext:
    return SigningContext([SigningKey(secret=secret)], issuer=issuer)


# ─── Database ─────────────────────────────────────────────────────────────────
class DatabaseTestCase(unittest.TestCase):
    """Fresh file-backed SQLite schema per test."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite:///{os.path.join(self._tmp.name, 'test.db')}")
        Base.metadata.create_all(self.engine)
        self.SessionFactory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False,
        )
        self.db = self.SessionFactory()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        self._tmp.cleanup()

    def create_user(self, email: str = "alice@example.com", password: str | None = PASSWORD, **extra) -> User:
        user = User(
            email=email,
            password=hash_password(password) if password else None,
            firstName=extra.pop("firstName", "Alice"),
            lastName=extra.pop("lastName", "Liddell"),
            **extra,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user


# ─── Services ─────────────────────────────────────────────────────────────────
class ServiceTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.context = make_signing_context()
        self.issuer = TokenIssuer(self.context)
        self.verifier = TokenVerifier(self.context)
        self.sender = RecordingEmailSender()
        self.verification = VerificationService(settings, self.sender)
        self.passwords = PasswordService(settings, self.sender)
        self.sessions = SessionService(self.issuer, self.verifier, verification=self.verification)


# ─── HTTP ─────────────────────────────────────────────────────────────────────
class ApiTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.sender = RecordingEmailSender()
        self.provider = FakeProvider("google")
        self.app = create_app(
            providers={"google": self.provider},
            email_sender=self.sender,
            run_startup_tasks=False,
        )

        def override_get_db():
            db = self.SessionFactory()
            try:
                yield db
            finally:
                db.close()

        self.app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(self.app)

    def tearDown(self):
        self.client.close()
        super().tearDown()

    def register(self, email: str = "alice@example.com", password: str = PASSWORD):
        return self.client.post("/api/v1/auth/register", json={
            "email": email, "password": password, "firstName": "Alice", "lastName": "Liddell",
        })

    def login(self, email: str = "alice@example.com", password: str = PASSWORD):
        return self.client.post("/api/v1/auth/login", json={"email": email, "password": password})

    @staticmethod
    def bearer(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
