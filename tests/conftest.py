"""Pytest configuration for test suite."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import mongomock
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwk, jwt

# Repository root holds the application modules
ROOT_DIR = Path(__file__).parent.parent

if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from config import Settings  # noqa: E402
from database import Database  # noqa: E402
from main import create_app  # noqa: E402

TEST_SECRET = "test-secret"


def create_access_token(data, secret, algorithm="HS256", expires_delta=None, headers=None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret, algorithm=algorithm, headers=headers)


def generate_rsa_key(kid):
    """Return (private PEM, public JWK) for a fresh RS256 signing key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk["kid"] = kid
    return private_pem, public_jwk


class FakeGateway:
    def __init__(self):
        self.amounts = []

    def create_intent(self, amount: int) -> str:
        self.amounts.append(amount)
        return f"pi_{len(self.amounts)}_secret"


@pytest.fixture
def settings():
    return Settings(jwt_secret=TEST_SECRET, default_page_limit=6)


@pytest.fixture
def db():
    database = Database(mongomock.MongoClient()["petsDB"])
    database.ensure_indexes()
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(settings, db, gateway):
    app = create_app(settings=settings, database=db, payment_gateway=gateway)
    return TestClient(app)


@pytest.fixture
def make_headers():
    def _make(email="user@example.com", **extra):
        claims = {"sub": email or "anonymous", **extra}
        if email is not None:
            claims["email"] = email
        return {"Authorization": f"Bearer {create_access_token(claims, TEST_SECRET)}"}

    return _make


@pytest.fixture
def user_headers(make_headers):
    return make_headers("user@example.com")


@pytest.fixture
def admin_headers(db, make_headers):
    db.users.insert_one({"email": "admin@example.com", "role": "admin"})
    return make_headers("admin@example.com")


@pytest.fixture(scope="session")
def signing_key():
    return generate_rsa_key("key-1")
