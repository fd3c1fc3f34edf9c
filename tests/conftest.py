from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import USERS
from main import create_app
from notifications import LoggingMailer
from security import hash_password
from utils import utcnow

PASSWORD = "secret123"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = dict(
        ENVIRONMENT="test",
        JWT_SECRET="test-secret",
        BCRYPT_ROUNDS=4,
        RATE_LIMIT_ENABLED=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def db():
    return mongomock.MongoClient()["transport_entries_test"]


@pytest.fixture
def clock():
    # whole milliseconds, which is what the store keeps
    now = utcnow()
    return FakeClock(now.replace(microsecond=(now.microsecond // 1000) * 1000))


@pytest.fixture
def mailer():
    return LoggingMailer()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, db, mailer, clock):
    return create_app(settings, db=db, mailer=mailer, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


def register_payload(email: str, mobile: str, name: str = "Ravi Kumar") -> dict:
    return {
        "email": email,
        "password": PASSWORD,
        "profile": {
            "ownerName": name,
            "companyName": "Kumar Roadlines",
            "mobileNumber": mobile,
            "address": "12 Transport Nagar, Pune 411001",
        },
    }


def register(client, email: str, mobile: str, name: str = "Ravi Kumar") -> dict:
    res = client.post("/api/auth/register", json=register_payload(email, mobile, name))
    assert res.status_code == 201, res.json()
    return res.json()["data"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(client):
    return register(client, "alice@acme-logistics.com", "9000000001", "Alice Rao")


@pytest.fixture
def bob(client):
    return register(client, "bob@acme-logistics.com", "9000000002", "Bob Shah")


@pytest.fixture
def admin(client, db, clock):
    db[USERS].insert_one({
        "email": "admin@acme-logistics.com",
        "password": hash_password(PASSWORD, rounds=4),
        "uniqueid": "ADMIN0001",
        "profile": {
            "ownerName": "Site Admin",
            "companyName": "Acme Logistics",
            "mobileNumber": "9000000000",
            "address": "HQ",
        },
        "bank": {},
        "role": "admin",
        "isActive": True,
        "createdAt": clock(),
        "updatedAt": clock(),
    })
    res = client.post("/api/auth/login", json={"email": "admin@acme-logistics.com", "password": PASSWORD})
    assert res.status_code == 200, res.json()
    return res.json()["data"]


def entry_payload(**overrides) -> dict:
    payload = {
        "date": "2024-04-01T00:00:00",
        "vehicleNo": "mh12ab1234",
        "from": "Pune",
        "to": "Mumbai",
        "transportBillData": {"invoiceNo": "INV-001", "total": 1500, "status": "PENDING"},
        "ownerData": {"ownerNameAndAddress": "Sharma Transport, Nashik"},
    }
    payload.update(overrides)
    return payload


def create_entry(client, token: str, **overrides) -> dict:
    res = client.post("/api/transport-entries", json=entry_payload(**overrides), headers=auth_header(token))
    assert res.status_code == 201, res.json()
    return res.json()["data"]
