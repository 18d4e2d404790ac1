import os
from datetime import timedelta

from cryptography.fernet import Fernet

# Settings are read at import time, so they go in before facevote is imported
os.environ.setdefault("DESCRIPTOR_KEY", Fernet.generate_key().decode())
os.environ["STORAGE_BACKEND"] = "memory"
os.environ.pop("MEMORY_DB_PATH", None)

import numpy as np
import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

from facevote import security
from facevote.clock import ManualClock
from facevote.face_utils import encrypt_descriptor
from facevote.ledger import VoteLedger
from facevote.main import create_app
from facevote.models import Biometrics, Candidate, VerificationStatus, Voter
from facevote.storage import MemoryStorage, run_in_transaction

PASSWORD = "secret123"
DIM = 128


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """Minimum bcrypt cost so the suite does not spend its time hashing."""
    monkeypatch.setattr(security, "pwd_context", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return MemoryStorage(path=None)


@pytest.fixture
def ledger(store, clock):
    return VoteLedger(store, clock=clock)


@pytest.fixture
def app(store, clock):
    return create_app(storage=store, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def base_descriptor(dim=DIM):
    rng = np.random.default_rng(7)
    return rng.normal(0, 0.1, dim).astype(np.float32)


def at_distance(descriptor, distance):
    """A descriptor exactly `distance` away from `descriptor` (moved along one axis)."""
    moved = np.array(descriptor, dtype=np.float64)
    moved[0] += distance
    return moved


def add_voter(store, email="alice@example.com", password_hash="x", descriptor=None,
              verified=True, **fields):
    biometrics = None
    if descriptor is not None:
        biometrics = Biometrics(descriptor_enc=encrypt_descriptor(descriptor), dim=len(descriptor))
    voter = Voter(
        name=fields.pop("name", email.split("@")[0].title()),
        email=email,
        password_hash=password_hash,
        verification_status=VerificationStatus.VERIFIED if verified else VerificationStatus.PENDING,
        biometrics=biometrics,
        **fields,
    )
    return run_in_transaction(store, lambda tx: tx.insert_voter(voter))


def add_candidate(store, name="Bob", party="Blue", vote_count=0):
    candidate = Candidate(name=name, party=party, vote_count=vote_count)
    return run_in_transaction(store, lambda tx: tx.insert_candidate(candidate))


def open_election(ledger, clock, hours=2):
    now = clock.now()
    return ledger.configure_election(now - timedelta(hours=1), now + timedelta(hours=hours))


def auth_header(client, identifier, password=PASSWORD, live_descriptor=None):
    body = {"identifier": identifier, "password": password}
    if live_descriptor is not None:
        body["live_descriptor"] = [float(v) for v in live_descriptor]
    resp = client.post("/api/auth/login", json=body)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
