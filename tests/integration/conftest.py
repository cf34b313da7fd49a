"""
Integration fixtures: the real app from create_app() over an in-memory
database, the shared FakeClock and the recording email provider.

Database calls made from a test body go through ``client.portal`` so they
run on the same event loop as the app.
"""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from repositories.account_repository import AccountRepository
from schemas.models.account import ROLE_USER, AccountDoc
from shared.crypto import hash_password
from shared.generators import generate_account_id
from tests.conftest import PASSWORD


@pytest.fixture
def app(settings, db, email_provider, clock):
    return create_app(settings, database=db, email_provider=email_provider, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def repo(db, clock):
    return AccountRepository(db, clock)


@pytest.fixture
def find_account(client, repo):
    """Synchronous lookup by email through the app's event loop."""

    def _find(email: str):
        return client.portal.call(repo.find_by_email, email)

    return _find


@pytest.fixture
def seed_account(client, repo):
    """Insert an account directly and return it."""

    def _seed(
        email: str = "a@x.com",
        password: str = PASSWORD,
        *,
        role: str = ROLE_USER,
        verified: bool = True,
    ) -> AccountDoc:
        doc = AccountDoc(
            account_id=generate_account_id(),
            first_name="Seeded",
            last_name="Account",
            email=email,
            password_hash=hash_password(password),
            is_verified=verified,
            account_status="active" if verified else "pending",
            role=role,
        )
        return client.portal.call(repo.insert, doc)

    return _seed

