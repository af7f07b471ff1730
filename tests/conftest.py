import os
import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1]))

# database.py builds its engine at import time; keep it off PostgreSQL in tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app as app_module
from auth import AuthenticationResult, IdentityProviderError
from config import CognitoConfig
from database import Base
from helpers import SqlChatStore
import models  # noqa: F401


class FakeIdentityProvider:
    """In-memory stand-in for the Cognito user pool.

    Mirrors the exception codes the real service raises and counts calls so
    tests can assert that validation short-circuits before any network hop.
    """

    def __init__(self):
        self.users = {}
        self.sign_up_calls = []
        self.initiate_auth_calls = []
        self.issued = 0
        self.challenge = False

    def sign_up(self, client_id, username, password, secret_hash):
        self.sign_up_calls.append(
            {"client_id": client_id, "username": username, "password": password, "secret_hash": secret_hash}
        )
        if username in self.users:
            raise IdentityProviderError("UsernameExistsException", "User already exists")
        self.users[username] = password

    def initiate_auth(self, auth_flow, client_id, auth_parameters):
        self.initiate_auth_calls.append(
            {"auth_flow": auth_flow, "client_id": client_id, "auth_parameters": dict(auth_parameters)}
        )
        username = auth_parameters["USERNAME"]
        if username not in self.users:
            raise IdentityProviderError("UserNotFoundException", "User does not exist.")
        if self.users[username] != auth_parameters["PASSWORD"]:
            raise IdentityProviderError("NotAuthorizedException", "Incorrect username or password.")
        if self.challenge:
            return None
        self.issued += 1
        return AuthenticationResult(
            access_token=f"access-{self.issued}",
            id_token=f"id-{self.issued}",
            refresh_token=f"refresh-{self.issued}",
            expires_in=3600,
        )


class FailingIdentityProvider:
    def __init__(self, code, message=""):
        self.code = code
        self.message = message
        self.calls = 0

    def sign_up(self, client_id, username, password, secret_hash):
        self.calls += 1
        raise IdentityProviderError(self.code, self.message)

    def initiate_auth(self, auth_flow, client_id, auth_parameters):
        self.calls += 1
        raise IdentityProviderError(self.code, self.message)


@pytest.fixture()
def config() -> CognitoConfig:
    return CognitoConfig(
        client_id="test-client-id",
        region="us-east-1",
        client_secret="test-secret",
        issuer="https://test.auth.us-east-1.amazoncognito.com",
    )


@pytest.fixture()
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def store(db_session) -> SqlChatStore:
    return SqlChatStore(db_session)


@pytest.fixture()
def client(config, provider, store):
    api = FastAPI()
    api.include_router(app_module.app)
    api.dependency_overrides[app_module.get_config] = lambda: config
    api.dependency_overrides[app_module.get_identity_provider] = lambda: provider
    api.dependency_overrides[app_module.get_chat_store] = lambda: store
    with TestClient(api, follow_redirects=False) as c:
        yield c


@pytest.fixture()
def failing_provider():
    """Factory for a provider that rejects every call with one error code."""
    return FailingIdentityProvider
