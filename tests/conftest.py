# tests/conftest.py
from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-samlflow")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("COOKIE_SECURE", "false")

from samlflow.api.v1.dependencies import get_saml_toolkit
from samlflow.core.context import RequestContext
from samlflow.core.errors import ToolkitValidationFailure
from samlflow.core.settings import settings
from samlflow.db.session import Base
from samlflow.db.session import get_db as app_get_session
from samlflow.main import app as fastapi_app
from samlflow.models import IdentityProvider
from samlflow.repositories import LoginStateRepository, ProviderRepository
from samlflow.services.host_session import JwtHostSession
from samlflow.services.login_flow import LoginFlow
from samlflow.services.saml_toolkit import Assertion, SamlToolkit

TEST_DB_URL = "sqlite://"
BASE_URL = settings.public_base_url


class FakeToolkit(SamlToolkit):
    """Stands in for python3-saml.

    Payloads are JSON documents with the keys ``id``, ``in_response_to``,
    ``name_id``, ``attributes`` and an optional ``valid`` flag.
    """

    def __init__(self) -> None:
        super().__init__(settings)
        self._ids = count(1)
        self.logins: list[tuple[int, str]] = []
        self.validated: list[tuple[str, str | None]] = []
        self.on_validate: Callable[[Assertion], None] | None = None

    def build_login(self, provider, ctx, return_to=None):
        request_id = f"ONELOGIN_req_{next(self._ids)}"
        self.logins.append((provider.id, request_id))
        return f"{provider.idp_single_sign_on_service}?SAMLRequest={request_id}", request_id

    def parse_response(self, provider, ctx, payload):
        try:
            data = json.loads(payload)
        except ValueError as err:
            raise ToolkitValidationFailure("Could not parse the provider response") from err
        return Assertion(id=data["id"], in_response_to=data.get("in_response_to"), raw=data)

    def validate(self, provider, ctx, assertion, request_id):
        if self.on_validate is not None:
            self.on_validate(assertion)
        self.validated.append((assertion.id, request_id))
        if assertion.raw.get("valid") is False:
            raise ToolkitValidationFailure("Signature validation failed")
        assertion.name_id = assertion.raw.get("name_id")
        assertion.session_index = assertion.raw.get("session_index")
        assertion.attributes = assertion.raw.get("attributes", {})
        return assertion

    def build_logout(self, provider, ctx, name_id=None, session_index=None, return_to=None):
        return f"{provider.idp_single_logout_service}?SAMLRequest=logout"

    def sp_metadata(self, provider):
        return f'<md:EntityDescriptor entityID="{self.sp_entity_id(provider.id)}"/>'


def saml_payload(response_id: str, in_response_to: str | None, **extra: Any) -> str:
    data: dict[str, Any] = {
        "id": response_id,
        "in_response_to": in_response_to,
        "name_id": "bob@a.com",
        "attributes": {
            "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress": ["bob@a.com"],
        },
    }
    data.update(extra)
    return json.dumps(data)


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def toolkit() -> FakeToolkit:
    return FakeToolkit()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(app: FastAPI, db_session: Session, toolkit: FakeToolkit) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_saml_toolkit] = lambda: toolkit
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_saml_toolkit, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url=BASE_URL, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture()
def store(db_session: Session) -> LoginStateRepository:
    return LoginStateRepository(db_session)


@pytest.fixture()
def providers(db_session: Session) -> ProviderRepository:
    return ProviderRepository(db_session)


@pytest.fixture()
def make_provider(db_session: Session) -> Callable[..., IdentityProvider]:
    counter = count(1)

    def _make(**overrides: Any) -> IdentityProvider:
        number = next(counter)
        values: dict[str, Any] = {
            "name": f"Provider {number}",
            "idp_entity_id": f"https://idp{number}.example.org/metadata",
            "idp_single_sign_on_service": f"https://idp{number}.example.org/sso",
            "is_active": True,
        }
        values.update(overrides)
        provider = IdentityProvider(**values)
        db_session.add(provider)
        db_session.commit()
        return provider

    return _make


@pytest.fixture()
def make_ctx() -> Callable[..., RequestContext]:
    def _make(path: str = "/", **kwargs: Any) -> RequestContext:
        kwargs.setdefault("session_id", "session-1")
        kwargs.setdefault("session_name", settings.session_cookie_name)
        kwargs.setdefault("remote_addr", "198.51.100.7")
        return RequestContext.create(path, **kwargs)

    return _make


@pytest.fixture()
def host_session() -> JwtHostSession:
    return JwtHostSession({settings.session_cookie_name: "session-1"})


@pytest.fixture()
def flow(
    store: LoginStateRepository,
    providers: ProviderRepository,
    toolkit: FakeToolkit,
    host_session: JwtHostSession,
) -> LoginFlow:
    return LoginFlow(store, providers, toolkit, host_session)


@pytest.fixture()
def make_payload() -> Callable[..., str]:
    return saml_payload
