"""Shared API dependencies for the login flow."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from samlflow.db.session import get_db
from samlflow.repositories import LoginStateRepository, ProviderRepository
from samlflow.services.acs import AssertionConsumer
from samlflow.services.host_session import JwtHostSession
from samlflow.services.login_flow import LoginFlow
from samlflow.services.saml_toolkit import SamlToolkit

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_saml_toolkit() -> SamlToolkit:
    """Return the SAML toolkit adapter; tests override this dependency."""
    return SamlToolkit()


def get_host_session(request: Request) -> JwtHostSession:
    """Return the host session bound to the request cookies."""
    return JwtHostSession(request.cookies)


ToolkitDep = Annotated[SamlToolkit, Depends(get_saml_toolkit)]
HostSessionDep = Annotated[JwtHostSession, Depends(get_host_session)]


def get_provider_repo(db: SessionDep) -> ProviderRepository:
    return ProviderRepository(db)


ProviderRepoDep = Annotated[ProviderRepository, Depends(get_provider_repo)]


def get_login_flow(
    db: SessionDep,
    providers: ProviderRepoDep,
    toolkit: ToolkitDep,
    host_session: HostSessionDep,
) -> LoginFlow:
    return LoginFlow(LoginStateRepository(db), providers, toolkit, host_session)


LoginFlowDep = Annotated[LoginFlow, Depends(get_login_flow)]


def get_assertion_consumer(
    db: SessionDep,
    providers: ProviderRepoDep,
    toolkit: ToolkitDep,
    flow: LoginFlowDep,
) -> AssertionConsumer:
    return AssertionConsumer(LoginStateRepository(db), providers, toolkit, flow)


AssertionConsumerDep = Annotated[AssertionConsumer, Depends(get_assertion_consumer)]
