# tests/test_acs.py
"""Tests for the assertion consumer."""

import pytest
from sqlalchemy import func, select

from samlflow.core.errors import (
    ConfigurationInvalid,
    IncompleteCallback,
    ReplayedAssertion,
    ToolkitValidationFailure,
    UnexpectedPhase,
    UnsolicitedCorrelationMiss,
)
from samlflow.core.settings import settings
from samlflow.core.transaction import Phase
from samlflow.models import LoginStateRow
from samlflow.services.acs import AssertionConsumer
from samlflow.services.login_flow import MetaRefresh
from samlflow.services.login_state import LoginState


@pytest.fixture()
def consumer(store, providers, toolkit, flow):
    return AssertionConsumer(store, providers, toolkit, flow)


@pytest.fixture()
def provider(make_provider):
    return make_provider(enforce_sso=True)


@pytest.fixture()
def request_id(flow, make_ctx, provider, toolkit):
    """Start a login so a record waits in SAML_ACS; return its request id."""
    flow.do_auth(make_ctx("/front"))
    return toolkit.logins[-1][1]


@pytest.fixture()
def callback_ctx(make_ctx, provider):
    def _make(payload):
        return make_ctx(
            f"{settings.route_prefix}/acs/{provider.id}",
            method="POST",
            form={"SAMLResponse": payload, "RelayState": "/front"},
            session_id="rotated-session",
        )

    return _make


def _row_for(db_session, **filters):
    db_session.expire_all()
    stmt = select(LoginStateRow)
    for column, value in filters.items():
        stmt = stmt.where(getattr(LoginStateRow, column) == value)
    return db_session.execute(stmt).scalar_one()


def _count(db_session, **filters):
    stmt = select(func.count()).select_from(LoginStateRow)
    for column, value in filters.items():
        stmt = stmt.where(getattr(LoginStateRow, column) == value)
    return db_session.execute(stmt).scalar_one()


class TestSolicitedCallback:
    def test_successful_callback_then_replay(
        self, consumer, provider, request_id, callback_ctx, make_payload, toolkit, db_session,
        host_session,
    ):
        seen_phases = []
        toolkit.on_validate = lambda assertion: seen_phases.append(
            db_session.execute(
                select(LoginStateRow.phase).where(LoginStateRow.response_id == assertion.id)
            ).scalar_one()
        )
        payload = make_payload("R1", request_id)

        outcome = consumer.consume(callback_ctx(payload), payload, provider.id)

        assert isinstance(outcome, MetaRefresh)
        assert seen_phases == [Phase.SAML_AUTH]
        assert toolkit.validated == [("R1", request_id)]
        row = _row_for(db_session, request_id=request_id)
        assert row.phase == Phase.HOST_AUTH
        assert row.response_id == "R1"
        assert row.host_authenticated is True
        assert row.session_id == host_session.session_id
        assert row.user_name == "bob@a.com"

        with pytest.raises(ReplayedAssertion):
            consumer.consume(callback_ctx(payload), payload, provider.id)

        assert _count(db_session, response_id="R1") == 1
        assert _row_for(db_session, request_id=request_id).phase == Phase.HOST_AUTH
        assert len(toolkit.validated) == 1

    def test_replayed_id_against_another_request(
        self, consumer, flow, provider, request_id, callback_ctx, make_payload, make_ctx, toolkit,
        db_session,
    ):
        payload = make_payload("R1", request_id)
        consumer.consume(callback_ctx(payload), payload, provider.id)
        flow.do_auth(make_ctx("/front", session_id="second-browser"))
        second_request = toolkit.logins[-1][1]

        replay = make_payload("R1", second_request)
        with pytest.raises(ReplayedAssertion):
            consumer.consume(callback_ctx(replay), replay, provider.id)

        assert _row_for(db_session, request_id=second_request).phase == Phase.SAML_ACS

    def test_second_response_for_answered_request(
        self, consumer, provider, request_id, callback_ctx, make_payload, db_session
    ):
        first = make_payload("R1", request_id)
        consumer.consume(callback_ctx(first), first, provider.id)

        second = make_payload("R2", request_id)
        with pytest.raises(UnexpectedPhase):
            consumer.consume(callback_ctx(second), second, provider.id)

        assert _row_for(db_session, request_id=request_id).response_id == "R1"


class TestProviderMismatch:
    def test_callback_at_other_provider_endpoint_is_rejected(
        self, consumer, make_provider, provider, request_id, make_ctx, make_payload, toolkit,
        db_session,
    ):
        other = make_provider()
        payload = make_payload("R6", request_id)
        ctx = make_ctx(
            f"{settings.route_prefix}/acs/{other.id}",
            method="POST",
            form={"SAMLResponse": payload},
        )

        with pytest.raises(UnexpectedPhase) as excinfo:
            consumer.consume(ctx, payload, other.id)

        assert excinfo.value.context["issued_for"] == provider.id
        assert toolkit.validated == []
        row = _row_for(db_session, request_id=request_id)
        assert row.provider_id == provider.id
        assert row.response_id is None
        assert row.phase == Phase.SAML_ACS


class TestPhaseGuard:
    def test_record_not_waiting_for_callback_is_rejected(
        self, consumer, store, make_ctx, provider, callback_ctx, make_payload, toolkit
    ):
        state = LoginState.for_session(store, make_ctx(session_id="never-redirected"))
        state.set_request_id("ONELOGIN_forged")
        payload = make_payload("R5", "ONELOGIN_forged")

        with pytest.raises(UnexpectedPhase):
            consumer.consume(callback_ctx(payload), payload, provider.id)

        assert toolkit.validated == []


class TestUnsolicited:
    def test_unsolicited_callback_is_accepted_by_default(
        self, consumer, provider, callback_ctx, make_payload, toolkit, db_session
    ):
        payload = make_payload("R7", None)

        outcome = consumer.consume(callback_ctx(payload), payload, str(provider.id))

        assert isinstance(outcome, MetaRefresh)
        assert toolkit.validated == [("R7", None)]
        row = _row_for(db_session, response_id="R7")
        assert row.unsolicited is True
        assert row.provider_id == provider.id
        assert row.phase == Phase.HOST_AUTH

    def test_unsolicited_callback_rejected_when_disallowed(
        self, store, providers, toolkit, flow, provider, callback_ctx, make_payload, db_session
    ):
        strict = settings.model_copy(update={"allow_unsolicited": False})
        consumer = AssertionConsumer(store, providers, toolkit, flow, config=strict)
        payload = make_payload("R8", "ONELOGIN_unknown")

        with pytest.raises(UnsolicitedCorrelationMiss):
            consumer.consume(callback_ctx(payload), payload, provider.id)

        assert _count(db_session) == 0


class TestTerminalErrors:
    @pytest.mark.parametrize(
        ("payload", "provider_id"),
        [(None, 1), ("", 1), ("{}", None), ("{}", "abc"), ("{}", "0")],
    )
    def test_incomplete_callback(self, consumer, make_ctx, payload, provider_id):
        with pytest.raises(IncompleteCallback):
            consumer.consume(make_ctx("/saml/acs"), payload, provider_id)

    def test_unknown_provider(self, consumer, make_ctx, make_payload):
        payload = make_payload("R1", None)
        with pytest.raises(ConfigurationInvalid):
            consumer.consume(make_ctx("/saml/acs/42"), payload, 42)

    def test_unparsable_payload(self, consumer, provider, callback_ctx):
        with pytest.raises(ToolkitValidationFailure):
            consumer.consume(callback_ctx("not-json"), "not-json", provider.id)

    def test_validation_failure_leaves_session_unauthenticated(
        self, consumer, provider, request_id, callback_ctx, make_payload, db_session, host_session
    ):
        payload = make_payload("R3", request_id, valid=False)

        with pytest.raises(ToolkitValidationFailure) as excinfo:
            consumer.consume(callback_ctx(payload), payload, provider.id)

        row = _row_for(db_session, request_id=request_id)
        assert row.phase == Phase.SAML_AUTH
        assert row.host_authenticated is False
        assert not host_session.is_authenticated()
        params = excinfo.value.context["params"]
        assert params["form"]["SAMLResponse"] == f"<{len(payload)} chars>"
        assert params["form"]["RelayState"] == "/front"
        assert any(line.startswith("finalIdp") for line in excinfo.value.context["trace"])

    def test_assertion_without_name_id(
        self, consumer, provider, request_id, callback_ctx, make_payload
    ):
        payload = make_payload("R4", request_id, name_id=None)
        with pytest.raises(ToolkitValidationFailure):
            consumer.consume(callback_ctx(payload), payload, provider.id)
