# tests/test_retention.py
"""Tests for the retention sweep, trace report and their command line wrapper."""

from datetime import timedelta

import pytest

from samlflow.core.transaction import Phase
from samlflow.db.time import utcnow
from samlflow.scripts import login_states
from samlflow.services.login_state import LoginState
from samlflow.services.retention import purge_inactive_transactions, trace_report


@pytest.fixture()
def aged_records(store, make_ctx):
    old = store.load_by_session(make_ctx(session_id="old"))
    old.last_activity = utcnow() - timedelta(days=45)
    store.save(old)
    store.save(store.load_by_session(make_ctx(session_id="fresh")))


class TestPurge:
    def test_purges_records_past_retention(self, db_session, aged_records):
        assert purge_inactive_transactions(db_session, 30) == 1

    def test_zero_days_keeps_everything(self, db_session, aged_records):
        assert purge_inactive_transactions(db_session, 0) == 0
        assert purge_inactive_transactions(db_session, 60) == 0


class TestTraceReport:
    def test_numbered_trace_lines(self, db_session, store, make_ctx):
        state = LoginState.for_session(store, make_ctx())
        state.set_provider_id(4)
        state.add_trace("loginViaGetter", 4)
        state.add_trace("finalIdp", 4)
        state.set_phase(Phase.SAML_ACS)

        report = trace_report(db_session, 4)

        assert len(report) == 1
        assert report[0]["phase"] == "SAML_ACS"
        assert report[0]["trace"] == ["1 : loginViaGetter => 4", "2 : finalIdp => 4"]
        assert trace_report(db_session, 5) == []


class TestCommandLine:
    def test_purge_command(self, db_session, aged_records, mocker, capsys):
        mocker.patch.object(login_states, "SessionLocal", return_value=db_session)

        assert login_states.main(["purge", "--days", "30"]) == 0

        assert "purged 1 login states" in capsys.readouterr().out

    def test_report_command(self, db_session, store, make_ctx, mocker, capsys):
        state = LoginState.for_session(store, make_ctx())
        state.set_provider_id(2)
        state.add_trace("finalIdp", 2)
        mocker.patch.object(login_states, "SessionLocal", return_value=db_session)

        assert login_states.main(["report", "--provider", "2"]) == 0

        out = capsys.readouterr().out
        assert "INITIAL" in out
        assert "1 : finalIdp => 2" in out

    def test_report_requires_provider(self):
        with pytest.raises(SystemExit):
            login_states.main(["report"])
