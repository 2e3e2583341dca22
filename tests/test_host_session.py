# tests/test_host_session.py
"""Tests for the JWT backed host session."""

from datetime import UTC, datetime, timedelta

from fastapi import Response
from jose import jwt

from samlflow.core.settings import settings
from samlflow.services.claims import Principal
from samlflow.services.host_session import JwtHostSession


def _token(sub: str, sid: str, secret: str | None = None, minutes: int = 5) -> str:
    return jwt.encode(
        {"sub": sub, "sid": sid, "exp": datetime.now(UTC) + timedelta(minutes=minutes)},
        secret or settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


class TestJwtHostSession:
    def test_first_contact_issues_session_cookie(self):
        session = JwtHostSession({})
        response = Response()

        session.apply(response)

        assert session.session_id
        assert f"{settings.session_cookie_name}={session.session_id}" in response.headers["set-cookie"]
        assert not session.is_authenticated()

    def test_valid_token_for_current_session(self):
        session = JwtHostSession(
            {settings.session_cookie_name: "s1", settings.auth_cookie_name: _token("alice", "s1")}
        )
        assert session.is_authenticated()
        assert session.user_name == "alice"

    def test_token_bound_to_other_session_is_rejected(self):
        session = JwtHostSession(
            {settings.session_cookie_name: "s2", settings.auth_cookie_name: _token("alice", "s1")}
        )
        assert not session.is_authenticated()
        assert session.user_name is None

    def test_token_with_wrong_secret_or_expired_is_rejected(self):
        for token in (_token("alice", "s1", secret="other"), _token("alice", "s1", minutes=-5)):
            session = JwtHostSession(
                {settings.session_cookie_name: "s1", settings.auth_cookie_name: token}
            )
            assert not session.is_authenticated()

    def test_destroy_start_init_rotates_and_authenticates(self):
        session = JwtHostSession({settings.session_cookie_name: "s1"})

        session.destroy()
        session.start()
        session.init(Principal(user_name="bob@a.com", email="bob@a.com"))

        assert session.session_id not in ("", "s1")
        assert session.is_authenticated()
        response = Response()
        session.apply(response)
        cookies = response.headers.getlist("set-cookie")
        assert any(cookie.startswith(f"{settings.auth_cookie_name}=") for cookie in cookies)
        assert any(cookie.startswith(f"{settings.session_cookie_name}={session.session_id}") for cookie in cookies)

    def test_destroy_clears_cookies(self):
        session = JwtHostSession(
            {settings.session_cookie_name: "s1", settings.auth_cookie_name: _token("alice", "s1")}
        )

        session.destroy()
        response = Response()
        session.apply(response)

        assert not session.is_authenticated()
        assert all("Max-Age=0" in cookie for cookie in response.headers.getlist("set-cookie"))
