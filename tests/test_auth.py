from types import SimpleNamespace

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import Response
from jwt.exceptions import PyJWKClientConnectionError

from moviedb.core import auth
from moviedb.core.auth import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthSession,
    SessionCookieWriter,
    is_admin,
)
from moviedb.core.config import get_settings
from moviedb.services.models import SessionUser
from moviedb.services.supabase import SupabaseAuthError

from tests.fakes import ADMIN_EMAIL, PASSWORD, VIEWER_EMAIL, mint_token


@pytest.fixture
def session(supabase_client):
    return AuthSession(supabase_client)


@pytest.fixture
def events(session):
    seen = []
    session.subscribe(lambda event, s: seen.append((event, s.is_admin)))
    return seen


def test_is_admin_requires_exact_true_flag():
    assert is_admin(None) is False
    assert is_admin(SessionUser(id="1", user_metadata={"is_admin": True})) is True
    assert is_admin(SessionUser(id="1", user_metadata={"is_admin": "true"})) is False
    assert is_admin(SessionUser(id="1", user_metadata={"is_admin": 1})) is False
    assert is_admin(SessionUser(id="1")) is False


def test_login_signs_in_and_notifies(session, events):
    user = session.login(ADMIN_EMAIL, PASSWORD)
    assert user.email == ADMIN_EMAIL
    assert session.is_admin is True
    assert session.access_token and session.refresh_token
    assert events == [(SIGNED_IN, True)]


def test_login_with_bad_credentials_raises(session, events):
    with pytest.raises(SupabaseAuthError):
        session.login(ADMIN_EMAIL, "wrong")
    assert session.user is None
    assert events == []


def test_admin_flag_follows_every_session_change(session, events):
    session.login(VIEWER_EMAIL, PASSWORD)
    session.logout()
    session.login(ADMIN_EMAIL, PASSWORD)
    assert events == [(SIGNED_IN, False), (SIGNED_OUT, False), (SIGNED_IN, True)]


def test_logout_clears_state_even_when_remote_fails(session, events, backend):
    session.login(ADMIN_EMAIL, PASSWORD)
    backend.failing.add("POST /auth/v1/logout")
    session.logout()
    assert session.user is None
    assert session.access_token is None
    assert events[-1] == (SIGNED_OUT, False)


def test_unsubscribe_stops_notifications(session):
    seen = []
    unsubscribe = session.subscribe(lambda event, s: seen.append(event))
    session.login(ADMIN_EMAIL, PASSWORD)
    unsubscribe()
    session.logout()
    assert seen == [SIGNED_IN]


def test_restore_valid_token(session, events, backend):
    payload = backend.session_for(ADMIN_EMAIL)
    session.restore(payload["access_token"], payload["refresh_token"])
    assert session.user.email == ADMIN_EMAIL
    assert session.is_admin is True
    assert events == []


def test_restore_expired_token_refreshes(session, events, backend):
    payload = backend.session_for(VIEWER_EMAIL)
    expired = mint_token(backend.users[VIEWER_EMAIL], expires_in=-60)
    session.restore(expired, payload["refresh_token"])
    assert events == [(TOKEN_REFRESHED, False)]
    assert session.user.email == VIEWER_EMAIL
    assert session.access_token != expired


def test_restore_expired_token_without_refresh_signs_out(session, events, backend):
    expired = mint_token(backend.users[ADMIN_EMAIL], expires_in=-60)
    session.restore(expired, None)
    assert session.user is None
    assert events == [(SIGNED_OUT, False)]


def test_restore_rejected_refresh_signs_out(session, events, backend):
    expired = mint_token(backend.users[ADMIN_EMAIL], expires_in=-60)
    session.restore(expired, "not-a-known-refresh-token")
    assert session.user is None
    assert events == [(SIGNED_OUT, False)]


def test_restore_forged_token_signs_out(session, events, backend):
    forged = mint_token(
        backend.users[VIEWER_EMAIL] | {"user_metadata": {"is_admin": True}},
        secret="some-other-secret-that-is-32-bytes-long",
    )
    session.restore(forged, None)
    assert session.user is None
    assert session.is_admin is False
    assert events == [(SIGNED_OUT, False)]


def test_restore_without_jwt_secret_asks_auth_server(monkeypatch, session, backend):
    monkeypatch.delenv("SUPABASE_JWT_SECRET")
    get_settings.cache_clear()
    payload = backend.session_for(ADMIN_EMAIL)
    session.restore(payload["access_token"], None)
    assert session.is_admin is True
    assert backend.requests[-1].url.path == "/auth/v1/user"


def test_restore_with_only_refresh_token(session, events, backend):
    payload = backend.session_for(ADMIN_EMAIL)
    session.restore(None, payload["refresh_token"])
    assert session.is_admin is True
    assert events == [(TOKEN_REFRESHED, True)]


def test_cookie_writer_sets_and_clears_cookies(session):
    writer = SessionCookieWriter()
    session.subscribe(writer)

    untouched = Response()
    writer.apply(untouched)
    assert untouched.headers.getlist("set-cookie") == []

    session.login(ADMIN_EMAIL, PASSWORD)
    signed_in = Response()
    writer.apply(signed_in)
    cookies = signed_in.headers.getlist("set-cookie")
    assert any(c.startswith(f"{ACCESS_COOKIE}={session.access_token}") for c in cookies)
    assert any(c.startswith(f"{REFRESH_COOKIE}=") and "HttpOnly" in c for c in cookies)

    session.logout()
    signed_out = Response()
    writer.apply(signed_out)
    cleared = signed_out.headers.getlist("set-cookie")
    assert all("Max-Age=0" in c for c in cleared)
    assert len(cleared) == 2


class StubJWKSClient:
    def __init__(self, public_key=None, error=None):
        self.public_key = public_key
        self.error = error

    def get_signing_key_from_jwt(self, token):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(key=self.public_key)


@pytest.fixture
def signing_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def es256_token(backend, signing_key):
    return mint_token(backend.users[ADMIN_EMAIL], secret=signing_key, algorithm="ES256")


def test_restore_es256_token_via_jwks(monkeypatch, session, events, signing_key, es256_token):
    urls = []

    def _client(url):
        urls.append(url)
        return StubJWKSClient(public_key=signing_key.public_key())

    monkeypatch.setattr(auth, "_jwks_client", _client)
    session.restore(es256_token, "refresh")
    assert session.is_admin is True
    assert session.access_token == es256_token
    assert urls == ["https://demo.supabase.co/auth/v1/.well-known/jwks.json"]
    assert events == []


def test_restore_es256_token_signed_with_other_key_signs_out(monkeypatch, session, events, es256_token):
    other_key = ec.generate_private_key(ec.SECP256R1())
    monkeypatch.setattr(
        auth, "_jwks_client", lambda url: StubJWKSClient(public_key=other_key.public_key())
    )
    session.restore(es256_token, None)
    assert session.user is None
    assert events == [(SIGNED_OUT, False)]


def test_restore_keeps_cookies_when_jwks_is_unreachable(monkeypatch, session, events, es256_token):
    outage = PyJWKClientConnectionError("Fail to fetch data from the url, err: timed out")
    monkeypatch.setattr(auth, "_jwks_client", lambda url: StubJWKSClient(error=outage))
    writer = SessionCookieWriter()
    session.subscribe(writer)

    session.restore(es256_token, "refresh")

    assert session.user is None
    assert events == []
    response = Response()
    writer.apply(response)
    assert response.headers.getlist("set-cookie") == []
