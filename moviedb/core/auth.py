"""Per-request Supabase session handling and admin derivation."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Mapping

import jwt
from fastapi import Response
from jwt.exceptions import PyJWKClientConnectionError

from moviedb.core.config import get_settings
from moviedb.services.models import SessionUser
from moviedb.services.supabase import SupabaseAuthError, SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"
REFRESH_MAX_AGE = 30 * 24 * 60 * 60

SessionListener = Callable[[str, "AuthSession"], None]


def is_admin(user: SessionUser | None) -> bool:
    """A user is an admin only when their metadata flag is exactly ``True``."""

    if user is None:
        return False
    return user.user_metadata.get("is_admin") is True


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def decode_access_token(token: str) -> Mapping[str, Any] | None:
    """Verify a Supabase access token locally and return its claims.

    Returns ``None`` when the token cannot be verified locally (HS256 token but
    no JWT secret configured); callers then ask the auth server instead.
    Raises ``jwt.PyJWTError`` subclasses for invalid or expired tokens.
    """

    settings = get_settings()
    header = jwt.get_unverified_header(token)
    alg = header.get("alg")

    if alg in ("RS256", "ES256"):
        if not settings.supabase_url:
            raise jwt.InvalidTokenError("SUPABASE_URL missing for asymmetric JWT")
        # Signing keys published by the project
        jwks_url = f"{settings.supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"
        signing_key = _jwks_client(jwks_url).get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            options={"verify_aud": False},
        )

    if not settings.supabase_jwt_secret:
        return None
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        options={"verify_aud": False},
    )


class AuthSession:
    """The current visitor's auth state, rebuilt for every request.

    Listeners registered with :meth:`subscribe` are told about every session
    change as ``(event, session)``.
    """

    def __init__(self, client: SupabaseClient) -> None:
        self.client = client
        self.user: SessionUser | None = None
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.expires_in: int | None = None
        self._listeners: list[SessionListener] = []

    @property
    def is_admin(self) -> bool:
        return is_admin(self.user)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event, self)

    def _apply_session(self, payload: Mapping[str, Any]) -> None:
        self.access_token = payload.get("access_token")
        self.refresh_token = payload.get("refresh_token")
        self.expires_in = payload.get("expires_in")
        self.user = SessionUser.from_payload(payload.get("user") or {})

    def _clear(self) -> None:
        self.user = None
        self.access_token = None
        self.refresh_token = None
        self.expires_in = None

    def login(self, email: str, password: str) -> SessionUser:
        """Sign in with email/password; raises ``SupabaseAuthError`` on bad credentials."""

        payload = self.client.sign_in_with_password(email, password)
        self._apply_session(payload)
        logger.info("User %s signed in (admin=%s)", self.user.email, self.is_admin)
        self._notify(SIGNED_IN)
        return self.user

    def logout(self) -> None:
        token = self.access_token
        try:
            if token:
                self.client.sign_out(token)
        except SupabaseError as exc:
            logger.warning(f"Remote sign-out failed, clearing local session anyway: {exc}")
        finally:
            email = self.user.email if self.user else None
            self._clear()
            logger.info("User %s signed out", email)
            self._notify(SIGNED_OUT)

    def restore(self, access_token: str | None, refresh_token: str | None) -> None:
        """Rebuild the session from stored tokens, refreshing an expired one."""

        if not access_token:
            if refresh_token:
                self._refresh(refresh_token)
            return

        try:
            claims = decode_access_token(access_token)
        except jwt.ExpiredSignatureError:
            logger.info("Access token expired")
            self._refresh_or_drop(refresh_token)
            return
        except PyJWKClientConnectionError as exc:
            # Signing keys unreachable; keep the cookies for the next request
            logger.warning(f"Could not fetch JWKS to verify token: {exc}")
            return
        except jwt.PyJWTError as exc:
            logger.warning(f"JWT validation failed: Invalid token. Reason: {exc}")
            self._drop()
            return

        if claims is not None:
            self.user = SessionUser.from_payload(claims)
        else:
            try:
                self.user = SessionUser.from_payload(self.client.get_user(access_token))
            except SupabaseAuthError:
                self._refresh_or_drop(refresh_token)
                return
            except SupabaseError as exc:
                logger.warning(f"Could not load current user: {exc}")
                return
        self.access_token = access_token
        self.refresh_token = refresh_token

    def _refresh_or_drop(self, refresh_token: str | None) -> None:
        if refresh_token:
            self._refresh(refresh_token)
        else:
            self._drop()

    def _refresh(self, refresh_token: str) -> None:
        try:
            payload = self.client.refresh_session(refresh_token)
        except SupabaseAuthError as exc:
            logger.warning(f"Session refresh rejected: {exc}")
            self._drop()
            return
        except SupabaseError as exc:
            logger.warning(f"Session refresh failed: {exc}")
            return
        self._apply_session(payload)
        self._notify(TOKEN_REFRESHED)

    def _drop(self) -> None:
        self._clear()
        self._notify(SIGNED_OUT)


class SessionCookieWriter:
    """Session listener that mirrors the latest session change into cookies."""

    def __init__(self) -> None:
        self._pending: tuple[str | None, str | None, int | None] | None = None

    def __call__(self, event: str, session: AuthSession) -> None:
        if event in (SIGNED_IN, TOKEN_REFRESHED):
            self._pending = (session.access_token, session.refresh_token, session.expires_in)
        elif event == SIGNED_OUT:
            self._pending = (None, None, None)

    def apply(self, response: Response) -> None:
        if self._pending is None:
            return
        access_token, refresh_token, expires_in = self._pending
        secure = get_settings().cookie_secure
        if access_token:
            response.set_cookie(
                ACCESS_COOKIE,
                access_token,
                max_age=expires_in or 3600,
                httponly=True,
                samesite="lax",
                secure=secure,
                path="/",
            )
        else:
            response.delete_cookie(ACCESS_COOKIE, path="/")
        if refresh_token:
            response.set_cookie(
                REFRESH_COOKIE,
                refresh_token,
                max_age=REFRESH_MAX_AGE,
                httponly=True,
                samesite="lax",
                secure=secure,
                path="/",
            )
        else:
            response.delete_cookie(REFRESH_COOKIE, path="/")
