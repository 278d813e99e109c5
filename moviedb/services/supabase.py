"""Thin wrapper around the Supabase REST (PostgREST) and auth (GoTrue) APIs."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import httpx

from moviedb.core.config import get_settings


logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Base exception for Supabase-related failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseAuthError(SupabaseError):
    """Raised when the auth service rejects credentials or a token."""


class SupabaseNotConfigured(SupabaseError):
    """Raised when the project URL or API key is missing."""


class SupabaseClient:
    """Simple Supabase HTTP client using the project's public API key."""

    def __init__(
        self,
        *,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.url = (url or settings.supabase_url or "").rstrip("/")
        self.api_key = api_key or settings.supabase_anon_key
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.transport = transport

    def _headers(self, access_token: str | None) -> dict[str, str]:
        return {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {access_token or self.api_key}",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        access_token: str | None = None,
        auth_endpoint: bool = False,
    ) -> Any:
        if not self.url or not self.api_key:
            raise SupabaseNotConfigured("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")
        request_headers = self._headers(access_token)
        if headers:
            request_headers.update(headers)
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(
                    method,
                    f"{self.url}{path}",
                    params=query,
                    json=json,
                    headers=request_headers,
                )
        except httpx.HTTPError as exc:
            raise SupabaseError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            detail = self._error_detail(response)
            logger.debug("Supabase %s %s -> %s: %s", method, path, response.status_code, detail)
            error_cls = SupabaseAuthError if auth_endpoint and response.status_code < 500 else SupabaseError
            raise error_cls(detail, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise SupabaseError(f"Malformed response from {path}") from exc

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            for key in ("error_description", "msg", "message", "error"):
                if body.get(key):
                    return str(body[key])
        return str(body)

    # -- PostgREST ---------------------------------------------------------

    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Mapping[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
        access_token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows of ``table`` matching all ``eq`` filters."""

        params: dict[str, Any] = {"select": columns}
        params.update(self._eq_filters(eq))
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        payload = self._request("GET", f"/rest/v1/{table}", params=params, access_token=access_token)
        if not isinstance(payload, list):
            raise SupabaseError(f"Expected a list of rows from {table}")
        return payload

    def insert(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        *,
        access_token: str | None = None,
    ) -> list[dict[str, Any]]:
        payload = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=[dict(row) for row in rows],
            headers={"Prefer": "return=representation"},
            access_token=access_token,
        )
        return payload or []

    def delete(
        self,
        table: str,
        *,
        eq: Mapping[str, Any],
        access_token: str | None = None,
    ) -> list[dict[str, Any]]:
        if not eq:
            raise ValueError("delete requires at least one filter")
        payload = self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=self._eq_filters(eq),
            headers={"Prefer": "return=representation"},
            access_token=access_token,
        )
        return payload or []

    def rpc(self, name: str, args: Mapping[str, Any] | None = None) -> Any:
        return self._request("POST", f"/rest/v1/rpc/{name}", json=dict(args or {}))

    @staticmethod
    def _eq_filters(eq: Mapping[str, Any] | None) -> dict[str, str]:
        return {column: f"eq.{value}" for column, value in (eq or {}).items()}

    # -- GoTrue ------------------------------------------------------------

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Exchange credentials for a session payload (tokens + user)."""

        return self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            auth_endpoint=True,
        )

    def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        return self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            auth_endpoint=True,
        )

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/auth/v1/logout", access_token=access_token, auth_endpoint=True)

    def get_user(self, access_token: str) -> dict[str, Any]:
        return self._request("GET", "/auth/v1/user", access_token=access_token, auth_endpoint=True)
