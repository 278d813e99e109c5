"""Shared-password site gate.

The password is checked by a database RPC so it never ships with the app.
Passing the gate sets a long-lived cookie that is not tied to any user: every
visitor of that browser is let through until the cookie is cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request, Response

from moviedb.core.config import get_settings
from moviedb.services.supabase import SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

UNLOCK_COOKIE = "siteUnlocked"
UNLOCK_MAX_AGE = 10 * 365 * 24 * 60 * 60

INCORRECT_PASSWORD = "Incorrect password"
CHECK_FAILED = "Error checking password"


class SiteLocked(Exception):
    """Raised by page dependencies when the visitor has not passed the gate."""

    def __init__(self, next_path: str = "/") -> None:
        super().__init__(next_path)
        self.next_path = next_path


@dataclass(slots=True)
class GateResult:
    unlocked: bool
    error: str | None = None


class SiteGate:
    def __init__(self, client: SupabaseClient, *, rpc_name: str | None = None) -> None:
        self.client = client
        self.rpc_name = rpc_name or get_settings().site_password_rpc

    def check(self, password: str) -> GateResult:
        try:
            data = self.client.rpc(self.rpc_name, {"pwd": password})
        except SupabaseError as exc:
            logger.warning(f"Site password check failed: {exc}")
            return GateResult(unlocked=False, error=CHECK_FAILED)
        if data is True:
            return GateResult(unlocked=True)
        return GateResult(unlocked=False, error=INCORRECT_PASSWORD)


def is_unlocked(request: Request) -> bool:
    return request.cookies.get(UNLOCK_COOKIE) == "true"


def remember_unlock(response: Response) -> None:
    response.set_cookie(
        UNLOCK_COOKIE,
        "true",
        max_age=UNLOCK_MAX_AGE,
        samesite="lax",
        secure=get_settings().cookie_secure,
        path="/",
    )


def safe_next_path(raw: str | None) -> str:
    """Only local absolute paths are accepted as a post-unlock destination."""

    if not raw or not raw.startswith("/") or raw[1:2] in ("/", "\\"):
        return "/"
    return raw


def require_unlocked(request: Request) -> None:
    """Page dependency: stop at the gate until the unlock cookie is present."""

    if not is_unlocked(request):
        next_path = request.url.path
        if request.url.query:
            next_path = f"{next_path}?{request.url.query}"
        raise SiteLocked(next_path)
