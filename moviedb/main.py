"""FastAPI entrypoint wiring the catalog pages, site gate and admin console."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator

from fastapi import APIRouter, Depends, FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from moviedb.core.auth import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    AuthSession,
    SessionCookieWriter,
)
from moviedb.core.config import get_settings
from moviedb.core.gate import (
    SiteGate,
    SiteLocked,
    remember_unlock,
    require_unlocked,
    safe_next_path,
)
from moviedb.services.catalog import CatalogService, folder_icon, folder_path
from moviedb.services.models import Movie, MovieDraft
from moviedb.services.supabase import SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["folder_icon"] = folder_icon
templates.env.globals["folder_path"] = folder_path

MOVIE_FIELDS = (
    "title",
    "description",
    "drive_link",
    "duration",
    "date",
    "resolution",
    "file_size",
    "photo_url",
    "folder",
)

app = FastAPI(title="Movie Catalog")


def get_supabase_client() -> SupabaseClient:
    return SupabaseClient()


def get_catalog(client: SupabaseClient = Depends(get_supabase_client)) -> CatalogService:
    return CatalogService(client)


def get_gate(client: SupabaseClient = Depends(get_supabase_client)) -> SiteGate:
    return SiteGate(client)


def get_auth_session(
    request: Request,
    client: SupabaseClient = Depends(get_supabase_client),
) -> Iterator[AuthSession]:
    """Rebuild the visitor's session from cookies for the lifetime of the request."""

    session = AuthSession(client)
    cookie_writer = SessionCookieWriter()
    request.state.session_cookies = cookie_writer
    unsubscribe = session.subscribe(cookie_writer)
    try:
        session.restore(
            request.cookies.get(ACCESS_COOKIE),
            request.cookies.get(REFRESH_COOKIE),
        )
        yield session
    finally:
        unsubscribe()


class AdminOnly(Exception):
    """Raised when a non-admin reaches an admin page."""


def require_admin(session: AuthSession = Depends(get_auth_session)) -> AuthSession:
    """Admin pages answer exactly like an unknown path for everyone else."""

    if not session.is_admin:
        raise AdminOnly()
    return session


def _finish(request: Request, response: Response) -> Response:
    cookie_writer = getattr(request.state, "session_cookies", None)
    if cookie_writer is not None:
        cookie_writer.apply(response)
    return response


def _render(
    request: Request,
    template: str,
    context: dict[str, Any] | None = None,
    *,
    session: AuthSession | None = None,
    status_code: int = status.HTTP_200_OK,
) -> Response:
    payload = {
        "site_title": get_settings().site_title,
        "user": session.user if session else None,
        "is_admin": session.is_admin if session else False,
    }
    payload.update(context or {})
    response = templates.TemplateResponse(request, template, payload, status_code=status_code)
    return _finish(request, response)


def _redirect(request: Request, url: str) -> Response:
    return _finish(request, RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER))


@app.exception_handler(SiteLocked)
def render_gate(request: Request, exc: SiteLocked) -> Response:
    return _render(request, "gate.html", {"next": exc.next_path, "error": None})


@app.exception_handler(AdminOnly)
def hide_admin_page(request: Request, exc: AdminOnly) -> Response:
    # Same body as an unknown path, plus any cookies a token refresh produced
    response = JSONResponse({"detail": "Not Found"}, status_code=status.HTTP_404_NOT_FOUND)
    return _finish(request, response)


@app.post("/unlock", response_class=HTMLResponse)
def unlock_site(
    request: Request,
    password: str = Form(""),
    next_path: str = Form("/", alias="next"),
    gate: SiteGate = Depends(get_gate),
) -> Response:
    result = gate.check(password)
    if not result.unlocked:
        return _render(request, "gate.html", {"next": next_path, "error": result.error})
    response = RedirectResponse(url=safe_next_path(next_path), status_code=status.HTTP_303_SEE_OTHER)
    remember_unlock(response)
    return response


pages = APIRouter(dependencies=[Depends(require_unlocked)])


@pages.get("/", response_class=HTMLResponse)
def folder_grid(
    request: Request,
    catalog: CatalogService = Depends(get_catalog),
    session: AuthSession = Depends(get_auth_session),
) -> Response:
    folders: list[str] = []
    error = None
    try:
        folders = catalog.list_folders()
    except SupabaseError as exc:
        logger.warning(f"Loading folders failed: {exc}")
        error = "Error loading folders"
    return _render(request, "folders.html", {"folders": folders, "error": error}, session=session)


@pages.get("/folder/{folder:path}", response_class=HTMLResponse)
def movies_in_folder(
    folder: str,
    request: Request,
    catalog: CatalogService = Depends(get_catalog),
    session: AuthSession = Depends(get_auth_session),
) -> Response:
    movies: list[Movie] = []
    error = None
    try:
        movies = catalog.list_movies(folder)
    except SupabaseError as exc:
        logger.warning(f"Loading movies for folder {folder!r} failed: {exc}")
        error = "Error loading movies"
    return _render(
        request,
        "folder.html",
        {"folder": folder, "movies": movies, "error": error},
        session=session,
    )


@pages.get("/admin-login", response_class=HTMLResponse)
def admin_login_page(
    request: Request,
    session: AuthSession = Depends(get_auth_session),
) -> Response:
    return _render(request, "admin_login.html", {"email": "", "error": None}, session=session)


@pages.post("/admin-login", response_class=HTMLResponse)
def admin_login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    session: AuthSession = Depends(get_auth_session),
) -> Response:
    try:
        session.login(email.strip(), password)
    except SupabaseError as exc:
        logger.warning(f"Admin login failed for {email!r}: {exc}")
        return _render(
            request,
            "admin_login.html",
            {"email": email, "error": "Invalid credentials"},
            session=session,
        )
    return _redirect(request, "/admin")


@pages.post("/logout")
def logout(
    request: Request,
    session: AuthSession = Depends(get_auth_session),
) -> Response:
    session.logout()
    return _redirect(request, "/")


def _empty_form() -> dict[str, str]:
    return {name: "" for name in MOVIE_FIELDS}


def _render_admin(
    request: Request,
    session: AuthSession,
    catalog: CatalogService,
    *,
    form: dict[str, str] | None = None,
    message: str | None = None,
    error: str | None = None,
) -> Response:
    movies: list[Movie] = []
    try:
        movies = catalog.list_movies()
    except SupabaseError as exc:
        logger.warning(f"Loading movies for admin failed: {exc}")
        error = error or "Error loading movies"
    return _render(
        request,
        "admin.html",
        {
            "form": form or _empty_form(),
            "movies": movies,
            "message": message,
            "error": error,
        },
        session=session,
    )


@pages.get("/admin", response_class=HTMLResponse)
def admin_dashboard(
    request: Request,
    added: bool = False,
    session: AuthSession = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Response:
    return _render_admin(request, session, catalog, message="Movie added!" if added else None)


@pages.post("/admin/movies", response_class=HTMLResponse)
def add_movie(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    drive_link: str = Form(""),
    duration: str = Form(""),
    date: str = Form(""),
    resolution: str = Form(""),
    file_size: str = Form(""),
    photo_url: str = Form(""),
    folder: str = Form(""),
    session: AuthSession = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Response:
    form = {
        "title": title,
        "description": description,
        "drive_link": drive_link,
        "duration": duration,
        "date": date,
        "resolution": resolution,
        "file_size": file_size,
        "photo_url": photo_url,
        "folder": folder,
    }
    try:
        draft = MovieDraft(**form)
        catalog.add_movie(draft, access_token=session.access_token)
    except ValidationError as exc:
        logger.info("Rejected movie form: %s", exc.errors())
        return _render_admin(request, session, catalog, form=form, error="Error adding movie")
    except SupabaseError as exc:
        logger.warning(f"Adding movie {title!r} failed: {exc}")
        return _render_admin(request, session, catalog, form=form, error="Error adding movie")
    return _redirect(request, "/admin?added=1")


@pages.post("/admin/movies/{movie_id}/delete", response_class=HTMLResponse)
def delete_movie(
    movie_id: str,
    request: Request,
    session: AuthSession = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Response:
    error = None
    try:
        catalog.delete_movie(movie_id, access_token=session.access_token)
    except SupabaseError as exc:
        logger.warning(f"Deleting movie {movie_id} failed: {exc}")
        error = "Error deleting movie"
    return _render_admin(request, session, catalog, error=error)


app.include_router(pages)
