"""Catalog reads and admin writes over the movies table."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from moviedb.core.config import get_settings
from moviedb.services.models import Movie, MovieDraft
from moviedb.services.supabase import SupabaseClient


logger = logging.getLogger(__name__)

DEFAULT_FOLDER_ICON = "📁"
FOLDER_ICONS = {
    "Jameson's Films": "🧃",
    "Cabin Films": "🎥",
}


def folder_icon(folder: str) -> str:
    return FOLDER_ICONS.get(folder, DEFAULT_FOLDER_ICON)


def folder_path(folder: str) -> str:
    """Return the listing URL for ``folder`` with the name encoded as one segment."""

    return f"/folder/{quote(folder, safe='')}"


def distinct_folders(rows: list[dict[str, Any]]) -> list[str]:
    """Reduce ``folder`` column rows to the distinct folder names."""

    return list(dict.fromkeys(row["folder"] for row in rows if row.get("folder")))


class CatalogService:
    """Reads folders and movies, and performs admin inserts/deletes."""

    def __init__(self, client: SupabaseClient, *, table: str | None = None) -> None:
        self.client = client
        self.table = table or get_settings().movies_table

    def list_folders(self) -> list[str]:
        rows = self.client.select(self.table, "folder")
        folders = distinct_folders(rows)
        logger.debug("Folders derived from %d rows: %s", len(rows), folders)
        return folders

    def list_movies(self, folder: str | None = None) -> list[Movie]:
        """Return movies newest first, optionally restricted to one folder."""

        rows = self.client.select(
            self.table,
            "*",
            eq={"folder": folder} if folder is not None else None,
            order="created_at",
            descending=True,
        )
        return [Movie.from_row(row) for row in rows]

    def add_movie(self, draft: MovieDraft, *, access_token: str | None) -> Movie | None:
        rows = self.client.insert(self.table, [draft.to_row()], access_token=access_token)
        logger.info("Inserted movie %r into folder %r", draft.title, draft.folder)
        return Movie.from_row(rows[0]) if rows else None

    def delete_movie(self, movie_id: Any, *, access_token: str | None) -> None:
        rows = self.client.delete(self.table, eq={"id": movie_id}, access_token=access_token)
        logger.info("Deleted movie id=%s (%d row(s))", movie_id, len(rows))
