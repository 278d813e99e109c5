"""Shared data types for the service layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel, field_validator


@dataclass(slots=True)
class Movie:
    """A row of the movies table as rendered on catalog pages."""

    id: Any
    title: str
    drive_link: str
    folder: str
    description: str | None = None
    duration: str | None = None
    date: str | None = None
    resolution: str | None = None
    file_size: str | None = None
    photo_url: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Movie":
        return cls(
            id=row.get("id"),
            title=row.get("title") or "",
            drive_link=row.get("drive_link") or "",
            folder=row.get("folder") or "",
            description=row.get("description"),
            duration=row.get("duration"),
            date=row.get("date"),
            resolution=row.get("resolution"),
            file_size=row.get("file_size"),
            photo_url=row.get("photo_url"),
            created_at=row.get("created_at"),
        )

    def badges(self) -> list[str]:
        return [value for value in (self.duration, self.resolution, self.file_size) if value]


class MovieDraft(BaseModel):
    """Admin form payload for a new movie row."""

    title: str
    drive_link: str
    folder: str
    description: str | None = None
    duration: str | None = None
    date: str | None = None
    resolution: str | None = None
    file_size: str | None = None
    photo_url: str | None = None

    @field_validator("title", "drive_link", "folder", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("field is required")
        return text

    @field_validator(
        "description", "duration", "date", "resolution", "file_size", "photo_url",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


@dataclass(slots=True)
class SessionUser:
    """Identity reported by the auth service for the current session."""

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SessionUser":
        """Build a user from a GoTrue user object or a decoded access token."""

        return cls(
            id=str(payload.get("id") or payload.get("sub") or ""),
            email=payload.get("email"),
            user_metadata=dict(payload.get("user_metadata") or {}),
        )
