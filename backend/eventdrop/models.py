"""On-disk and in-memory records.

``EventRecord`` is persisted as camelCase JSON in ``<data_root>/<eventId>/project.json``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now_str() -> str:
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventSettings(CamelModel):
    allow_guest_download: bool = False
    allow_guest_upload: bool = True
    require_upload_folder: bool = False
    upload_folder_hint: str | None = None


class EventAuth(CamelModel):
    guest_password_hash: str | None = None
    admin_password_hash: str


class EventRecord(CamelModel):
    event_id: str
    name: str
    description: str | None = None
    created_at: str = Field(default_factory=utc_now_str)
    allowed_mime_types: list[str] = Field(default_factory=list)
    settings: EventSettings = Field(default_factory=EventSettings)
    auth: EventAuth

    @field_validator("allowed_mime_types", mode="before")
    @classmethod
    def _clean_mime_types(cls, value):
        if not value:
            return []
        return [m.strip() for m in value if m and m.strip()]

    @property
    def secured(self) -> bool:
        return bool(self.auth.guest_password_hash)

    @property
    def guest_downloads_enabled(self) -> bool:
        return self.settings.allow_guest_download and self.secured


class FileEntry(CamelModel):
    name: str
    size: int
    created_at: str


class ListFilesResult(CamelModel):
    files: list[FileEntry] = Field(default_factory=list)
    folders: list[str] = Field(default_factory=list)


@dataclass
class StagedUpload:
    """A file received by the upload route and parked in the staging area."""
    path: Path
    original_name: str
    content_type: str | None = None
    size: int = 0


@dataclass
class FileHandle:
    path: Path
    size: int
    last_modified: datetime


@dataclass
class FileBuffer:
    data: bytes
    size: int
    last_modified: datetime
