"""请求与响应模型"""
from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator

from eventdrop.models import CamelModel, FileEntry
from eventdrop.services.validation import (
    EVENT_ID_MAX_LENGTH,
    EVENT_ID_MIN_LENGTH,
    is_valid_folder_name,
    is_valid_mime_type,
    normalize_event_id,
)

NAME_MAX_LENGTH = 48
DESCRIPTION_MAX_LENGTH = 2048
UPLOAD_FOLDER_HINT_MAX_LENGTH = 512
ADMIN_PASSWORD_MIN_LENGTH = 8
GUEST_PASSWORD_MIN_LENGTH = 4
PASSWORD_MAX_LENGTH = 200


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


def _clean_mime_types(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    cleaned = []
    for value in values:
        value = value.strip()
        if not is_valid_mime_type(value):
            raise ValueError("Invalid MIME type.")
        cleaned.append(value)
    return cleaned


class CreateEventRequest(CamelModel):
    """创建活动请求"""
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    event_id: str = Field(min_length=EVENT_ID_MIN_LENGTH, max_length=EVENT_ID_MAX_LENGTH)
    guest_password: str | None = Field(default=None, max_length=PASSWORD_MAX_LENGTH)
    admin_password: str = Field(min_length=ADMIN_PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    admin_password_confirm: str = Field(min_length=ADMIN_PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    allowed_mime_types: list[str] = Field(default_factory=list)
    allow_guest_download: bool = False
    allow_guest_upload: bool = True
    require_upload_folder: bool = False
    upload_folder_hint: str | None = Field(default=None, max_length=UPLOAD_FOLDER_HINT_MAX_LENGTH)

    @field_validator("name", "description", "event_id", "upload_folder_hint", mode="before")
    @classmethod
    def _strip_text(cls, value):
        return _strip(value)

    @field_validator("event_id")
    @classmethod
    def _normalize_event_id(cls, value: str) -> str:
        normalized = normalize_event_id(value)
        if normalized is None:
            raise ValueError("Only letters, numbers, and dashes are allowed; reserved names are not.")
        return normalized

    @field_validator("description", "upload_folder_hint")
    @classmethod
    def _empty_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("allowed_mime_types")
    @classmethod
    def _validate_mime_types(cls, value: list[str]) -> list[str]:
        return _clean_mime_types(value) or []


class UpdateEventRequest(CamelModel):
    """修改活动请求，未提供的字段保持不变

    guestPassword 传空字符串表示移除访客密码。
    """
    name: str | None = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    guest_password: str | None = Field(default=None, max_length=PASSWORD_MAX_LENGTH)
    allow_guest_download: bool | None = None
    allow_guest_upload: bool | None = None
    require_upload_folder: bool | None = None
    upload_folder_hint: str | None = Field(default=None, max_length=UPLOAD_FOLDER_HINT_MAX_LENGTH)
    allowed_mime_types: list[str] | None = None

    @field_validator("name", "description", "guest_password", "upload_folder_hint", mode="before")
    @classmethod
    def _strip_text(cls, value):
        return _strip(value)

    @field_validator("allowed_mime_types")
    @classmethod
    def _validate_mime_types(cls, value: list[str] | None) -> list[str] | None:
        return _clean_mime_types(value)


class EventResponse(CamelModel):
    """活动信息（不含密码哈希）"""
    event_id: str
    name: str
    description: str
    secured: bool
    allow_guest_download: bool
    allow_guest_upload: bool
    require_upload_folder: bool
    upload_folder_hint: str
    access_level: Literal["admin", "guest"]
    allowed_mime_types: list[str]
    upload_max_file_size_bytes: int
    upload_max_total_size_bytes: int
    created_at: str


class UpdateEventResponse(EventResponse):
    ok: bool = True


class DeleteEventResponse(CamelModel):
    ok: bool = True
    message: str


class AvailabilityResponse(CamelModel):
    event_id: str
    available: bool


class AppConfigResponse(CamelModel):
    allowed_domains: list[str]
    support_subdomain: bool
    allow_event_creation: bool


class ListFilesResponse(CamelModel):
    files: list[FileEntry]
    folders: list[str]
    folder: str


class RejectedUpload(CamelModel):
    file: str
    reason: str


class UploadResponse(CamelModel):
    message: str
    uploaded: int
    files: list[str] = Field(default_factory=list)
    rejected: list[RejectedUpload] = Field(default_factory=list)


class DeleteFileResponse(CamelModel):
    ok: bool = True
    message: str


class RenameFolderRequest(CamelModel):
    to: str

    @field_validator("to", mode="before")
    @classmethod
    def _validate_target(cls, value):
        value = _strip(value)
        if not isinstance(value, str) or not is_valid_folder_name(value):
            raise ValueError("Invalid folder name.")
        return value


class RenameFolderResponse(CamelModel):
    success: bool = True
    folder: str
