"""Error keys and the error payload shared by the storage layer and the API.

Every error response carries a stable ``errorKey`` plus a human readable
``message`` and ``additionalParams`` used by clients to format it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorKey(str, Enum):
    INVALID_EVENT_ID = "INVALID_EVENT_ID"
    INVALID_FILENAME = "INVALID_FILENAME"
    INVALID_FOLDER = "INVALID_FOLDER"
    INVALID_INPUT = "INVALID_INPUT"
    UPLOAD_FOLDER_REQUIRED = "UPLOAD_FOLDER_REQUIRED"
    AUTHORIZATION_REQUIRED = "AUTHORIZATION_REQUIRED"
    GUEST_DOWNLOADS_DISABLED = "GUEST_DOWNLOADS_DISABLED"
    GUEST_UPLOADS_DISABLED = "GUEST_UPLOADS_DISABLED"
    EVENT_CREATION_DISABLED = "EVENT_CREATION_DISABLED"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FOLDER_NOT_FOUND = "FOLDER_NOT_FOUND"
    NO_FILES_AVAILABLE = "NO_FILES_AVAILABLE"
    EVENT_ID_TAKEN = "EVENT_ID_TAKEN"
    FOLDER_ALREADY_EXISTS = "FOLDER_ALREADY_EXISTS"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_ERROR_KEY: dict[ErrorKey, int] = {
    ErrorKey.INVALID_EVENT_ID: 400,
    ErrorKey.INVALID_FILENAME: 400,
    ErrorKey.INVALID_FOLDER: 400,
    ErrorKey.INVALID_INPUT: 400,
    ErrorKey.UPLOAD_FOLDER_REQUIRED: 400,
    ErrorKey.AUTHORIZATION_REQUIRED: 401,
    ErrorKey.GUEST_DOWNLOADS_DISABLED: 403,
    ErrorKey.GUEST_UPLOADS_DISABLED: 403,
    ErrorKey.EVENT_CREATION_DISABLED: 403,
    ErrorKey.EVENT_NOT_FOUND: 404,
    ErrorKey.FILE_NOT_FOUND: 404,
    ErrorKey.FOLDER_NOT_FOUND: 404,
    ErrorKey.NO_FILES_AVAILABLE: 404,
    ErrorKey.EVENT_ID_TAKEN: 409,
    ErrorKey.FOLDER_ALREADY_EXISTS: 409,
    ErrorKey.FILE_TOO_LARGE: 413,
    ErrorKey.UNSUPPORTED_FILE_TYPE: 415,
    ErrorKey.RATE_LIMITED: 429,
    ErrorKey.INTERNAL_ERROR: 500,
}


class ErrorResponse(BaseModel):
    """错误响应"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    message: str
    error_key: ErrorKey
    additional_params: dict[str, str | int | bool] = Field(default_factory=dict)
    property: str | None = None
    event_id: str | None = None


def status_for_error(error: ErrorResponse) -> int:
    return STATUS_BY_ERROR_KEY.get(ErrorKey(error.error_key), 400)


class ApiError(Exception):
    """Raised by route handlers; rendered by the handler registered in main."""

    def __init__(
        self,
        status_code: int,
        error_key: ErrorKey,
        message: str,
        *,
        property: str | None = None,
        event_id: str | None = None,
        additional_params: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers
        self.error = ErrorResponse(
            message=message,
            error_key=error_key,
            property=property,
            event_id=event_id,
            additional_params=additional_params or {},
        )

    @classmethod
    def from_error(cls, error: ErrorResponse) -> "ApiError":
        """Map a storage/gate failure to its HTTP status."""
        return cls(
            status_for_error(error),
            ErrorKey(error.error_key),
            error.message,
            property=error.property,
            event_id=error.event_id,
            additional_params=dict(error.additional_params),
        )


T = TypeVar("T")


@dataclass
class StorageResult(Generic[T]):
    """Outcome of a storage operation.

    Expected outcomes (not found, taken, invalid names) are returned as a
    failed result instead of raised; I/O faults still raise.
    """
    data: T | None = None
    error: ErrorResponse | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def ok(data: T) -> StorageResult[T]:
    return StorageResult(data=data)


def fail(
    error_key: ErrorKey,
    message: str,
    property: str | None = None,
    additional_params: dict | None = None,
) -> StorageResult:
    return StorageResult(
        error=ErrorResponse(
            message=message,
            error_key=error_key,
            property=property,
            additional_params=additional_params or {},
        )
    )
