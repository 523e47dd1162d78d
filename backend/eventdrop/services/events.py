"""Event lifecycle rules: building, merging and shaping event records.

Persistence lives in :mod:`eventdrop.services.event_store`; this module only
decides what a valid record looks like. The guest settings rules are checked
on create and on update alike:

* guest downloads need a guest password
* guest downloads and guest uploads cannot both be off
"""
from __future__ import annotations

import asyncio

from eventdrop.core.config import settings
from eventdrop.core.errors import ErrorKey, StorageResult, fail, ok
from eventdrop.core.security import hash_password
from eventdrop.models import EventAuth, EventRecord, EventSettings
from eventdrop.schemas import (
    GUEST_PASSWORD_MIN_LENGTH,
    CreateEventRequest,
    EventResponse,
    UpdateEventRequest,
)
from eventdrop.services.access import Role


def _invalid(message: str, property: str, additional_params: dict | None = None) -> StorageResult:
    return fail(ErrorKey.INVALID_INPUT, message, property=property, additional_params=additional_params)


def _guest_password_too_short() -> StorageResult:
    return _invalid(
        "Guest password must be at least 4 characters.",
        "guestPassword",
        {"MIN_REQUIRED": GUEST_PASSWORD_MIN_LENGTH},
    )


def check_guest_settings(event_settings: EventSettings, has_guest_password: bool) -> StorageResult | None:
    """Return a failure when the guest settings break an event invariant."""
    if event_settings.allow_guest_download and not has_guest_password:
        return _invalid("Guest downloads require a set guest password.", "allowGuestDownload")
    if not event_settings.allow_guest_download and not event_settings.allow_guest_upload:
        return _invalid("Guests must be allowed to upload or to download.", "allowGuestUpload")
    return None


async def build_event_record(payload: CreateEventRequest) -> StorageResult[EventRecord]:
    """Validate a create request and hash its passwords into a new record."""
    if payload.admin_password != payload.admin_password_confirm:
        return _invalid("Admin passwords must match.", "adminPasswordConfirm")

    guest_password = payload.guest_password or ""
    if guest_password and len(guest_password) < GUEST_PASSWORD_MIN_LENGTH:
        return _guest_password_too_short()

    event_settings = EventSettings(
        allow_guest_download=payload.allow_guest_download,
        allow_guest_upload=payload.allow_guest_upload,
        require_upload_folder=payload.require_upload_folder,
        upload_folder_hint=payload.upload_folder_hint,
    )
    problem = check_guest_settings(event_settings, bool(guest_password))
    if problem is not None:
        return problem

    admin_hash = await asyncio.to_thread(hash_password, payload.admin_password)
    guest_hash = await asyncio.to_thread(hash_password, guest_password) if guest_password else None

    return ok(EventRecord(
        event_id=payload.event_id,
        name=payload.name,
        description=payload.description,
        allowed_mime_types=payload.allowed_mime_types,
        settings=event_settings,
        auth=EventAuth(guest_password_hash=guest_hash, admin_password_hash=admin_hash),
    ))


async def apply_update(event: EventRecord, payload: UpdateEventRequest) -> StorageResult[EventRecord]:
    """Merge a partial update into a copy of ``event``.

    Only fields present in the request change. An empty ``guestPassword``
    removes the guest password and with it guest downloads.
    """
    changes = payload.model_dump(exclude_unset=True)
    updated = event.model_copy(deep=True)

    if changes.get("name") is not None:
        updated.name = changes["name"]
    if "description" in changes:
        updated.description = changes["description"] or None

    guest_password = changes.get("guest_password")
    if guest_password is not None:
        if guest_password == "":
            updated.auth.guest_password_hash = None
            updated.settings.allow_guest_download = False
        elif len(guest_password) < GUEST_PASSWORD_MIN_LENGTH:
            return _guest_password_too_short()
        else:
            updated.auth.guest_password_hash = await asyncio.to_thread(hash_password, guest_password)

    for key in ("allow_guest_download", "allow_guest_upload", "require_upload_folder"):
        if changes.get(key) is not None:
            setattr(updated.settings, key, changes[key])
    if "upload_folder_hint" in changes:
        updated.settings.upload_folder_hint = changes["upload_folder_hint"] or None
    if changes.get("allowed_mime_types") is not None:
        updated.allowed_mime_types = changes["allowed_mime_types"]

    problem = check_guest_settings(updated.settings, bool(updated.auth.guest_password_hash))
    if problem is not None:
        return problem
    return ok(updated)


def build_event_response(event: EventRecord, access_level: Role) -> EventResponse:
    return EventResponse(
        event_id=event.event_id,
        name=event.name,
        description=event.description or "",
        secured=event.secured,
        allow_guest_download=event.guest_downloads_enabled,
        allow_guest_upload=event.settings.allow_guest_upload,
        require_upload_folder=event.settings.require_upload_folder,
        upload_folder_hint=event.settings.upload_folder_hint or "",
        access_level=access_level.value,
        allowed_mime_types=list(event.allowed_mime_types),
        upload_max_file_size_bytes=settings.upload_max_file_size_bytes,
        upload_max_total_size_bytes=settings.upload_max_total_size_bytes,
        created_at=event.created_at,
    )
