from __future__ import annotations

from typing import Callable

from fastapi import Depends, Path, Request

from eventdrop.core.config import settings
from eventdrop.core.errors import ApiError, ErrorKey
from eventdrop.models import EventRecord
from eventdrop.services.access import AccessDenied, AccessGrant, Role, authorize
from eventdrop.services.event_store import get_event_store
from eventdrop.services.validation import normalize_event_id


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def valid_event_id(event_id: str = Path(alias="eventId")) -> str:
    normalized = normalize_event_id(event_id)
    if normalized is None:
        raise ApiError(400, ErrorKey.INVALID_EVENT_ID, "Invalid event ID.", property="eventId")
    return normalized


async def load_event(event_id: str = Depends(valid_event_id)) -> EventRecord:
    result = await get_event_store().get_event(event_id)
    if not result.ok:
        raise ApiError.from_error(result.error)
    return result.data


def _raise_denied(denied: AccessDenied) -> None:
    error = denied.error
    raise ApiError(
        denied.status_code,
        ErrorKey(error.error_key),
        error.message,
        event_id=error.event_id,
        additional_params=dict(error.additional_params),
        headers=denied.headers or None,
    )


async def resolve_grant(request: Request, event: EventRecord, roles: tuple[Role, ...]) -> AccessGrant:
    result = await authorize(
        event,
        request.headers.get("authorization"),
        roles,
        client_address(request),
    )
    if isinstance(result, AccessDenied):
        _raise_denied(result)
    return result


def require_access(*roles: Role) -> Callable:
    """Build a dependency that admits the given roles and yields the grant."""

    async def dependency(request: Request, event: EventRecord = Depends(load_event)) -> AccessGrant:
        return await resolve_grant(request, event, roles)

    return dependency


require_admin = require_access(Role.ADMIN)
require_member = require_access(Role.ADMIN, Role.GUEST)


def check_guest_download(grant: AccessGrant) -> AccessGrant:
    if grant.role is Role.GUEST and not grant.event.guest_downloads_enabled:
        raise ApiError(
            403,
            ErrorKey.GUEST_DOWNLOADS_DISABLED,
            "Guest downloads require a set guest password.",
            event_id=grant.event.event_id,
        )
    return grant


async def require_download_access(grant: AccessGrant = Depends(require_member)) -> AccessGrant:
    return check_guest_download(grant)


async def require_upload_access(grant: AccessGrant = Depends(require_member)) -> AccessGrant:
    if grant.role is Role.GUEST and not grant.event.settings.allow_guest_upload:
        raise ApiError(
            403,
            ErrorKey.GUEST_UPLOADS_DISABLED,
            "Guest uploads are disabled for this event.",
            event_id=grant.event.event_id,
        )
    return grant


async def require_event_creation() -> None:
    if not settings.allow_event_creation:
        raise ApiError(403, ErrorKey.EVENT_CREATION_DISABLED, "Event creation is disabled.", property="eventId")
