"""Access control gate.

Resolves the role of a request against one event from its Basic-Auth header,
consulting the auth failure limiter before any password is checked. The
result is a value, either :class:`AccessGrant` or :class:`AccessDenied`;
nothing is attached to the request.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from eventdrop.core.errors import ErrorKey, ErrorResponse
from eventdrop.core.rate_limit import AuthRateLimiter, auth_limiter
from eventdrop.core.security import BasicCredentials, parse_basic_auth, sanitize_string, verify_password
from eventdrop.models import EventRecord

logger = logging.getLogger(__name__)

ADMIN_USER = "admin"
GUEST_USER = "guest"


class Role(str, Enum):
    ADMIN = "admin"
    GUEST = "guest"


@dataclass(frozen=True)
class AccessGrant:
    role: Role
    event: EventRecord

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class AccessDenied:
    status_code: int
    error: ErrorResponse
    headers: dict[str, str] = field(default_factory=dict)


def _denied(status_code: int, event: EventRecord) -> AccessDenied:
    return AccessDenied(
        status_code=status_code,
        error=ErrorResponse(
            message="Authorization required.",
            error_key=ErrorKey.AUTHORIZATION_REQUIRED,
            event_id=event.event_id,
        ),
    )


def _rate_limited(event: EventRecord, retry_after: int) -> AccessDenied:
    return AccessDenied(
        status_code=429,
        error=ErrorResponse(
            message="Too many failed attempts. Please try again later.",
            error_key=ErrorKey.RATE_LIMITED,
            event_id=event.event_id,
            additional_params={"RETRY_AFTER_SECONDS": retry_after},
        ),
        headers={"Retry-After": str(retry_after)},
    )


async def _password_matches(credentials: BasicCredentials, encoded: str | None) -> bool:
    if not credentials.password or not encoded:
        return False
    return await asyncio.to_thread(verify_password, credentials.password, encoded)


async def authorize(
    event: EventRecord,
    authorization: str | None,
    allowed_roles: Iterable[Role],
    client: str,
    limiter: AuthRateLimiter | None = None,
) -> AccessGrant | AccessDenied:
    """Resolve the role for a request against ``event``.

    Roles are tried admin first. A failed password for user ``admin`` stops
    there with 401 instead of falling through to the guest check. An event
    without a guest password admits requests that carry no credentials as
    guests; guest download rules are applied by the caller.

    Args:
        event: the loaded event
        authorization: raw ``Authorization`` header, if any
        allowed_roles: roles the endpoint accepts
        client: client address, part of the limiter key
        limiter: failure limiter, defaults to the process wide one

    Returns:
        AccessGrant on success, AccessDenied with status 401, 403 or 429
    """
    if limiter is None:
        limiter = auth_limiter
    roles = set(allowed_roles)
    credentials = parse_basic_auth(authorization)
    header_sent = bool(authorization)
    user = credentials.user

    status = limiter.is_blocked(client, event.event_id, user)
    if status.blocked:
        logger.warning(
            f"Auth blocked for event {event.event_id}, user {sanitize_string(user)!r} "
            f"from {client}, retry after {status.retry_after}s"
        )
        return _rate_limited(event, status.retry_after)

    def fail(status_code: int) -> AccessDenied:
        if header_sent:
            limiter.record_failure(client, event.event_id, user)
        logger.debug(
            f"Access denied for event {event.event_id}: user={sanitize_string(user)!r} "
            f"has_password={bool(credentials.password)} status={status_code}"
        )
        return _denied(status_code, event)

    if Role.ADMIN in roles and user == ADMIN_USER:
        if await _password_matches(credentials, event.auth.admin_password_hash):
            limiter.clear(client, event.event_id, user)
            return AccessGrant(role=Role.ADMIN, event=event)
        return fail(401)

    if Role.GUEST in roles:
        guest_hash = event.auth.guest_password_hash
        if guest_hash:
            if user == GUEST_USER and await _password_matches(credentials, guest_hash):
                limiter.clear(client, event.event_id, user)
                return AccessGrant(role=Role.GUEST, event=event)
        elif not header_sent:
            return AccessGrant(role=Role.GUEST, event=event)

    if not credentials.complete:
        return fail(401)
    return fail(403)
