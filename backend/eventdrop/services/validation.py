"""Name validation for event ids, folders, filenames and MIME types.

Everything that turns a client-supplied name into a filesystem path goes
through these checks first.
"""
from __future__ import annotations

import re
from typing import Final

EVENT_ID_MIN_LENGTH = 3
EVENT_ID_MAX_LENGTH = 32
EVENT_ID_RE = re.compile(r"^[-a-z0-9]+$")
RESERVED_EVENT_IDS = frozenset(
    {"admin", "login", "logout", "api", "docs", "static", "public", "uploads"}
)

FOLDER_MAX_LENGTH = 32
FOLDER_RE = re.compile(r"^[A-Za-z0-9 -]{1,32}$")

MIME_TYPE_RE = re.compile(r"^[\w.+-]+/[\w.+*%-]+$")

_UNSAFE_FILENAME_PARTS = ("/", "\\", "..", "%2f", "%5c", "%2e%2e")


class _InvalidFolder:
    """Marker returned by :func:`parse_folder` for rejected folder names.

    Compare with ``is``; it is neither the root folder nor a name.
    """

    def __repr__(self) -> str:
        return "INVALID_FOLDER"


INVALID_FOLDER: Final = _InvalidFolder()

ROOT_FOLDER: Final = ""


def is_safe_filename(name: str | None) -> bool:
    if not name:
        return False
    lower = name.lower()
    return not any(part in lower for part in _UNSAFE_FILENAME_PARTS)


def upload_basename(name: str | None) -> str:
    """Strip any client-side directory part, with either separator."""
    return (name or "").replace("\\", "/").rsplit("/", 1)[-1].strip()


def parse_folder(raw: str | None) -> str | _InvalidFolder:
    """Return ``""`` for the root folder, the trimmed name, or ``INVALID_FOLDER``."""
    value = (raw or "").strip()
    if not value:
        return ROOT_FOLDER
    if not FOLDER_RE.match(value):
        return INVALID_FOLDER
    return value


def is_valid_folder_name(name: str | None) -> bool:
    folder = parse_folder(name)
    return folder is not INVALID_FOLDER and folder != ROOT_FOLDER


def normalize_event_id(raw: str | None) -> str | None:
    value = (raw or "").strip().lower()
    if not EVENT_ID_MIN_LENGTH <= len(value) <= EVENT_ID_MAX_LENGTH:
        return None
    if not EVENT_ID_RE.match(value):
        return None
    if value in RESERVED_EVENT_IDS:
        return None
    return value


def is_valid_mime_type(value: str) -> bool:
    return bool(MIME_TYPE_RE.match(value))


def matches_mime_type(mime: str | None, allowed: list[str]) -> bool:
    if not allowed:
        return True
    mime = (mime or "").lower()
    main = mime.split("/", 1)[0]
    for allowed_type in allowed:
        allowed_type = allowed_type.lower()
        if "*" not in allowed_type:
            if mime == allowed_type:
                return True
            continue
        allowed_main = allowed_type.split("/", 1)[0]
        if allowed_main and allowed_main == main:
            return True
    return False
