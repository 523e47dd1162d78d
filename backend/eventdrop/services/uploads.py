"""Upload staging.

Multipart files are copied into ``<upload_temp_path>/<eventId>/<uuid>`` and
size checked there before anything touches the event's ``files/`` tree. The
route owns the staged files: it commits them through the file store and
calls :func:`cleanup_staged_uploads` for whatever is left on any outcome.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from fastapi import UploadFile

from eventdrop.core.config import settings
from eventdrop.core.errors import ErrorKey, StorageResult, fail, ok
from eventdrop.models import StagedUpload
from eventdrop.services.validation import matches_mime_type

logger = logging.getLogger(__name__)

STAGE_CHUNK_SIZE = 1024 * 1024


class _TooLarge(Exception):
    pass


def staging_dir(event_id: str) -> Path:
    return Path(settings.upload_temp_path) / event_id


def _copy_limited(source: BinaryIO, target: Path, limit: int) -> int:
    """Copy ``source`` to a new file at ``target``; ``limit`` 0 means unlimited."""
    size = 0
    with open(target, "xb") as dest:
        while True:
            chunk = source.read(STAGE_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if limit and size > limit:
                raise _TooLarge()
            dest.write(chunk)
    return size


def _file_too_large(limit: int, property: str = "files") -> StorageResult:
    return fail(
        ErrorKey.FILE_TOO_LARGE,
        "File is too large.",
        property=property,
        additional_params={"MAX_ALLOWED": limit},
    )


async def stage_uploads(event_id: str, files: list[UploadFile]) -> StorageResult[list[StagedUpload]]:
    """Copy every multipart file into the staging area.

    On failure the files staged so far are removed before returning.
    """
    max_file = settings.upload_max_file_size_bytes
    max_total = settings.upload_max_total_size_bytes
    target_dir = staging_dir(event_id)
    await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)

    staged: list[StagedUpload] = []
    total = 0
    try:
        for upload in files:
            target = target_dir / uuid4().hex
            staged_file = StagedUpload(
                path=target,
                original_name=upload.filename or "",
                content_type=upload.content_type,
            )
            staged.append(staged_file)
            await upload.seek(0)
            try:
                staged_file.size = await asyncio.to_thread(_copy_limited, upload.file, target, max_file)
            except _TooLarge:
                logger.info(f"Upload rejected for event {event_id}: file exceeds {max_file} bytes")
                await cleanup_staged_uploads(staged)
                return _file_too_large(max_file)
            total += staged_file.size
            if max_total and total > max_total:
                logger.info(f"Upload rejected for event {event_id}: request exceeds {max_total} bytes")
                await cleanup_staged_uploads(staged)
                return _file_too_large(max_total)
    except BaseException:
        await cleanup_staged_uploads(staged)
        raise
    return ok(staged)


def partition_by_mime_type(
    uploads: list[StagedUpload],
    allowed: list[str],
) -> tuple[list[StagedUpload], list[StagedUpload]]:
    """Split staged uploads into (accepted, rejected) by the event's allow-list."""
    accepted: list[StagedUpload] = []
    rejected: list[StagedUpload] = []
    for upload in uploads:
        if matches_mime_type(upload.content_type, allowed):
            accepted.append(upload)
        else:
            rejected.append(upload)
    return accepted, rejected


def _unlink_all(paths: list[Path]) -> int:
    removed = 0
    for path in paths:
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
    return removed


async def cleanup_staged_uploads(uploads: list[StagedUpload]) -> None:
    """Remove staged files that were not committed. Missing files are fine."""
    if not uploads:
        return
    removed = await asyncio.to_thread(_unlink_all, [u.path for u in uploads])
    if removed:
        logger.debug(f"Removed {removed} staged upload(s)")
