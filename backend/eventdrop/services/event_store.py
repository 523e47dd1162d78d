"""Filesystem event store.

Layout per event::

    <data_root>/<eventId>/project.json
    <data_root>/<eventId>/uploads/
    <data_root>/<eventId>/files/

The event directory itself is the uniqueness constraint: ``create_event``
claims it with a non-recursive ``os.mkdir``, which fails atomically when the
directory already exists. There is no existence pre-check and no lock.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from eventdrop.core.config import settings
from eventdrop.core.errors import ErrorKey, StorageResult, fail, ok
from eventdrop.models import EventRecord
from eventdrop.services.validation import normalize_event_id

logger = logging.getLogger(__name__)

PROJECT_FILE_NAME = "project.json"
UPLOADS_DIR_NAME = "uploads"
FILES_DIR_NAME = "files"


def _invalid_event_id() -> StorageResult:
    return fail(ErrorKey.INVALID_EVENT_ID, "Invalid event ID.", property="eventId")


class EventStore:
    def __init__(self, root: Path | str):
        self.root = Path(root)

    def event_dir(self, event_id: str) -> Path:
        return self.root / event_id

    def project_path(self, event_id: str) -> Path:
        return self.event_dir(event_id) / PROJECT_FILE_NAME

    async def ensure_base_dir(self) -> None:
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)

    async def is_event_id_available(self, event_id: str) -> StorageResult[bool]:
        """Availability hint for the UI; ``create_event`` is authoritative."""
        normalized = normalize_event_id(event_id)
        if normalized is None:
            return _invalid_event_id()
        return ok(not self.event_dir(normalized).exists())

    async def get_event(self, event_id: str) -> StorageResult[EventRecord]:
        normalized = normalize_event_id(event_id)
        if normalized is None:
            return _invalid_event_id()
        try:
            raw = await asyncio.to_thread(self.project_path(normalized).read_text, "utf-8")
        except FileNotFoundError:
            return fail(ErrorKey.EVENT_NOT_FOUND, "Event not found.", property="eventId")
        return ok(EventRecord.model_validate_json(raw))

    async def save_event(self, record: EventRecord) -> StorageResult[EventRecord]:
        """Overwrite ``project.json`` with ``record``; callers merge beforehand."""
        await asyncio.to_thread(self._write_record, record)
        return ok(record)

    async def create_event(self, record: EventRecord) -> StorageResult[EventRecord]:
        normalized = normalize_event_id(record.event_id)
        if normalized is None or normalized != record.event_id:
            return _invalid_event_id()
        return await asyncio.to_thread(self._claim_and_write, record)

    async def delete_event(self, event_id: str) -> StorageResult[None]:
        normalized = normalize_event_id(event_id)
        if normalized is None:
            return _invalid_event_id()
        await asyncio.to_thread(_remove_tree, self.event_dir(normalized))
        logger.info(f"Deleted event directory: {normalized}")
        return ok(None)

    def _claim_and_write(self, record: EventRecord) -> StorageResult[EventRecord]:
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            os.mkdir(self.event_dir(record.event_id))
        except FileExistsError:
            return fail(ErrorKey.EVENT_ID_TAKEN, "Event ID is already taken.", property="eventId")
        self._write_record(record)
        logger.info(f"Created event: {record.event_id}")
        return ok(record)

    def _write_record(self, record: EventRecord) -> None:
        event_dir = self.event_dir(record.event_id)
        (event_dir / UPLOADS_DIR_NAME).mkdir(parents=True, exist_ok=True)
        (event_dir / FILES_DIR_NAME).mkdir(parents=True, exist_ok=True)
        payload = json.dumps(record.model_dump(mode="json", by_alias=True), indent=2)
        # 先写临时文件再替换，避免读到写了一半的 project.json
        fd, tmp_name = tempfile.mkstemp(dir=event_dir, prefix=".project-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.project_path(record.event_id))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass


def get_event_store() -> EventStore:
    return EventStore(settings.data_root_path)
