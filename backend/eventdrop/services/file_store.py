"""Filesystem file store for event content.

Guest-visible content lives under ``<data_root>/<eventId>/files/`` with at most
one level of folders. Every public method validates the folder and filename it
is given before building a path, and resolved paths are checked to stay under
the event's files root.
"""
from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePath
from stat import S_ISREG
from typing import Iterator

from eventdrop.core.config import settings
from eventdrop.core.errors import ErrorKey, StorageResult, fail, ok
from eventdrop.core.security import sanitize_string
from eventdrop.models import FileBuffer, FileEntry, FileHandle, ListFilesResult, StagedUpload
from eventdrop.services.archive import iter_zip
from eventdrop.services.event_store import FILES_DIR_NAME
from eventdrop.services.validation import (
    INVALID_FOLDER,
    ROOT_FOLDER,
    is_safe_filename,
    is_valid_folder_name,
    normalize_event_id,
    parse_folder,
    upload_basename,
)

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class _PathRejected(Exception):
    def __init__(self, result: StorageResult):
        self.result = result


def _invalid_folder(property: str = "folder") -> StorageResult:
    return fail(ErrorKey.INVALID_FOLDER, "Invalid folder name.", property=property)


def _invalid_filename() -> StorageResult:
    return fail(ErrorKey.INVALID_FILENAME, "Invalid file name.", property="filename")


def _file_not_found() -> StorageResult:
    return fail(ErrorKey.FILE_NOT_FOUND, "File not found.", property="filename")


def _mtime(stat: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


def _candidate_name(original: str, counter: int) -> str:
    """``photo.jpg`` -> ``photo.jpg``, ``photo_1.jpg``, ``photo_2.jpg`` ..."""
    if counter == 0:
        return original
    path = PurePath(original)
    return f"{path.stem}_{counter}{path.suffix}"


def _place_exclusive(source: Path, target_dir: Path, original_name: str) -> str:
    """Copy ``source`` into ``target_dir`` under the first free suffixed name.

    The candidate is opened with exclusive create, so two uploads racing for
    the same name cannot both win it; the loser moves on to the next suffix.
    """
    counter = 0
    while True:
        candidate = _candidate_name(original_name, counter)
        target = target_dir / candidate
        try:
            dest = open(target, "xb")
        except FileExistsError:
            counter += 1
            continue
        try:
            with dest, open(source, "rb") as src:
                shutil.copyfileobj(src, dest, COPY_CHUNK_SIZE)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        source.unlink(missing_ok=True)
        return candidate


def _rename_exclusive(source: Path, target: Path) -> bool:
    """Rename ``source`` to ``target`` unless ``target`` already exists.

    ``os.rename`` replaces an empty directory on POSIX, so ``target`` is
    claimed with ``os.mkdir`` first and the rename lands on that claim. A
    folder that appears or fills up under the same name in between makes this
    return False; nothing is overwritten.
    """
    try:
        os.mkdir(target)
    except FileExistsError:
        return False
    try:
        os.rename(source, target)
    except OSError as exc:
        if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
            return False
        with contextlib.suppress(OSError):
            target.rmdir()
        raise
    return True


class FileStore:
    def __init__(self, root: Path | str):
        self.root = Path(root)

    def files_root(self, event_id: str) -> Path:
        return self.root / event_id / FILES_DIR_NAME

    def _resolve_dir(self, event_id: str, folder: str | None, property: str = "folder") -> Path:
        normalized = normalize_event_id(event_id)
        if normalized is None:
            raise _PathRejected(fail(ErrorKey.INVALID_EVENT_ID, "Invalid event ID.", property="eventId"))
        parsed = parse_folder(folder)
        if parsed is INVALID_FOLDER:
            raise _PathRejected(_invalid_folder(property))
        base = self.files_root(normalized).resolve()
        target = (base / parsed).resolve() if parsed != ROOT_FOLDER else base
        if target != base and target.parent != base:
            raise _PathRejected(_invalid_folder(property))
        return target

    def _resolve_file(self, event_id: str, folder: str | None, filename: str) -> Path:
        directory = self._resolve_dir(event_id, folder)
        if not is_safe_filename(filename):
            raise _PathRejected(_invalid_filename())
        target = (directory / filename).resolve()
        if target.parent != directory:
            raise _PathRejected(_invalid_filename())
        return target

    async def _stat_file(self, path: Path) -> StorageResult[os.stat_result]:
        try:
            st = await asyncio.to_thread(path.stat)
        except (FileNotFoundError, NotADirectoryError):
            return _file_not_found()
        if not S_ISREG(st.st_mode):
            return _file_not_found()
        return ok(st)

    def ensure_files_dir(self, event_id: str) -> Path:
        target = self.files_root(event_id)
        target.mkdir(parents=True, exist_ok=True)
        return target

    async def list_files(self, event_id: str, folder: str | None = None) -> StorageResult[ListFilesResult]:
        """List files and sub folders; a folder that does not exist yet is empty."""
        try:
            directory = self._resolve_dir(event_id, folder)
        except _PathRejected as exc:
            return exc.result
        return ok(await asyncio.to_thread(self._scan, directory))

    def _scan(self, directory: Path) -> ListFilesResult:
        files: list[FileEntry] = []
        folders: list[str] = []
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name.lower())
        except FileNotFoundError:
            return ListFilesResult()
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    folders.append(entry.name)
                elif entry.is_file(follow_symlinks=False):
                    stat = entry.stat()
                    files.append(FileEntry(
                        name=entry.name,
                        size=stat.st_size,
                        created_at=_mtime(stat).isoformat(),
                    ))
            except FileNotFoundError:
                # removed between scandir and stat
                continue
        return ListFilesResult(files=files, folders=folders)

    async def move_uploaded_files(
        self,
        event_id: str,
        folder: str | None,
        uploads: list[StagedUpload],
    ) -> StorageResult[list[str]]:
        """Commit staged uploads into ``files/<folder>/``.

        Names collide into ``name_1.ext``, ``name_2.ext`` and so on. Staged
        files are removed once placed; on failure the caller cleans up what
        is left in the staging area.

        Returns:
            The stored file names, in upload order.
        """
        try:
            target_dir = self._resolve_dir(event_id, folder, property="from")
        except _PathRejected as exc:
            return exc.result
        if not uploads:
            return ok([])

        for upload in uploads:
            if not is_safe_filename(upload_basename(upload.original_name)):
                return _invalid_filename()

        await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)

        stored: list[str] = []
        for upload in uploads:
            name = await asyncio.to_thread(
                _place_exclusive, upload.path, target_dir, upload_basename(upload.original_name)
            )
            stored.append(name)
            logger.info(f"Stored upload for event {event_id}: {sanitize_string(name)}")
        return ok(stored)

    async def get_file_stream(self, event_id: str, folder: str | None, filename: str) -> StorageResult[FileHandle]:
        try:
            path = self._resolve_file(event_id, folder, filename)
        except _PathRejected as exc:
            return exc.result
        result = await self._stat_file(path)
        if not result.ok:
            return result
        return ok(FileHandle(path=path, size=result.data.st_size, last_modified=_mtime(result.data)))

    async def get_file_buffer(self, event_id: str, folder: str | None, filename: str) -> StorageResult[FileBuffer]:
        try:
            path = self._resolve_file(event_id, folder, filename)
        except _PathRejected as exc:
            return exc.result
        result = await self._stat_file(path)
        if not result.ok:
            return result
        data = await asyncio.to_thread(path.read_bytes)
        return ok(FileBuffer(data=data, size=result.data.st_size, last_modified=_mtime(result.data)))

    async def delete_file(self, event_id: str, folder: str | None, filename: str) -> StorageResult[str]:
        """Permanently remove a file. There is no trash."""
        try:
            path = self._resolve_file(event_id, folder, filename)
        except _PathRejected as exc:
            return exc.result
        result = await self._stat_file(path)
        if not result.ok:
            return result
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return _file_not_found()
        logger.info(f"Deleted file for event {event_id}: {sanitize_string(filename)}")
        return ok("File deleted.")

    async def rename_folder(self, event_id: str, folder: str, target: str) -> StorageResult[str]:
        """Rename a top level folder. The root folder cannot be renamed."""
        if not is_valid_folder_name(folder):
            return _invalid_folder()
        if not is_valid_folder_name(target):
            return _invalid_folder("to")
        try:
            source_dir = self._resolve_dir(event_id, folder)
            target_dir = self._resolve_dir(event_id, target, property="to")
        except _PathRejected as exc:
            return exc.result
        if source_dir == target_dir:
            return fail(ErrorKey.FOLDER_ALREADY_EXISTS, "A folder with this name already exists.", property="to")
        if not source_dir.is_dir():
            return fail(ErrorKey.FOLDER_NOT_FOUND, "Folder not found.", property="folder")
        try:
            renamed = await asyncio.to_thread(_rename_exclusive, source_dir, target_dir)
        except FileNotFoundError:
            return fail(ErrorKey.FOLDER_NOT_FOUND, "Folder not found.", property="folder")
        if not renamed:
            return fail(ErrorKey.FOLDER_ALREADY_EXISTS, "A folder with this name already exists.", property="to")
        logger.info(f"Renamed folder for event {event_id}: {folder} -> {target_dir.name}")
        return ok(target_dir.name)

    async def create_zip_stream(self, event_id: str, folder: str | None = None) -> StorageResult[Iterator[bytes]]:
        """Return an iterator of ZIP bytes over the folder, including sub folders."""
        try:
            directory = self._resolve_dir(event_id, folder)
        except _PathRejected as exc:
            return exc.result
        if not directory.is_dir():
            return fail(ErrorKey.NO_FILES_AVAILABLE, "No files available.", property="folder")
        return ok(iter_zip(directory))


def get_file_store() -> FileStore:
    return FileStore(settings.data_root_path)
