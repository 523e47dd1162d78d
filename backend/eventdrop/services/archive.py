"""Streaming ZIP archive of an event folder.

``zipfile`` writes data descriptors when the underlying file is not
seekable, so the archive can be produced front to back into a small buffer
that is drained after every write. Nothing is staged on disk.
"""
from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
COMPRESS_LEVEL = 9


class _ChunkBuffer:
    """Write-only, unseekable sink that hands out what was written so far."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._offset = 0

    def write(self, data: bytes) -> int:
        if data:
            self._chunks.append(bytes(data))
            self._offset += len(data)
        return len(data)

    def tell(self) -> int:
        return self._offset

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _walk(directory: Path) -> Iterator[tuple[Path, str]]:
    """Yield ``(path, arcname)`` for files and sub folders, sorted by name."""
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        root_path = Path(root)
        rel_root = root_path.relative_to(directory)
        if rel_root != Path("."):
            yield root_path, f"{rel_root.as_posix()}/"
        for name in sorted(files):
            path = root_path / name
            if path.is_file():
                yield path, (rel_root / name).as_posix()


def iter_zip(directory: Path) -> Iterator[bytes]:
    """Yield a ZIP (deflate, level 9) of ``directory`` as it is built.

    Sub folders are kept as entries so empty folders survive the round trip.
    Files removed while the archive is being written are skipped.
    """
    sink = _ChunkBuffer()
    count = 0
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL) as zf:
        for path, arcname in _walk(directory):
            if arcname.endswith("/"):
                zf.write(path, arcname)
            else:
                try:
                    info = zipfile.ZipInfo.from_file(path, arcname)
                    source = open(path, "rb")
                except FileNotFoundError:
                    continue
                info.compress_type = zipfile.ZIP_DEFLATED
                # ZipFile.open() takes the level from the entry, not the archive
                info._compresslevel = COMPRESS_LEVEL
                with source, zf.open(info, "w") as dest:
                    while True:
                        chunk = source.read(READ_CHUNK_SIZE)
                        if not chunk:
                            break
                        dest.write(chunk)
                        data = sink.drain()
                        if data:
                            yield data
                count += 1
            data = sink.drain()
            if data:
                yield data
    # central directory is written on close
    data = sink.drain()
    if data:
        yield data
    logger.debug(f"Streamed zip of {directory} with {count} file(s)")
