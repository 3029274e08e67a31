"""Append-only, segmented key/value store with compaction and crash recovery."""

from __future__ import annotations

import logging
import os
import struct
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from lbstore.entry import (
    TOTAL_HEADER_SIZE,
    ChecksumError,
    Entry,
    decode_entry,
    read_value,
)

DATA_FILE_NAME = "current-data"
BUFFER_SIZE = 8192
MAX_RECORD_SIZE = BUFFER_SIZE * 10
MIN_SEGMENTS = 3
_COMPACTION_FILE_NAME = "compaction-in-progress"

logger = logging.getLogger(__name__)


class KeyNotFoundError(KeyError):
    """The key is not present in the datastore."""


class DatabaseClosedError(RuntimeError):
    """The database has been closed."""


@dataclass
class Segment:
    """A segment file with the in-memory index of the entries it holds."""

    path: Path
    index: dict[str, int] = field(default_factory=dict)

    def read(self, position: int) -> str:
        """Read and verify the value of the entry stored at ``position``."""
        with open(self.path, "rb") as handle:
            handle.seek(position)
            return read_value(handle)


def _segment_number(path: Path) -> int | None:
    suffix = path.name[len(DATA_FILE_NAME) :]
    return int(suffix) if suffix.isdigit() else None


def _recover_index(path: Path) -> dict[str, int]:
    index: dict[str, int] = {}
    offset = 0
    with open(path, "rb") as handle:
        while True:
            header = handle.read(4)
            if len(header) < 4:
                break
            (size,) = struct.unpack("<I", header)
            if size < TOTAL_HEADER_SIZE or size > MAX_RECORD_SIZE:
                raise ValueError(f"invalid record size: {size}")
            rest = handle.read(size - 4)
            if len(rest) != size - 4:
                raise ValueError(
                    f"data corruption detected: expected {size} bytes, "
                    f"got {len(rest) + 4}"
                )
            record = decode_entry(header + rest)
            try:
                record.verify_checksum()
            except ChecksumError as exc:
                logger.warning(
                    "corrupted entry found during recovery for key '%s': %s",
                    record.key,
                    exc,
                )
            else:
                index[record.key] = offset
            offset += size
    return index


class Db:
    """A log-structured key/value store kept in a directory of segment files.

    Writes go to the newest segment; when it would grow past
    ``max_segment_size`` a new one is started. Once there are at least
    three segments, all but the newest are merged into one.
    """

    def __init__(self, directory: str | os.PathLike[str], max_segment_size: int) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._max_segment_size = max_segment_size
        self._segments: list[Segment] = []
        self._segments_lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._closed = False
        self._active: BinaryIO | None = None
        self._offset = 0

        existing = sorted(
            (
                (number, path)
                for path in self._directory.iterdir()
                if path.is_file()
                and path.name.startswith(DATA_FILE_NAME)
                and (number := _segment_number(path)) is not None
            ),
        )
        for _, path in existing:
            self._segments.append(Segment(path, _recover_index(path)))
        self._counter = existing[-1][0] + 1 if existing else 0

        self._open_new_segment()

    @property
    def segments(self) -> tuple[Segment, ...]:
        """The current segments, oldest first."""
        with self._segments_lock:
            return tuple(self._segments)

    def get(self, key: str) -> str:
        """Return the latest value stored for ``key``."""
        with self._segments_lock:
            if self._closed:
                raise KeyNotFoundError("key not found in datastore")
            for segment in reversed(self._segments):
                position = segment.index.get(key)
                if position is not None:
                    return segment.read(position)
        raise KeyNotFoundError("key not found in datastore")

    def put(self, key: str, value: str) -> None:
        """Append a new value for ``key``."""
        data = Entry(key, value).encode()
        with self._write_lock:
            if self._closed or self._active is None:
                raise DatabaseClosedError("database is closed")
            if self._offset + len(data) > self._max_segment_size:
                self._open_new_segment()
            position = self._offset
            self._active.write(data)
            self._active.flush()
            self._offset += len(data)
            with self._segments_lock:
                self._segments[-1].index[key] = position

    def close(self) -> None:
        with self._write_lock, self._segments_lock:
            if self._closed:
                return
            self._closed = True
            if self._active is not None:
                self._active.close()
                self._active = None

    def __enter__(self) -> Db:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _open_new_segment(self) -> None:
        path = self._directory / f"{DATA_FILE_NAME}{self._counter}"
        self._counter += 1
        handle = open(path, "ab")
        if self._active is not None:
            self._active.close()
        self._active = handle
        self._offset = handle.tell()
        with self._segments_lock:
            self._segments.append(Segment(path))
            if len(self._segments) >= MIN_SEGMENTS:
                self._compact()

    def _compact(self) -> None:
        """Merge every segment except the newest into a single segment."""
        with self._segments_lock:
            if len(self._segments) < MIN_SEGMENTS:
                return
            old = self._segments[:-1]
            temporary = self._directory / _COMPACTION_FILE_NAME
            index: dict[str, int] = {}
            offset = 0
            try:
                with open(temporary, "wb") as out:
                    for segment in reversed(old):
                        for key, position in segment.index.items():
                            if key in index:
                                continue
                            try:
                                value = segment.read(position)
                            except (OSError, ValueError, EOFError):
                                continue
                            data = Entry(key, value).encode()
                            out.write(data)
                            index[key] = offset
                            offset += len(data)
            except OSError:
                logger.exception("compaction failed")
                return

            target = old[-1].path
            for segment in old:
                segment.path.unlink(missing_ok=True)
            os.replace(temporary, target)
            self._segments = [Segment(target, index), self._segments[-1]]