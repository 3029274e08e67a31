"""Binary record format for the segment files: a length-prefixed key/value entry with a SHA-1 checksum."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import BinaryIO

HEADER_SIZE = 4
KEY_LENGTH_SIZE = 4
VALUE_LENGTH_SIZE = 4
CHECKSUM_SIZE = 20
TOTAL_HEADER_SIZE = HEADER_SIZE + KEY_LENGTH_SIZE + VALUE_LENGTH_SIZE + CHECKSUM_SIZE

_U32 = struct.Struct("<I")


class ChecksumError(ValueError):
    """The stored checksum does not match the stored value."""


def _to_bytes(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _to_text(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def entry_length(key: str, value: str) -> int:
    """Size in bytes of the encoded entry for ``key`` and ``value``."""
    return len(_to_bytes(key)) + len(_to_bytes(value)) + TOTAL_HEADER_SIZE


@dataclass
class Entry:
    """A single key/value record."""

    key: str
    value: str
    checksum: bytes = b""

    def calculate_checksum(self) -> bytes:
        return hashlib.sha1(_to_bytes(self.value)).digest()

    def verify_checksum(self) -> None:
        """Raise ChecksumError if the stored checksum does not match the value."""
        if self.calculate_checksum() != self.checksum:
            raise ChecksumError(
                f"checksum mismatch: data corruption detected for key '{self.key}'"
            )

    def length(self) -> int:
        return entry_length(self.key, self.value)

    def encode(self) -> bytes:
        """Serialise the entry, refreshing its checksum."""
        self.checksum = self.calculate_checksum()
        key = _to_bytes(self.key)
        value = _to_bytes(self.value)
        total = len(key) + len(value) + TOTAL_HEADER_SIZE
        return b"".join(
            (
                _U32.pack(total),
                _U32.pack(len(key)),
                key,
                _U32.pack(len(value)),
                value,
                self.checksum,
            )
        )


def decode_entry(data: bytes) -> Entry:
    """Parse an encoded entry; the checksum is read but not verified."""
    data = bytes(data)
    try:
        (key_length,) = _U32.unpack_from(data, HEADER_SIZE)
        key_start = HEADER_SIZE + KEY_LENGTH_SIZE
        key_end = key_start + key_length
        (value_length,) = _U32.unpack_from(data, key_end)
    except struct.error as exc:
        raise ValueError("truncated entry") from exc
    value_start = key_end + VALUE_LENGTH_SIZE
    value_end = value_start + value_length
    checksum = data[value_end : value_end + CHECKSUM_SIZE]
    if len(checksum) != CHECKSUM_SIZE:
        raise ValueError("truncated entry")
    return Entry(
        key=_to_text(data[key_start:key_end]),
        value=_to_text(data[value_start:value_end]),
        checksum=checksum,
    )


def _read_u32(stream: BinaryIO) -> int:
    raw = stream.read(4)
    if len(raw) != 4:
        raise EOFError("unexpected end of entry")
    return _U32.unpack(raw)[0]


def read_value(stream: BinaryIO) -> str:
    """Read one entry from a binary stream and return its verified value."""
    header = stream.read(HEADER_SIZE + KEY_LENGTH_SIZE)
    if len(header) != HEADER_SIZE + KEY_LENGTH_SIZE:
        raise EOFError("unexpected end of entry header")
    (key_size,) = _U32.unpack_from(header, HEADER_SIZE)
    if len(stream.read(key_size)) != key_size:
        raise EOFError("unexpected end of entry key")

    value_size = _read_u32(stream)
    value = stream.read(value_size)
    if len(value) != value_size:
        raise ValueError(
            f"incomplete value read: got {len(value)} bytes, expected {value_size}"
        )

    stored_checksum = stream.read(CHECKSUM_SIZE)
    if len(stored_checksum) != CHECKSUM_SIZE:
        raise ValueError(
            f"incomplete checksum read: got {len(stored_checksum)} bytes, "
            f"expected {CHECKSUM_SIZE}"
        )

    if hashlib.sha1(value).digest() != stored_checksum:
        raise ChecksumError("checksum mismatch: data corruption detected")
    return _to_text(value)