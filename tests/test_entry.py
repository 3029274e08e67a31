import hashlib
import io

import pytest

from lbstore.entry import (
    ChecksumError,
    Entry,
    decode_entry,
    entry_length,
    read_value,
)


def test_encode_with_checksum():
    encoded = Entry("key", "value").encode()
    decoded = decode_entry(encoded)
    assert decoded.key == "key"
    assert decoded.value == "value"
    assert decoded.checksum == hashlib.sha1(b"value").digest()
    decoded.verify_checksum()
    assert decoded == Entry("key", "value", hashlib.sha1(b"value").digest())


def test_encoded_layout():
    encoded = Entry("key", "value").encode()
    assert len(encoded) == 40
    assert encoded[:4] == (40).to_bytes(4, "little")
    assert encoded[4:8] == (3).to_bytes(4, "little")
    assert encoded[8:11] == b"key"
    assert encoded[11:15] == (5).to_bytes(4, "little")
    assert encoded[15:20] == b"value"


def test_length_matches_encoding():
    e = Entry("1", "v1")
    assert e.length() == 35
    assert entry_length("1", "v1") == 35
    assert len(e.encode()) == e.length()


def test_checksum_verification():
    e = Entry("testkey", "testvalue")
    e.checksum = e.calculate_checksum()
    e.verify_checksum()
    assert e.checksum == hashlib.sha1(b"testvalue").digest()

    e.checksum = hashlib.sha1(b"corrupted_value").digest()
    with pytest.raises(ChecksumError, match="checksum mismatch"):
        e.verify_checksum()


def test_read_value_with_checksum():
    data = Entry("key", "value").encode()
    assert read_value(io.BytesIO(data)) == "value"


def test_read_value_with_corrupted_checksum():
    data = bytearray(Entry("key", "value").encode())
    data[-1] ^= 0xFF
    with pytest.raises(ChecksumError, match="checksum mismatch"):
        read_value(io.BytesIO(bytes(data)))


def test_read_value_with_corrupted_data():
    e = Entry("key", "original_value")
    data = bytearray(e.encode())
    value_start = 4 + 4 + len(e.key) + 4
    data[value_start] ^= 0xFF
    with pytest.raises(ChecksumError, match="checksum mismatch"):
        read_value(io.BytesIO(bytes(data)))


def test_read_value_truncated_header():
    data = Entry("key", "value").encode()
    with pytest.raises(EOFError):
        read_value(io.BytesIO(data[:10]))


def test_read_value_truncated_checksum():
    data = Entry("key", "value").encode()
    with pytest.raises(ValueError, match="incomplete checksum read"):
        read_value(io.BytesIO(data[:-5]))


def test_read_value_truncated_value():
    data = Entry("key", "value").encode()
    with pytest.raises(ValueError, match="incomplete value read"):
        read_value(io.BytesIO(data[:17]))


def test_decode_truncated_entry():
    data = Entry("key", "value").encode()
    with pytest.raises(ValueError):
        decode_entry(data[:-1])


def test_read_value_consumes_one_entry():
    stream = io.BytesIO(Entry("a", "first").encode() + Entry("b", "second").encode())
    assert read_value(stream) == "first"
    assert read_value(stream) == "second"


@pytest.mark.parametrize(
    "key, value",
    [
        ("", ""),
        ("key", ""),
        ("", "value"),
        ("simple", "test"),
        ("unicode", "тест 🌟"),
        (
            "long_key_with_underscores",
            "very long value with multiple words and special characters !@#$%^&*()",
        ),
    ],
)
def test_checksum_consistency(key, value):
    encoded = Entry(key, value).encode()
    decoded = decode_entry(encoded)
    assert decoded.key == key
    assert decoded.value == value
    decoded.verify_checksum()
    assert read_value(io.BytesIO(encoded)) == value