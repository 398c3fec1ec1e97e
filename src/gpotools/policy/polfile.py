"""Registry policy file decoder - converts registry.pol bytes to entries.

The PReg layout is an 8-byte header ("PReg" + version) followed by
bracketed records, every delimiter and string in UTF-16LE:

    [key;valueName;type;size;data]

type and size are 4-byte little-endian integers and data is `size` raw
bytes. Decoding is a single forward scan with an explicit cursor; a record
that is truncated or malformed ends the scan and everything decoded before
it is returned.
"""

import logging
import struct
from pathlib import Path

from ..exceptions import PolFormatError
from .types import (
    BINARY_PLACEHOLDER,
    REG_DWORD,
    REG_QWORD,
    REG_SZ,
    RegistryPolicyEntry,
    Scope,
)

logger = logging.getLogger(__name__)

SIGNATURE = b"PReg"
HEADER_SIZE = 8
MIN_FILE_SIZE = HEADER_SIZE
MAX_STRING_LENGTH = 1000

_OPEN = "[".encode("utf-16-le")
_SEP = ";".encode("utf-16-le")
_CLOSE = "]".encode("utf-16-le")
_NUL = b"\x00\x00"


class _MalformedEntry(Exception):
    """Raised inside the scan when a record cannot be completed."""


# =============================================================================
# Field readers
# =============================================================================


def _expect(data: bytes, cursor: int, token: bytes) -> int:
    if data[cursor : cursor + 2] != token:
        raise _MalformedEntry(f"expected {token!r} at offset {cursor}")
    return cursor + 2


def _read_string(data: bytes, cursor: int) -> tuple[str, int]:
    """Read a NUL-terminated UTF-16LE string, stepping one code unit at a time."""
    end = cursor
    while end + 2 <= len(data):
        if data[end : end + 2] == _NUL:
            text = data[cursor:end].decode("utf-16-le", errors="replace")
            return text, end + 2
        end += 2
    raise _MalformedEntry(f"unterminated string at offset {cursor}")


def _read_uint32(data: bytes, cursor: int) -> tuple[int, int]:
    if cursor + 4 > len(data):
        raise _MalformedEntry(f"truncated integer at offset {cursor}")
    return struct.unpack_from("<I", data, cursor)[0], cursor + 4


def _read_entry(data: bytes, cursor: int) -> tuple[str, str, int, bytes, int]:
    """Read one bracketed record. Returns fields plus the new cursor."""
    cursor = _expect(data, cursor, _OPEN)
    key, cursor = _read_string(data, cursor)
    cursor = _expect(data, cursor, _SEP)
    value_name, cursor = _read_string(data, cursor)
    cursor = _expect(data, cursor, _SEP)
    value_type, cursor = _read_uint32(data, cursor)
    cursor = _expect(data, cursor, _SEP)
    size, cursor = _read_uint32(data, cursor)
    cursor = _expect(data, cursor, _SEP)

    if cursor + size > len(data):
        raise _MalformedEntry(f"data of {size} bytes runs past end of buffer")
    payload = data[cursor : cursor + size]
    cursor += size

    cursor = _expect(data, cursor, _CLOSE)
    return key, value_name, value_type, payload, cursor


def decode_value(value_type: int, payload: bytes) -> str | int | None:
    """Interpret a record's data according to its registry type.

    Only REG_SZ and REG_DWORD are decoded; other types get a placeholder.
    """
    if not payload:
        return None
    if value_type == REG_SZ:
        # cap counts UTF-16 code units, not code points
        payload = payload[: 2 * MAX_STRING_LENGTH]
        return payload.decode("utf-16-le", errors="replace").rstrip("\x00")
    if value_type == REG_DWORD:
        if len(payload) < 4:
            return None
        return struct.unpack_from("<I", payload)[0]
    return BINARY_PLACEHOLDER


# =============================================================================
# Public API
# =============================================================================


def decode_pol(data: bytes, scope: Scope) -> list[RegistryPolicyEntry]:
    """Decode a registry.pol buffer into registry policy entries.

    Args:
        data: Raw file contents.
        scope: Scope recorded on every entry (Machine or User policy file).

    Returns:
        Entries in file order. Records with an empty key or value name are
        dropped. A truncated or malformed record ends decoding; the entries
        before it are returned.

    Raises:
        PolFormatError: The buffer is shorter than the 8-byte header or
            does not start with the "PReg" signature. A header with no
            records decodes to an empty list.
    """
    data = bytes(data)
    if len(data) < MIN_FILE_SIZE:
        raise PolFormatError(f"policy file too short ({len(data)} bytes)")
    if data[:4] != SIGNATURE:
        raise PolFormatError(f"bad signature {data[:4]!r}, expected {SIGNATURE!r}")

    entries: list[RegistryPolicyEntry] = []
    cursor = HEADER_SIZE
    while cursor < len(data) - 8:
        try:
            key, value_name, value_type, payload, cursor = _read_entry(data, cursor)
        except _MalformedEntry as e:
            logger.debug("Stopped decoding %s policy: %s", scope.value, e)
            break

        entry = RegistryPolicyEntry(
            registry_key=key,
            value_name=value_name,
            value_type=value_type,
            value_data=decode_value(value_type, payload),
            scope=scope,
        )
        if not entry.is_valid:
            continue
        entries.append(entry)

    return entries


def read_pol_file(path: Path | str, scope: Scope) -> list[RegistryPolicyEntry]:
    """Read and decode a registry.pol file.

    Raises OSError if the file cannot be read and PolFormatError if it is
    not a policy file.
    """
    path = Path(path)
    entries = decode_pol(path.read_bytes(), scope)
    logger.info("%s: %d %s entries", path, len(entries), scope.value)
    return entries


# =============================================================================
# Encoder (used to build policy files, e.g. for fixtures)
# =============================================================================


def _encode_string(text: str) -> bytes:
    return (text + "\x00").encode("utf-16-le")


def encode_value(value_type: int, value_data: str | int | bytes | None) -> bytes:
    """Encode value data the way Group Policy writes it."""
    if value_data is None:
        return b""
    if isinstance(value_data, bytes):
        return value_data
    if isinstance(value_data, str):
        return _encode_string(value_data)
    if isinstance(value_data, int):
        if value_type == REG_QWORD:
            return struct.pack("<Q", value_data)
        return struct.pack("<I", value_data)
    raise TypeError(f"Cannot encode {type(value_data).__name__} as registry data")


def encode_entry(
    registry_key: str,
    value_name: str,
    value_type: int,
    value_data: str | int | bytes | None,
) -> bytes:
    """Encode one bracketed record."""
    payload = encode_value(value_type, value_data)
    return b"".join(
        [
            _OPEN,
            _encode_string(registry_key),
            _SEP,
            _encode_string(value_name),
            _SEP,
            struct.pack("<I", value_type),
            _SEP,
            struct.pack("<I", len(payload)),
            _SEP,
            payload,
            _CLOSE,
        ]
    )


def encode_pol(entries, version: int = 1) -> bytes:
    """Encode entries as a registry.pol buffer.

    Accepts RegistryPolicyEntry objects or (key, value_name, type, data)
    tuples.
    """
    chunks = [SIGNATURE, struct.pack("<I", version)]
    for entry in entries:
        if isinstance(entry, RegistryPolicyEntry):
            fields = (entry.registry_key, entry.value_name, entry.value_type, entry.value_data)
        else:
            fields = tuple(entry)
        chunks.append(encode_entry(*fields))
    return b"".join(chunks)
