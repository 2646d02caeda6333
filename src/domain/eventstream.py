"""Binary event-stream framing used by the streaming transcription socket.

Frame layout (all integers big-endian):

    total_length   u32
    headers_length u32
    prelude_crc    u32   CRC32 of the first 8 bytes
    headers        headers_length bytes
    payload        total_length - headers_length - 16 bytes
    message_crc    u32   CRC32 of everything before it

Each header is ``name_len:u8 | name | type:u8 | value``. String and byte-array
values carry a u16 length prefix, the other types have a fixed width.
"""

import struct
import uuid
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum

from domain.errors import MalformedFrame

PRELUDE_LENGTH = 12
CRC_LENGTH = 4
MINIMUM_FRAME_LENGTH = PRELUDE_LENGTH + CRC_LENGTH
MAX_HEADERS_LENGTH = 128 * 1024
MAX_PAYLOAD_LENGTH = 16 * 1024 * 1024
MAX_HEADER_NAME_LENGTH = 255
MAX_HEADER_VALUE_LENGTH = 0xFFFF

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class HeaderType(IntEnum):
    BOOL_TRUE = 0
    BOOL_FALSE = 1
    BYTE = 2
    SHORT = 3
    INTEGER = 4
    LONG = 5
    BYTES = 6
    STRING = 7
    TIMESTAMP = 8
    UUID = 9


_INT_FORMATS: dict[HeaderType, str] = {
    HeaderType.BYTE: "!b",
    HeaderType.SHORT: "!h",
    HeaderType.INTEGER: "!i",
    HeaderType.LONG: "!q",
}

_INT_RANGES: dict[HeaderType, tuple[int, int]] = {
    HeaderType.BYTE: (-(2**7), 2**7 - 1),
    HeaderType.SHORT: (-(2**15), 2**15 - 1),
    HeaderType.INTEGER: (-(2**31), 2**31 - 1),
    HeaderType.LONG: (-(2**63), 2**63 - 1),
}


@dataclass(frozen=True)
class HeaderValue:
    type: HeaderType
    value: bool | int | bytes | str | datetime | uuid.UUID

    def __post_init__(self) -> None:
        _validate_header_value(self.type, self.value)

    @classmethod
    def string(cls, value: str) -> "HeaderValue":
        return cls(HeaderType.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> "HeaderValue":
        return cls(HeaderType.BOOL_TRUE if value else HeaderType.BOOL_FALSE, value)

    @classmethod
    def byte(cls, value: int) -> "HeaderValue":
        return cls(HeaderType.BYTE, value)

    @classmethod
    def integer(cls, value: int) -> "HeaderValue":
        return cls(HeaderType.INTEGER, value)


@dataclass(frozen=True)
class WireMessage:
    headers: dict[str, HeaderValue] = field(default_factory=dict)
    payload: bytes = b""

    def header(self, name: str, default: object = None) -> object:
        entry = self.headers.get(name)
        return entry.value if entry is not None else default


def encode(message: WireMessage) -> bytes:
    headers = _encode_headers(message.headers)
    payload = bytes(message.payload)
    if len(headers) > MAX_HEADERS_LENGTH:
        raise ValueError(f"Headers block too large: {len(headers)} bytes")
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError(f"Payload too large: {len(payload)} bytes")

    total_length = MINIMUM_FRAME_LENGTH + len(headers) + len(payload)
    prelude = struct.pack("!II", total_length, len(headers))
    prelude += struct.pack("!I", zlib.crc32(prelude))
    frame = prelude + headers + payload
    return frame + struct.pack("!I", zlib.crc32(frame))


def decode(data: bytes) -> WireMessage:
    data = bytes(data)
    if len(data) < MINIMUM_FRAME_LENGTH:
        raise MalformedFrame(f"Frame too short: {len(data)} bytes")

    total_length, headers_length, prelude_crc = struct.unpack_from("!III", data, 0)
    if total_length != len(data):
        raise MalformedFrame(
            f"Declared length {total_length} does not match {len(data)} received bytes"
        )
    if zlib.crc32(data[:8]) != prelude_crc:
        raise MalformedFrame("Prelude checksum mismatch")
    if MINIMUM_FRAME_LENGTH + headers_length > total_length:
        raise MalformedFrame(f"Headers length {headers_length} overruns frame")

    (message_crc,) = struct.unpack_from("!I", data, total_length - CRC_LENGTH)
    if zlib.crc32(data[: total_length - CRC_LENGTH]) != message_crc:
        raise MalformedFrame("Message checksum mismatch")

    headers_end = PRELUDE_LENGTH + headers_length
    headers = _decode_headers(data[PRELUDE_LENGTH:headers_end])
    payload = data[headers_end : total_length - CRC_LENGTH]
    return WireMessage(headers=headers, payload=payload)


def _validate_header_value(header_type: HeaderType, value: object) -> None:
    if header_type in (HeaderType.BOOL_TRUE, HeaderType.BOOL_FALSE):
        if value is not (header_type == HeaderType.BOOL_TRUE):
            raise ValueError(f"{header_type.name} header requires value {header_type == HeaderType.BOOL_TRUE}")
    elif header_type in _INT_RANGES:
        low, high = _INT_RANGES[header_type]
        if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
            raise ValueError(f"{header_type.name} header value out of range: {value!r}")
    elif header_type == HeaderType.BYTES:
        if not isinstance(value, bytes) or len(value) > MAX_HEADER_VALUE_LENGTH:
            raise ValueError("BYTES header requires bytes up to 65535 long")
    elif header_type == HeaderType.STRING:
        if not isinstance(value, str) or len(value.encode("utf-8")) > MAX_HEADER_VALUE_LENGTH:
            raise ValueError("STRING header requires str up to 65535 encoded bytes")
    elif header_type == HeaderType.TIMESTAMP:
        if not isinstance(value, datetime) or value.tzinfo is None:
            raise ValueError("TIMESTAMP header requires an aware datetime")
    elif header_type == HeaderType.UUID:
        if not isinstance(value, uuid.UUID):
            raise ValueError("UUID header requires uuid.UUID")


def _encode_headers(headers: dict[str, HeaderValue]) -> bytes:
    out = bytearray()
    for name, header in headers.items():
        name_bytes = name.encode("utf-8")
        if not name_bytes or len(name_bytes) > MAX_HEADER_NAME_LENGTH:
            raise ValueError(f"Invalid header name length: {name!r}")
        out += struct.pack("!B", len(name_bytes)) + name_bytes
        out += struct.pack("!B", header.type)
        out += _encode_header_value(header)
    return bytes(out)


def _encode_header_value(header: HeaderValue) -> bytes:
    header_type = header.type
    if header_type in (HeaderType.BOOL_TRUE, HeaderType.BOOL_FALSE):
        return b""
    if header_type in _INT_FORMATS:
        return struct.pack(_INT_FORMATS[header_type], header.value)
    if header_type == HeaderType.BYTES:
        return struct.pack("!H", len(header.value)) + header.value
    if header_type == HeaderType.STRING:
        raw = header.value.encode("utf-8")
        return struct.pack("!H", len(raw)) + raw
    if header_type == HeaderType.TIMESTAMP:
        millis = (header.value - _EPOCH) // timedelta(milliseconds=1)
        return struct.pack("!q", millis)
    return header.value.bytes


def _decode_headers(block: bytes) -> dict[str, HeaderValue]:
    headers: dict[str, HeaderValue] = {}
    pos = 0
    while pos < len(block):
        (name_length,) = _unpack("!B", block, pos)
        pos += 1
        name_bytes = _take(block, pos, name_length)
        pos += name_length
        (raw_type,) = _unpack("!B", block, pos)
        pos += 1
        try:
            header_type = HeaderType(raw_type)
        except ValueError:
            raise MalformedFrame(f"Unknown header type tag {raw_type}") from None
        value, pos = _decode_header_value(header_type, block, pos)
        try:
            name = name_bytes.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedFrame("Header name is not valid UTF-8") from None
        headers[name] = HeaderValue(header_type, value)
    return headers


def _decode_header_value(header_type: HeaderType, block: bytes, pos: int) -> tuple[object, int]:
    if header_type == HeaderType.BOOL_TRUE:
        return True, pos
    if header_type == HeaderType.BOOL_FALSE:
        return False, pos
    if header_type in _INT_FORMATS:
        fmt = _INT_FORMATS[header_type]
        (value,) = _unpack(fmt, block, pos)
        return value, pos + struct.calcsize(fmt)
    if header_type in (HeaderType.BYTES, HeaderType.STRING):
        (length,) = _unpack("!H", block, pos)
        pos += 2
        raw = _take(block, pos, length)
        if header_type == HeaderType.BYTES:
            return raw, pos + length
        try:
            return raw.decode("utf-8"), pos + length
        except UnicodeDecodeError:
            raise MalformedFrame("String header value is not valid UTF-8") from None
    if header_type == HeaderType.TIMESTAMP:
        (millis,) = _unpack("!q", block, pos)
        return _EPOCH + timedelta(milliseconds=millis), pos + 8
    return uuid.UUID(bytes=_take(block, pos, 16)), pos + 16


def _take(block: bytes, pos: int, length: int) -> bytes:
    if pos + length > len(block):
        raise MalformedFrame("Header block truncated")
    return block[pos : pos + length]


def _unpack(fmt: str, block: bytes, pos: int) -> tuple:
    return struct.unpack(fmt, _take(block, pos, struct.calcsize(fmt)))
