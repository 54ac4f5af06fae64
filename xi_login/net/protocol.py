"""Login request/response wire format.

A request is 33 bytes: 16 bytes account name, 16 bytes password (both NUL
padded) and one command byte. A change-password request is followed by 16
more bytes with the new password.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

FIELD_SIZE = 16
REQUEST_SIZE = FIELD_SIZE * 2 + 1


class LoginCode(IntEnum):
    """Command byte sent by the client."""

    ATTEMPT = 0x10
    CREATE = 0x20
    CHANGE_PASSWORD = 0x30


class LoginResult(IntEnum):
    """First byte of the server response."""

    SUCCESS = 0x01
    ERROR = 0x02
    SUCCESS_CREATE = 0x03
    ERROR_CREATE = 0x04
    ERROR_CREATE_TAKEN = 0x05
    SUCCESS_CHANGE_PASSWORD = 0x06
    ERROR_CHANGE_PASSWORD = 0x07
    ERROR_CREATE_DISABLED = 0x08


class ProtocolError(ValueError):
    """Request bytes cannot be decoded."""


@dataclass(frozen=True)
class LoginRequest:
    name: str
    password: str
    code: int
    new_password: str | None = None

    @property
    def needs_new_password(self) -> bool:
        return self.code == LoginCode.CHANGE_PASSWORD


def decode_field(raw: bytes) -> str:
    """Decode a NUL padded UTF-8 field."""
    try:
        return raw.split(b"\x00", 1)[0].decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError("field is not valid UTF-8") from e


def encode_field(value: str) -> bytes:
    """Encode a string as a NUL padded 16 byte field."""
    data = value.encode("utf-8")
    if len(data) > FIELD_SIZE:
        raise ProtocolError(f"field longer than {FIELD_SIZE} bytes")
    return data.ljust(FIELD_SIZE, b"\x00")


def parse_request(buffer: bytes) -> LoginRequest:
    """
    Parse the fixed 33 byte request header.

    Raises:
        ProtocolError: If the buffer is short or a field is not UTF-8
    """
    if len(buffer) != REQUEST_SIZE:
        raise ProtocolError(f"expected {REQUEST_SIZE} bytes, got {len(buffer)}")

    return LoginRequest(
        name=decode_field(buffer[:FIELD_SIZE]),
        password=decode_field(buffer[FIELD_SIZE : FIELD_SIZE * 2]),
        code=buffer[FIELD_SIZE * 2],
    )


def encode_request(
    name: str, password: str, code: int, new_password: str | None = None
) -> bytes:
    """Build request bytes, as a client would send them."""
    data = encode_field(name) + encode_field(password) + bytes([code])
    if new_password is not None:
        data += encode_field(new_password)
    return data


def encode_response(result: LoginResult, account_id: int | None = None) -> bytes:
    """Result byte, followed by the account id (uint32 LE) when given."""
    if account_id is None:
        return bytes([result])
    return struct.pack("<BI", result, account_id)
