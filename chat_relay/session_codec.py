"""
Decoder for stored session blobs.

Sessions are written by the web application in PHP's session text encoding:

    User|a:2:{s:7:"user_id";i:5;s:4:"name";s:4:"John";}

Each session variable is ``name|<serialized value>``. Only the value types a
session can hold are understood (arrays, strings, integers, floats, booleans
and null); objects and references are rejected.
"""

import json
from typing import Any, Dict, Tuple, Union

from .constants import SESSION_USER_FIELD
from .exceptions import SessionDecodeError


class _Reader:
    """Cursor over the serialized bytes"""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def expect(self, token: bytes):
        end = self.pos + len(token)
        if self.data[self.pos:end] != token:
            raise SessionDecodeError(f"expected {token!r} at offset {self.pos}")
        self.pos = end

    def read_until(self, delimiter: bytes) -> bytes:
        end = self.data.find(delimiter, self.pos)
        if end < 0:
            raise SessionDecodeError(f"unterminated value at offset {self.pos}")
        chunk = self.data[self.pos:end]
        self.pos = end + len(delimiter)
        return chunk

    def read(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise SessionDecodeError("string length exceeds data")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk


def _read_value(reader: _Reader) -> Any:
    kind = reader.read(1)
    if kind == b"N":
        reader.expect(b";")
        return None

    reader.expect(b":")
    if kind == b"i":
        return _to_number(reader.read_until(b";"), int)
    if kind == b"d":
        return _to_number(reader.read_until(b";"), float)
    if kind == b"b":
        return reader.read_until(b";") == b"1"
    if kind == b"s":
        size = _to_number(reader.read_until(b":"), int)
        reader.expect(b'"')
        raw = reader.read(size)
        reader.expect(b'";')
        return raw.decode("utf-8", errors="replace")
    if kind == b"a":
        count = _to_number(reader.read_until(b":"), int)
        reader.expect(b"{")
        items = {}
        for _ in range(count):
            key = _read_value(reader)
            if not isinstance(key, (int, str)):
                raise SessionDecodeError("array keys must be integers or strings")
            items[key] = _read_value(reader)
        reader.expect(b"}")
        return items

    raise SessionDecodeError(f"unsupported value type {kind!r}")


def _to_number(raw: bytes, cast):
    try:
        return cast(raw.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise SessionDecodeError(f"invalid number {raw!r}") from None


def parse_php_session(data: bytes) -> Dict[str, Any]:
    """Parse the ``name|value`` sequence into a mapping of session variables"""
    reader = _Reader(data)
    variables = {}
    while not reader.at_end():
        name = reader.read_until(b"|").decode("utf-8", errors="replace")
        if not name:
            raise SessionDecodeError("empty session variable name")
        variables[name] = _read_value(reader)
    return variables


def _split_blob(raw: Union[bytes, str]) -> Tuple[bytes, str]:
    if isinstance(raw, str):
        return raw.encode("utf-8"), raw
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw), bytes(raw).decode("utf-8", errors="replace")
    raise SessionDecodeError(f"unsupported session blob type {type(raw).__name__}")


def decode_session_blob(raw: Union[bytes, str]) -> Dict[str, Any]:
    """
    Normalize a stored session blob into a plain key/value mapping.

    JSON objects are taken as they are. Otherwise the blob is parsed as PHP
    session data; the first session variable holding a mapping with a user
    identity (normally ``User``) becomes the record, falling back to the
    variables themselves.

    Raises:
        SessionDecodeError: blob is empty or cannot be parsed into a mapping
    """
    data, text = _split_blob(raw)
    text = text.strip()
    if not text:
        raise SessionDecodeError("empty session blob")

    if text.startswith("{"):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            raise SessionDecodeError(f"invalid JSON session: {e}") from e
        if not isinstance(decoded, dict):
            raise SessionDecodeError("JSON session is not an object")
        return decoded

    variables = parse_php_session(data.strip())
    for value in variables.values():
        if isinstance(value, dict) and SESSION_USER_FIELD in value:
            return {str(key): item for key, item in value.items()}

    if not variables:
        raise SessionDecodeError("session holds no variables")
    return variables
