"""Opaque cursor codec.

A cursor is the URL-safe base64 encoding (padding stripped) of a compact JSON
document ``{"order": [...]}``. Values that JSON cannot represent natively are
written as tagged objects ``{"$t": <tag>, "v": <payload>}`` so they decode back
to the same Python type. Tuples are tagged so they decode as tuples, not lists.

Enum members are written with both their name and value and decode to an
`EnumMember`. When the keyset predicate is compiled, the member is bound by
name for SQLAlchemy `Enum` columns with an enum class and by value otherwise.
"""

import base64
import binascii
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from relay_pagination.api.schemas.connection import Cursor, CursorData
from relay_pagination.core.config import settings
from relay_pagination.core.errors import InvalidCursorError
from relay_pagination.core.observability import metrics

logger = logging.getLogger(__name__)

_TAG = "$t"
_VALUE = "v"

# JSONDecodeError and UnicodeError are ValueErrors; bad decimals raise ArithmeticError;
# deeply nested payloads raise RecursionError
_DECODE_ERRORS = (
    RecursionError,
    TypeError,
    ValueError,
    LookupError,
    AttributeError,
    ArithmeticError,
    binascii.Error,
)


@dataclass(frozen=True)
class EnumMember:
    """An enum member read back from a cursor, whose enum class is unknown."""

    name: str
    value: Any


def _decode_enum(payload: Any) -> EnumMember:
    if not isinstance(payload, list) or len(payload) != 2 or not isinstance(payload[0], str):
        raise ValueError("enum payload must be a [name, value] pair")
    name, value = payload
    return EnumMember(name=name, value=_from_json(value))


def _decode_tuple(payload: Any) -> tuple[Any, ...]:
    if not isinstance(payload, list):
        raise ValueError("tuple payload must be a list")
    return tuple(_from_json(item) for item in payload)


_DECODERS: dict[str, Callable[[Any], Any]] = {
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "time": time.fromisoformat,
    "timedelta": lambda v: timedelta(days=v[0], seconds=v[1], microseconds=v[2]),
    "uuid": UUID,
    "decimal": Decimal,
    "bytes": lambda v: base64.b64decode(v, validate=True),
    "object": lambda v: {k: _from_json(item) for k, item in v.items()},
    "enum": _decode_enum,
    "tuple": _decode_tuple,
}


def _to_json(value: Any) -> Any:
    """Convert one comparison value into its JSON-safe representation."""
    if isinstance(value, (Enum, EnumMember)):
        return {_TAG: "enum", _VALUE: [value.name, _to_json(value.value)]}

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # datetime is a subclass of date, so it has to be checked first
    if isinstance(value, datetime):
        return {_TAG: "datetime", _VALUE: value.isoformat()}
    if isinstance(value, date):
        return {_TAG: "date", _VALUE: value.isoformat()}
    if isinstance(value, time):
        return {_TAG: "time", _VALUE: value.isoformat()}
    if isinstance(value, timedelta):
        return {_TAG: "timedelta", _VALUE: [value.days, value.seconds, value.microseconds]}
    if isinstance(value, UUID):
        return {_TAG: "uuid", _VALUE: str(value)}
    if isinstance(value, Decimal):
        return {_TAG: "decimal", _VALUE: str(value)}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {_TAG: "bytes", _VALUE: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {_TAG: "object", _VALUE: {str(k): _to_json(v) for k, v in value.items()}}
    if isinstance(value, tuple):
        return {_TAG: "tuple", _VALUE: [_to_json(item) for item in value]}
    if isinstance(value, list):
        return [_to_json(item) for item in value]

    raise TypeError(f"Cannot encode value of type {type(value).__name__} in a cursor")


def _from_json(value: Any) -> Any:
    if isinstance(value, list):
        return [_from_json(item) for item in value]
    if not isinstance(value, dict):
        return value

    tag = value.get(_TAG)
    decoder = _DECODERS.get(tag) if isinstance(tag, str) else None
    if decoder is None or set(value) != {_TAG, _VALUE}:
        raise ValueError(f"unknown cursor value tag: {tag!r}")
    return decoder(value[_VALUE])


def encode_cursor(cursor_data: CursorData) -> Cursor:
    """Encode cursor data into an opaque, URL-safe token.

    Encoding is deterministic: the same values always produce the same token.

    Args:
        cursor_data: Ordered comparison values

    Returns:
        URL-safe base64 token without padding

    Raises:
        TypeError: If a value has no cursor representation
    """
    payload = {"order": [_to_json(value) for value in cursor_data.order]}
    json_str = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(json_str.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: Cursor) -> CursorData:
    """Decode a token produced by `encode_cursor`.

    Args:
        cursor: URL-safe base64 token

    Returns:
        CursorData with the original values

    Raises:
        InvalidCursorError: If the token is oversized, malformed or tampered with
    """
    try:
        if len(cursor) > settings.cursor_max_length:
            raise ValueError(f"cursor exceeds {settings.cursor_max_length} characters")
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
        cursor_data = json.loads(raw.decode("utf-8"))
        if not isinstance(cursor_data, dict) or set(cursor_data) != {"order"}:
            raise ValueError("cursor payload must be an object with a single 'order' key")
        order = cursor_data["order"]
        if not isinstance(order, list):
            raise ValueError("cursor 'order' must be a list")
        return CursorData(order=[_from_json(value) for value in order])
    except _DECODE_ERRORS as e:
        metrics.invalid_cursors_total.inc()
        logger.info("Rejected invalid cursor", extra={"reason": str(e)})
        raise InvalidCursorError(f"Invalid cursor: {e}", details={"cursor": cursor[:64]}) from e
