"""Record encoding: turn caller values into opaque byte payloads."""

from __future__ import annotations

import json
from typing import Any

from ..errors import InvalidArgument


def encode_record(record: Any) -> bytes:
    """Encode a record for buffering.

    Byte-like values are taken as-is. Structured values are serialized as
    compact JSON with sorted keys, so equal values always encode to equal
    bytes. Text is rejected: the caller must pick the encoding.

    Raises:
        InvalidArgument: If the record is None, a str, or not JSON serializable
            (NaN and infinities included)
    """
    if record is None:
        raise InvalidArgument("`record` must be provided and can not be None", argument="record")

    if isinstance(record, str):
        raise InvalidArgument(
            "strings not supported, encode them to bytes first", argument="record"
        )

    if isinstance(record, (bytes, bytearray, memoryview)):
        return bytes(record)

    try:
        return json.dumps(
            record,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"record is not JSON serializable: {e}", argument="record") from e
