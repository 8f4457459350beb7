"""
Wire codec for event envelopes.

Text frames carry JSON and binary frames carry MessagePack. Both decode to
the same ``{"event": ..., "data": ...}`` dict, and the server answers each
client in the format it last used.
"""

import json
from enum import StrEnum
from typing import Any

import msgpack


class WireFormat(StrEnum):
    JSON = "json"
    MSGPACK = "msgpack"


class DecodeError(Exception):
    """Error raised when an inbound frame cannot be decoded."""


class EncodeError(Exception):
    """Error raised when a message cannot be represented in the requested wire format."""


# Size limits to prevent resource exhaustion from malicious payloads.
MAX_BUFFER_LEN = 256 * 1024  # 256KB total payload
MAX_STR_LEN = 64 * 1024  # 64KB per string
MAX_BIN_LEN = 64 * 1024  # 64KB per binary
MAX_ARRAY_LEN = 1024  # max array elements
MAX_MAP_LEN = 256  # max map entries
MAX_EXT_LEN = 1024  # max extension data


def frame_format(frame: str | bytes) -> WireFormat:
    return WireFormat.MSGPACK if isinstance(frame, (bytes, bytearray)) else WireFormat.JSON


def encode(data: dict[str, Any], wire_format: WireFormat = WireFormat.JSON) -> str | bytes:
    """
    Encode a dict as a JSON string or MessagePack bytes.

    Relayed payloads are opaque, so a value that decoded fine from one
    format (a 2**70 integer from JSON, raw bytes from MessagePack) may have
    no representation in the other. Raises EncodeError in that case.
    """
    try:
        if wire_format == WireFormat.MSGPACK:
            return msgpack.packb(data)
        return json.dumps(data, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError, OverflowError, RecursionError) as e:
        raise EncodeError(f"cannot encode message as {wire_format}: {e}") from e


def decode(frame: str | bytes) -> dict[str, Any]:
    """
    Decode an inbound frame to a dict.

    Raises DecodeError if the frame is invalid, not a dict, or exceeds size limits.
    """
    if isinstance(frame, str):
        return _decode_json(frame)
    return _decode_msgpack(frame)


def _decode_json(frame: str) -> dict[str, Any]:
    size = len(frame.encode("utf-8"))
    if size > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {size} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = json.loads(frame, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"failed to decode JSON data: {e}") from e
    return _require_dict(result)


def _reject_constant(name: str) -> None:
    # NaN and Infinity are not JSON; browsers refuse them when relayed back out.
    raise ValueError(f"non-standard JSON constant {name}")


def _decode_msgpack(frame: bytes) -> dict[str, Any]:
    if len(frame) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(frame)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            frame,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e
    return _require_dict(result)


def _require_dict(result: object) -> dict[str, Any]:
    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")
    return result
