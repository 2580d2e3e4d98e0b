"""
Message Envelope Codec

Wire payloads are JSON objects. A hop that forwards an already enveloped
message wraps it under ``body``, so decoding unwraps nested ``body`` fields
until it reaches the real payload.

decode_envelope() never raises: it returns a tagged result, either
RawObject (hand the payload to the handler) or Malformed (poison message,
log and drop).

Unwrapping only applies to objects that are not themselves a message: an
object carrying both ``id`` and ``tenantId`` is a request intent or an
outcome, and its ``body`` is the HTTP body to send, not an envelope.
"""

from dataclasses import dataclass
from typing import Any

import orjson

from request_relay.core.config.constants import ENVELOPE_BODY_FIELD, MAX_ENVELOPE_DEPTH


@dataclass(frozen=True)
class RawObject:
    payload: dict[str, Any]


@dataclass(frozen=True)
class Malformed:
    reason: str
    raw: Any = None


DecodedEnvelope = RawObject | Malformed


def encode_message(message: dict[str, Any]) -> str:
    """Serialize a message for the wire."""
    return orjson.dumps(message).decode("utf-8")


def _is_message(obj: dict[str, Any]) -> bool:
    return "id" in obj and "tenantId" in obj


def _parse(raw: Any) -> DecodedEnvelope:
    if raw is None:
        return Malformed("empty payload", raw)
    if isinstance(raw, str | bytes | bytearray):
        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            return Malformed(f"invalid JSON: {e}", raw)
    else:
        value = raw
    if not isinstance(value, dict):
        return Malformed(f"payload is not an object: {type(value).__name__}", raw)
    return RawObject(value)


def decode_envelope(raw: Any, max_depth: int = MAX_ENVELOPE_DEPTH) -> DecodedEnvelope:
    """
    Decode a wire payload into the effective message object.

    Args:
        raw: str / bytes holding JSON, or an already decoded object
        max_depth: Maximum number of nested ``body`` levels to unwrap

    Returns:
        RawObject with the innermost payload, or Malformed with a reason
    """
    result = _parse(raw)
    depth = 0
    while isinstance(result, RawObject):
        obj = result.payload
        inner = obj.get(ENVELOPE_BODY_FIELD)
        if not inner or _is_message(obj):
            return result
        if depth >= max_depth:
            return Malformed(f"envelope nested deeper than {max_depth} levels", raw)
        result = _parse(inner)
        depth += 1
    return result
