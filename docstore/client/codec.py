"""
JSON wire codec for document service messages.

Requests are dataclasses; fields set to None are omitted. Raw bytes
(transaction ids) travel as {"$bytes": "<base64>"} so they can be
restored without knowing the message schema.
"""

import base64
import dataclasses
import json
from typing import Any, Callable, Optional, Type, TypeVar

M = TypeVar('M')

BYTES_KEY = "$bytes"


def to_wire(value: Any) -> Any:
    """
    Convert a message (or part of one) into JSON-compatible values.

    Args:
        value: Dataclass, container or scalar

    Returns:
        JSON-compatible structure
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_wire(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if getattr(value, f.name) is not None
        }
    if isinstance(value, (bytes, bytearray)):
        return {BYTES_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {str(k): to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value


def _object_hook(obj: dict) -> Any:
    if len(obj) == 1 and BYTES_KEY in obj:
        return base64.b64decode(obj[BYTES_KEY])
    return obj


def serialize(message: Any) -> bytes:
    """Serialize a request message for a gRPC call."""
    return json.dumps(to_wire(message), separators=(",", ":")).encode("utf-8")


def loads(payload: bytes) -> Any:
    """Parse a serialized payload back into plain values, restoring bytes."""
    if not payload:
        return {}
    return json.loads(payload.decode("utf-8"), object_hook=_object_hook)


def deserializer(message_type: Optional[Type[M]]) -> Callable[[bytes], Optional[M]]:
    """
    Build a response deserializer for a message type.

    Args:
        message_type: Class with a ``from_dict`` constructor, or None for
            RPCs with an empty response

    Returns:
        Callable turning response bytes into a message
    """

    def _deserialize(payload: bytes) -> Optional[M]:
        data = loads(payload)
        if message_type is None:
            return None
        return message_type.from_dict(data)

    return _deserialize
