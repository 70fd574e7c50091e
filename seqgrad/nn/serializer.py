"""
Type-tagged JSON persistence for layers.

Every serializable class exposes ``serializer_type()``, ``to_dict()`` and a
``from_dict(data)`` classmethod, and registers itself here under its type
name. A typed payload looks like ``{"type": <name>, "data": <to_dict()>}``,
which lets containers (e.g. Network) persist heterogeneous children.
"""
import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

_REGISTRY: Dict[str, Any] = {}


def register_type(type_name: str, cls) -> None:
    if type_name in _REGISTRY and _REGISTRY[type_name] is not cls:
        raise ValueError(f"serializer type {type_name!r} already registered to {_REGISTRY[type_name]}")
    _REGISTRY[type_name] = cls


def dumps(payload: Dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


def loads(data) -> Dict:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def to_typed_dict(obj) -> Dict:
    return {"type": obj.serializer_type(), "data": obj.to_dict()}


def from_typed_dict(payload: Dict):
    try:
        type_name = payload["type"]
        data = payload["data"]
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed typed payload: {e}") from e
    cls = _REGISTRY.get(type_name)
    if cls is None:
        raise ValueError(f"unknown serializer type {type_name!r}")
    logger.debug("deserializing %s", type_name)
    return cls.from_dict(data)


def serialize_with_type(obj) -> bytes:
    return dumps(to_typed_dict(obj))


def deserialize_with_type(data):
    return from_typed_dict(loads(data))
