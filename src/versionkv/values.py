"""JSON value model for stored payloads."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any, Union

JSONScalar = Union[str, int, float, bool, None]
JSONValue = Union[JSONScalar, list["JSONValue"], dict[str, "JSONValue"]]
JSONObject = dict[str, JSONValue]


def _check_value(value: Any, path: str) -> JSONValue:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path}: non-finite number {value!r}")
        return value
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise ValueError(f"{path}: object keys must be strings, got {type(k).__name__}")
            out[k] = _check_value(v, f"{path}.{k}")
        return out
    if isinstance(value, (list, tuple)):
        return [_check_value(v, f"{path}[{i}]") for i, v in enumerate(value)]
    raise ValueError(f"{path}: unsupported value type {type(value).__name__}")


def ensure_object(value: Any) -> JSONObject:
    """Validate that value is a JSON object and return a plain-dict copy.

    Raises ValueError when the top level is not a mapping or a nested value is
    not JSON-compatible.
    """
    if not isinstance(value, Mapping):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return _check_value(value, "$")  # type: ignore[return-value]


def encode_object(obj: JSONObject) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def decode_object(blob: str | bytes) -> JSONObject:
    """Decode a stored blob; raises ValueError unless it is a JSON object."""
    data = json.loads(blob)
    if not isinstance(data, dict):
        raise ValueError(f"stored payload is a {type(data).__name__}, not an object")
    return data
