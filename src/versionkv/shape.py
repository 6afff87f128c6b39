"""Structural shape descriptions of stored values.

Used for diagnostics: ``describe_shape`` walks a JSON value and reports its
structure without the data, e.g. to see what a key's latest version looks
like before reading it in full.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from versionkv.values import JSONValue


@dataclass
class ShapeInfo:
    """Shape of one JSON value.

    ``type`` and ``kind`` name the JSON type (``object``, ``array``,
    ``string``, ``integer``, ``number``, ``boolean``, ``null``). Objects carry
    ``fields``; arrays carry ``elem`` describing their first element.
    """

    type: str
    kind: str
    fields: dict[str, ShapeInfo] = field(default_factory=dict)
    elem: ShapeInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "kind": self.kind}
        if self.fields:
            out["fields"] = {name: f.to_dict() for name, f in self.fields.items()}
        if self.elem is not None:
            out["elem"] = self.elem.to_dict()
        return out


def _scalar_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    raise TypeError(f"Not a JSON value: {type(value).__name__}")


def describe_shape(value: JSONValue) -> ShapeInfo:
    """Recursively describe the structure of a JSON value."""
    if isinstance(value, dict):
        return ShapeInfo(
            type="object",
            kind="object",
            fields={k: describe_shape(v) for k, v in value.items()},
        )
    if isinstance(value, list):
        # Empty arrays have no element to sample
        elem = describe_shape(value[0]) if value else ShapeInfo(type="unknown", kind="unknown")
        return ShapeInfo(type="array", kind="array", elem=elem)
    kind = _scalar_kind(value)
    return ShapeInfo(type=kind, kind=kind)
