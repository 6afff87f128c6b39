"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any

import yaml


def _cell(value: Any) -> str:
    """Render one value for text output; nested JSON stays on one line."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    if value is None:
        return "-"
    return str(value)


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print rows as an aligned text table or as a JSON array of objects."""
    if json_mode:
        print(json.dumps([dict(zip(headers, row)) for row in rows], indent=2, default=str))
        return
    if not rows:
        return

    cells = [[_cell(v) for v in row] for row in rows]
    widths = [
        max([len(h)] + [len(row[i]) for row in cells if i < len(row)])
        for i, h in enumerate(headers)
    ]
    for line in [headers, ["-" * w for w in widths]] + cells:
        padded = (v.ljust(widths[i]) if i < len(widths) else v for i, v in enumerate(line))
        print("  ".join(padded).rstrip())


def print_object(data: dict[str, Any] | list[Any], *, json_mode: bool = False) -> None:
    """Print a record as ``key: value`` lines, or a list one item per line."""
    if json_mode:
        print(json.dumps(data, indent=2, default=str))
        return
    if isinstance(data, list):
        for item in data:
            print(f"  {_cell(item)}")
        return
    for k, v in data.items():
        print(f"{k}: {_cell(v)}")


def print_document(data: Any, *, fmt: str = "json") -> None:
    """Print a stored document as JSON or YAML."""
    if fmt == "yaml":
        print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), end="")
        return
    print(json.dumps(data, indent=2, ensure_ascii=False))


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
