"""JSON codec for the persisted config file."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

from pyconfigsync.exceptions import ConfigEncodeError, CorruptConfigError

_CONFIG_ADAPTER: TypeAdapter[dict[str, JsonValue]] = TypeAdapter(dict[str, JsonValue])

#: Deepest container nesting accepted in either direction.
MAX_DEPTH = 100


def _nesting_depth(value: Any) -> int:
    depth = 0
    stack: list[tuple[Any, int]] = [(value, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, Mapping):
            children = item.values()
        elif isinstance(item, list | tuple):
            children = item
        else:
            continue
        depth = max(depth, level)
        if depth > MAX_DEPTH:
            return depth
        stack.extend((child, level + 1) for child in children)
    return depth


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def encode(data: Mapping[str, Any]) -> bytes:
    """Serialise config data to compact UTF-8 JSON.

    Key order follows insertion order, so the output (and its digest) is
    stable for a given mapping within a process.
    """
    if _nesting_depth(data) > MAX_DEPTH:
        raise ConfigEncodeError(f"Config is nested deeper than {MAX_DEPTH} levels")
    try:
        text = json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise ConfigEncodeError(f"Config is not JSON serialisable: {exc}") from exc
    return text.encode("utf-8")


def decode(raw: bytes, *, path: str = "") -> dict[str, Any]:
    """Parse file content into config data.

    Raises
    ------
    CorruptConfigError
        The content is not UTF-8, not valid JSON (``NaN`` and ``Infinity``
        included), not a JSON object, or nested deeper than ``MAX_DEPTH``.
    """
    try:
        parsed = json.loads(raw.decode("utf-8"), parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        raise CorruptConfigError(
            f"The config is corrupt / using invalid JSON syntax: {exc}",
            path=path,
        ) from exc
    if _nesting_depth(parsed) > MAX_DEPTH:
        raise CorruptConfigError(f"The config is nested deeper than {MAX_DEPTH} levels", path=path)
    try:
        return _CONFIG_ADAPTER.validate_python(parsed)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.error_count() else {}
        reason = first.get("msg", "invalid JSON")
        raise CorruptConfigError(
            f"The config is corrupt / using invalid JSON syntax: {reason}",
            path=path,
        ) from exc
