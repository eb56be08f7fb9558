"""In-memory config data with a dirty flag.

This is the only component that owns the config mapping. Persistence and
reconciliation go through :meth:`ConfigData.load` and
:meth:`ConfigData.mark_clean`.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pyconfigsync.models import MISSING, _Missing


def _require_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"config keys must be str, not {type(key).__name__}")
    return key


class ConfigData:
    """Mapping of config keys to JSON values.

    ``generation`` increases on every mutation. A flush remembers the
    generation it encoded and only marks the data clean if nothing changed
    while its write was in flight.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._dirty = False
        self._generation = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` if the key is absent."""
        try:
            return self._data[key]
        except (KeyError, TypeError):
            return default

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the current mapping."""
        return copy.deepcopy(self._data)

    def view(self) -> Mapping[str, Any]:
        """The live mapping, for encoding. Do not mutate."""
        return self._data

    def set(self, key: str | None, value: Any) -> Any:
        """Insert or overwrite ``key``; returns the previous value or ``MISSING``."""
        if key is None:
            return MISSING
        key = _require_key(key)
        previous = self._data.get(key, MISSING)
        self._data[key] = copy.deepcopy(value)
        self._touch()
        return previous

    def delete(self, key: str | None) -> Any:
        """Remove ``key``; returns the removed value or ``MISSING``.

        Deleting an absent key still counts as a mutation, so the next flush
        re-checks the file content.
        """
        if key is None:
            return MISSING
        key = _require_key(key)
        previous = self._data.pop(key, MISSING)
        self._touch()
        return previous

    def replace(self, data: Mapping[str, Any] | None) -> dict[str, Any] | _Missing:
        """Swap the whole mapping; returns the previous mapping or ``MISSING``."""
        if data is None:
            return MISSING
        if not isinstance(data, Mapping):
            raise TypeError(f"config data must be a mapping, not {type(data).__name__}")
        new_data = {_require_key(k): copy.deepcopy(v) for k, v in data.items()}
        previous = self._data
        self._data = new_data
        self._touch()
        return previous

    def load(self, data: dict[str, Any]) -> dict[str, Any]:
        """Replace the mapping with content read from disk.

        The data now matches the file, so it is clean. Returns the previous
        mapping.
        """
        previous = self._data
        self._data = data
        self._generation += 1
        self._dirty = False
        return previous

    def mark_clean(self, generation: int) -> bool:
        """Clear the dirty flag if no mutation happened since ``generation``."""
        if generation != self._generation:
            return False
        self._dirty = False
        return True

    def _touch(self) -> None:
        self._generation += 1
        self._dirty = True
