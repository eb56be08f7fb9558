"""Store options for pyconfigsync."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pyconfigsync.exceptions import ConfigOptionsError, MissingDirectoryError

DEFAULT_FILENAME = "options.json"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class StoreOptions:
    """Options for a :class:`~pyconfigsync.client.ConfigStore`.

    Parameters
    ----------
    directory : str or Path
        Directory that holds the config file. Required.
    filename : str
        Name of the config file inside ``directory``. May not contain path
        separators. Defaults to ``"options.json"``.
    debounce_delay_ms : int
        Milliseconds to wait after the last mutation before writing to
        disk. ``0`` still defers the write to the next event loop turn, so
        mutations made in one synchronous block coalesce.
    watch : bool
        Watch the file for changes made by other processes and reload
        them into memory.
    """

    directory: str | Path
    filename: str = DEFAULT_FILENAME
    debounce_delay_ms: int = 0
    watch: bool = True

    def __post_init__(self) -> None:
        if self.directory is None or not str(self.directory).strip():
            raise MissingDirectoryError("Missing directory option")
        name = self.filename
        if not name or name in {".", ".."} or "/" in name or "\\" in name or os.sep in name:
            raise ConfigOptionsError(f"Invalid config filename: {name!r}")
        if self.debounce_delay_ms < 0:
            raise ConfigOptionsError(f"debounce_delay_ms must be >= 0, got {self.debounce_delay_ms}")

    @property
    def path(self) -> Path:
        """Full path of the config file."""
        return Path(self.directory) / self.filename

    @property
    def debounce_delay(self) -> float:
        """Debounce delay in seconds."""
        return self.debounce_delay_ms / 1000.0

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreOptions:
        """Create options from environment variables.

        Reads ``CONFIGSYNC_DIRECTORY``, ``CONFIGSYNC_FILENAME``,
        ``CONFIGSYNC_DEBOUNCE_DELAY_MS`` and ``CONFIGSYNC_WATCH``. Explicit
        keyword arguments override environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        directory = env.get("CONFIGSYNC_DIRECTORY")
        if directory is not None:
            kwargs["directory"] = directory

        filename = env.get("CONFIGSYNC_FILENAME")
        if filename is not None:
            kwargs["filename"] = filename

        delay_env = env.get("CONFIGSYNC_DEBOUNCE_DELAY_MS")
        if delay_env is not None and "debounce_delay_ms" not in overrides:
            try:
                kwargs["debounce_delay_ms"] = int(delay_env)
            except ValueError as exc:
                raise ConfigOptionsError(f"CONFIGSYNC_DEBOUNCE_DELAY_MS is not an integer: {delay_env!r}") from exc

        if "watch" not in overrides:
            kwargs["watch"] = _env_bool(env.get("CONFIGSYNC_WATCH"), True)

        kwargs.update(overrides)
        if "directory" not in kwargs:
            raise MissingDirectoryError("Missing directory option (set CONFIGSYNC_DIRECTORY)")

        return cls(**kwargs)
