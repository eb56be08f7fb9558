"""Custom exception hierarchy for pyconfigsync."""

from __future__ import annotations


class ConfigSyncError(Exception):
    """Base exception for all pyconfigsync errors."""


class ConfigOptionsError(ConfigSyncError):
    """Invalid or missing store options."""


class MissingDirectoryError(ConfigOptionsError):
    """No directory was given for the config file.

    Raised synchronously when constructing options, before any I/O.
    """


class ConfigIOError(ConfigSyncError):
    """Reading or writing the config file failed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class ConfigNotFoundError(ConfigIOError):
    """The config file does not exist.

    Storage backends raise this from ``read_file``.  The store translates it
    into "no prior data"; it never reaches callers of ``init``.
    """


class CorruptConfigError(ConfigSyncError):
    """The config file is not a valid JSON object.

    Kept apart from :class:`ConfigIOError` so callers can decide whether an
    unreadable file is fatal or a reason to start fresh.
    """

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class ConfigEncodeError(ConfigSyncError):
    """The in-memory config holds a value that cannot be serialised to JSON."""
