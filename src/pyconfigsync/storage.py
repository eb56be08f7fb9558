"""Storage backends for the config file."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pyconfigsync.exceptions import ConfigIOError, ConfigNotFoundError

_logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Structural storage interface used by the store.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`DirectoryStorage`) concrete.
    """

    async def read_file(self, name: str) -> bytes:
        """Return the file content.

        Raises ``ConfigNotFoundError`` if the file does not exist and
        ``ConfigIOError`` on any other failure.
        """
        ...

    async def write_file(self, name: str, data: bytes) -> None:
        """Replace the file content; raises ``ConfigIOError`` on failure."""
        ...


class DirectoryStorage:
    """Read and write files inside one local directory.

    Blocking filesystem calls run in the event loop's default executor.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _read(self, name: str) -> bytes:
        path = self._directory / name
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ConfigNotFoundError(f"{path} does not exist", path=str(path)) from exc
        except OSError as exc:
            raise ConfigIOError(f"Failed to read {path}: {exc}", path=str(path)) from exc

    def _write(self, name: str, data: bytes) -> None:
        # Readers only ever see the old or the new content: write a sibling
        # temp file, then rename it over the target.
        path = self._directory / name
        tmp_name = ""
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self._directory, prefix=f".{name}.", suffix=".tmp", delete=False
            ) as fh:
                tmp_name = fh.name
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                mode = path.stat().st_mode & 0o777
            except FileNotFoundError:
                mode = 0o644
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise ConfigIOError(f"Failed to write {path}: {exc}", path=str(path)) from exc

    async def read_file(self, name: str) -> bytes:
        _logger.debug("read %s/%s", self._directory, name)
        return await asyncio.get_running_loop().run_in_executor(None, self._read, name)

    async def write_file(self, name: str, data: bytes) -> None:
        _logger.debug("write %s/%s (%d bytes)", self._directory, name, len(data))
        await asyncio.get_running_loop().run_in_executor(None, self._write, name, data)
