"""Shared models: sentinels, state enums and notification payloads."""

from __future__ import annotations

import enum
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Missing(enum.Enum):
    MISSING = "MISSING"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


#: Returned by mutators when a key was absent (``None`` is JSON ``null``).
MISSING: Final = _Missing.MISSING


class ChangeKind(StrEnum):
    """Kind of filesystem notification reported by a notifier."""

    MODIFIED = "modified"
    CREATED = "created"
    REMOVED = "removed"
    OTHER = "other"


class ChangeEvent(BaseModel):
    """A single notification from the change-notification backend."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    name: str = Field(..., description="File name relative to the watched directory")

    @field_validator("name")
    @classmethod
    def _basename_only(cls, value: str) -> str:
        return value.replace("\\", "/").rsplit("/", 1)[-1]


class ConfigChange(BaseModel):
    """An external change applied to the store."""

    model_config = ConfigDict(frozen=True)

    old: dict[str, Any]
    new: dict[str, Any]


class SchedulerState(StrEnum):
    IDLE = "idle"
    ARMED = "armed"
    FLUSHING = "flushing"
    CLOSED = "closed"


class WatchState(StrEnum):
    UNWATCHED = "unwatched"
    WATCHING = "watching"
    SUSPENDED = "suspended"
    CLOSED = "closed"
