"""Serialization point shared by flushes and reconciles."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


@dataclass
class SyncPoint:
    """Lock plus the digest of the content last known to be on disk.

    ``digest`` is only updated while holding ``lock``.
    """

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    digest: bytes | None = None
