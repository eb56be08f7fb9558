"""Content fingerprints for change detection.

Used to skip writes of unchanged data and to tell our own writes apart from
changes made by other processes. Not a security property.
"""

from __future__ import annotations

import hashlib


def digest(data: bytes) -> bytes:
    """Compute the MD5 digest of a byte buffer.

    Parameters
    ----------
    data : bytes
        Encoded config content.

    Returns
    -------
    bytes
        16-byte digest. Equal iff the buffers are byte-identical
        (collisions aside).
    """
    return hashlib.md5(data).digest()


def digest_hex(value: bytes | None) -> str:
    """Render a digest for logs; ``"-"`` when there is none yet."""
    if value is None:
        return "-"
    return value.hex()
