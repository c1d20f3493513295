from __future__ import annotations

import secrets
import time
import uuid
from datetime import datetime, timezone


def generate_uuid7() -> str:
    """
    Time-ordered UUIDv7 string used for every primary key.

    The top 48 bits hold Unix milliseconds so rows created later sort
    later, which keeps b-tree inserts on the right-hand edge.
    """
    value = (int(time.time() * 1000) & ((1 << 48) - 1)) << 80
    value |= secrets.randbits(80)
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


def uuid7_created_at(value: str) -> datetime:
    """Recover the creation instant embedded in a UUIDv7 string."""
    parsed = uuid.UUID(value)
    if parsed.version != 7:
        raise ValueError(f"not a UUIDv7: {value}")
    return datetime.fromtimestamp((parsed.int >> 80) / 1000, tz=timezone.utc)


def storage_token() -> str:
    """Opaque file name stem for stored uploads."""
    return generate_uuid7().replace("-", "")
