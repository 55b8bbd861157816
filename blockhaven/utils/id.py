import time
import secrets
from typing import Optional


def uuid7(unix_ms: Optional[int] = None) -> str:
    """Generate a time-ordered UUIDv7 string.

    Passing ``unix_ms`` pins the timestamp bits so an id can share the
    timestamp of the record it identifies.
    """
    # 48 bits unix_ts_ms | 4 bits version (0111) | 12 bits rand_a
    # 2 bits variant (10) | 62 bits rand_b
    ms = time.time_ns() // 1_000_000 if unix_ms is None else unix_ms

    value = (ms & 0xFFFFFFFFFFFF) << 80
    value |= 0x7 << 76
    value |= secrets.randbits(12) << 64
    value |= 0x2 << 62
    value |= secrets.randbits(62)

    h = f"{value:032x}"
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"
