"""
relayreactor/core/time.py

Clock helpers. Order deadlines are unix seconds; records carry a
wire-format timestamp.

Wire Format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)
"""

import time
from datetime import datetime, timezone


def unix_now() -> int:
    """Current unix time in whole seconds. The default settlement clock."""
    return int(time.time())


def reactor_timestamp() -> str:
    """
    Return current UTC time in wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
