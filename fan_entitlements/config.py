"""
Entitlement engine configuration.

Values are read once from the environment at import time.
"""

import os
from typing import Optional

# Length of the clipped rendition served to non-entitled listeners
PREVIEW_WINDOW_SECONDS = int(os.getenv("FAN_PREVIEW_WINDOW_SECONDS", "30"))

# Upper bound on a single subscription ledger read; exceeding it is a lookup failure
LEDGER_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("FAN_LEDGER_LOOKUP_TIMEOUT_SECONDS", "2.0"))

# Cached ledger records never outlive their period_end; this caps the TTL further
ENTITLEMENT_CACHE_TTL_SECONDS = int(os.getenv("FAN_ENTITLEMENT_CACHE_TTL_SECONDS", "300"))

# Deny events per viewer per minute before a support alert fires
DENY_ALERT_THRESHOLD_PER_MIN = int(os.getenv("FAN_DENY_ALERT_THRESHOLD_PER_MIN", "10"))

# Interval between cache reconcile cycles
CACHE_RECONCILE_INTERVAL_SECONDS = int(os.getenv("FAN_CACHE_RECONCILE_INTERVAL_SECONDS", "60"))


def get_redis_url() -> Optional[str]:
    """Return the configured Redis URL, or None for the in-memory cache."""
    url = os.getenv("REDIS_URL", "").strip()
    return url or None
