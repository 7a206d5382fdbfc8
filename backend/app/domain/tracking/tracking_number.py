"""
Tracking number generation.

Format: PREFIX-YYYYMMDD-NNNNN, NNNNN a random suffix in [10000, 99999].
"""

import random
import re
import threading
from datetime import date, datetime, timezone
from typing import Optional, Set

SUFFIX_MIN = 10000
SUFFIX_MAX = 99999

TRACKING_NUMBER_PATTERN = re.compile(r"^[A-Z0-9]+-\d{8}-\d{5}$")


class TrackingNumbersExhaustedError(Exception):
    """Every suffix for the day has been issued by this generator."""


class TrackingNumberGenerator:
    """
    Mints tracking numbers.
    
    Suffixes are drawn without replacement per calendar day, so a single
    process never repeats itself. Other processes can still pick the same
    number; the shipment store's unique constraint catches that and the
    creator retries with a fresh number.
    """
    
    def __init__(self, prefix: str = "EHE", rng: Optional[random.Random] = None):
        self.prefix = prefix
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()
        self._day: Optional[date] = None
        self._issued: Set[int] = set()
    
    def generate(self, today: Optional[date] = None) -> str:
        today = today or datetime.now(timezone.utc).date()
        with self._lock:
            if today != self._day:
                self._day = today
                self._issued = set()
            if len(self._issued) > SUFFIX_MAX - SUFFIX_MIN:
                raise TrackingNumbersExhaustedError(f"No tracking numbers left for {today.isoformat()}")
            while True:
                suffix = self._rng.randint(SUFFIX_MIN, SUFFIX_MAX)
                if suffix not in self._issued:
                    self._issued.add(suffix)
                    break
        return f"{self.prefix}-{today.strftime('%Y%m%d')}-{suffix}"


def is_valid_tracking_number(value: str) -> bool:
    return bool(TRACKING_NUMBER_PATTERN.match(value))
