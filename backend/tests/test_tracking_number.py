"""
Tracking number generator tests.
"""

import random
import re
import pytest
from datetime import date

from backend.app.domain.tracking.tracking_number import (
    TrackingNumberGenerator,
    TrackingNumbersExhaustedError,
    is_valid_tracking_number,
    SUFFIX_MIN,
    SUFFIX_MAX,
)


def test_format():
    generator = TrackingNumberGenerator(prefix="EHE")
    number = generator.generate(today=date(2026, 10, 19))
    
    assert re.match(r"^EHE-20261019-\d{5}$", number)
    assert SUFFIX_MIN <= int(number[-5:]) <= SUFFIX_MAX
    assert is_valid_tracking_number(number)


def test_prefix_is_configurable():
    number = TrackingNumberGenerator(prefix="ACME").generate(today=date(2026, 1, 2))
    assert number.startswith("ACME-20260102-")


def test_ten_thousand_numbers_in_one_day_are_unique():
    generator = TrackingNumberGenerator(rng=random.Random(42))
    today = date(2026, 10, 19)
    
    numbers = {generator.generate(today=today) for _ in range(10_000)}
    
    assert len(numbers) == 10_000


def test_suffixes_are_reusable_on_a_new_day():
    generator = TrackingNumberGenerator(rng=random.Random(7))
    first = generator.generate(today=date(2026, 10, 19))
    
    second = generator.generate(today=date(2026, 10, 20))
    
    assert first != second
    assert second.split("-")[1] == "20261020"


def test_exhausted_day_raises():
    generator = TrackingNumberGenerator()
    today = date(2026, 10, 19)
    generator.generate(today=today)
    generator._issued = set(range(SUFFIX_MIN, SUFFIX_MAX + 1))
    
    with pytest.raises(TrackingNumbersExhaustedError):
        generator.generate(today=today)
    
    # A new day starts from an empty pool
    assert generator.generate(today=date(2026, 10, 20))


@pytest.mark.parametrize("value", [
    "EHE-2026101-12345",
    "EHE-20261019-1234",
    "ehe-20261019-12345",
    "EHE20261019-12345",
    "",
])
def test_invalid_tracking_numbers(value):
    assert not is_valid_tracking_number(value)
