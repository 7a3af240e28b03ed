import time

import pytest

from bazuka.utils import local_timestamp, median


def test_local_timestamp_matches_clock():
    before = int(time.time())
    ts = local_timestamp()
    after = int(time.time())
    assert before <= ts <= after


def test_median_odd_length():
    assert median([30, 10, 20]) == 20


def test_median_even_length_takes_upper_middle():
    assert median([4, 1, 3, 2]) == 3


def test_median_single():
    assert median([7]) == 7


def test_median_does_not_modify_input():
    values = [5, 3, 9]
    median(values)
    assert values == [5, 3, 9]


def test_median_is_member_and_balanced():
    values = [12, 3, 3, 40, 8, 19, 1]
    m = median(values)
    assert m in values
    assert sum(v < m for v in values) <= len(values) // 2
    assert sum(v > m for v in values) <= len(values) // 2


def test_median_empty_raises():
    with pytest.raises(ValueError):
        median([])