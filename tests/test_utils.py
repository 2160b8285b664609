from datetime import datetime
import math

import pytest

from canvas_record.utils import format_date, format_seconds, next_multiple


@pytest.mark.parametrize(
    "value, multiple, expected",
    [(0, 2, 0), (1, 2, 2), (2, 2, 2), (101, 2, 102), (7.5, 4, 8)],
)
def test_next_multiple(value, multiple, expected):
    assert next_multiple(value, multiple) == expected


def test_next_multiple_rejects_non_positive_multiple():
    with pytest.raises(ValueError):
        next_multiple(3, 0)


def test_format_date():
    assert format_date(datetime(2024, 5, 1, 14, 3, 59)) == "2024.05.01-14.03.59"
    assert format_date(None) == ""


def test_format_seconds():
    assert format_seconds(0) == "00:00"
    assert format_seconds(75.4) == "01:15"
    assert format_seconds(3725) == "1:02:05"
    assert format_seconds(-3) == "00:00"
    assert format_seconds(math.inf) == "--:--"
