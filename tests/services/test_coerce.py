from __future__ import annotations

import math

import pytest

from imagist.services.coerce import (
    is_float_in_range,
    is_int_in_range,
    to_bool,
    to_float,
    to_int,
    to_unsigned_int,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("12", 12),
        (" 7", 7),
        ("12abc", 12),
        ("-4", -4),
        ("abc", 0),
        ("", 0),
        (3.9, 3),
        (math.nan, 0),
        (True, 1),
        (None, 0),
    ],
)
def test_to_int_takes_leading_integer(raw, expected) -> None:
    assert to_int(raw) == expected


def test_to_unsigned_int_drops_sign() -> None:
    assert to_unsigned_int("-250") == 250
    assert to_unsigned_int("x") == 0


def test_to_float_prefix_and_non_finite() -> None:
    assert to_float("1.5x") == 1.5
    assert to_float(".25") == 0.25
    assert to_float("x1") is None
    assert to_float("inf") is None
    assert to_float(math.inf) is None
    assert to_float(False) is None


def test_range_checks_need_whole_value() -> None:
    assert is_int_in_range("50", 1, 100)
    assert is_int_in_range(" 100 ", 1, 100)
    assert not is_int_in_range("101", 1, 100)
    assert not is_int_in_range("50.0", 1, 100)
    assert not is_int_in_range("50abc", 1, 100)
    assert not is_int_in_range(50, 1, 100)

    assert is_float_in_range("0.3", 0.3, 1000)
    assert is_float_in_range("-90", -360, 360)
    assert not is_float_in_range("0.29", 0.3, 1000)
    assert not is_float_in_range("2px", 0.3, 1000)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, False),
        ("", True),
        ("1", True),
        ("yes", True),
        ("0", False),
        ("false", False),
        ("OFF", False),
        ("no", False),
        (True, True),
    ],
)
def test_to_bool_is_presence_based(raw, expected) -> None:
    assert to_bool(raw) is expected


def test_only_ascii_digits_count() -> None:
    arabic_three = "٣"
    assert to_int(arabic_three) == 0
    assert to_int("1" + arabic_three) == 1
    assert to_float(arabic_three) is None
    assert not is_int_in_range(arabic_three, 0, 9)
    assert not is_float_in_range(arabic_three, 0, 9)
