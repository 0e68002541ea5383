from __future__ import annotations

import pytest

from imagist.services.color import BLACK, Color, InvalidColor, normalize, try_normalize


def test_hex_short_and_long() -> None:
    assert normalize("fff") == Color(255, 255, 255)
    assert normalize("e5e5e5") == Color(229, 229, 229)
    assert normalize("0A0b0C") == Color(10, 11, 12)


def test_rgb_and_rgba_lists() -> None:
    assert normalize("255,0,0") == Color(255, 0, 0)
    assert normalize("0,0,0,0.5") == Color(0, 0, 0, 0.5)
    # opaque alpha collapses to "no alpha"
    assert normalize("0,0,0,1") == Color(0, 0, 0)
    assert normalize("0,0,0,1").alpha is None


def test_channels_are_clamped_and_rounded() -> None:
    assert normalize("300,-5,10.5") == Color(255, 0, 11)
    assert normalize("1,2,3,7").alpha is None
    assert normalize("1,2,3,-1").alpha == 0.0


def test_junk_alpha_is_dropped() -> None:
    assert normalize("10,20,30,abc") == Color(10, 20, 30)


@pytest.mark.parametrize("raw", ["#fff", "ggg", "ffff", "1,2", "1,2,3,4,5", "a,b,c", "", None, 255])
def test_invalid_colours(raw) -> None:
    with pytest.raises(InvalidColor):
        normalize(raw)
    assert try_normalize(raw) is None


def test_str_round_trips() -> None:
    for color in (Color(1, 2, 3), Color(0, 0, 0, 0.5), Color(255, 128, 0, 0.25)):
        assert normalize(str(color)) == color


def test_rgba_scales_alpha() -> None:
    assert Color(0, 0, 0, 0.5).rgba() == (0, 0, 0, 128)
    assert BLACK.rgba() == (0, 0, 0, 255)
    assert BLACK.rgb() == (0, 0, 0)
