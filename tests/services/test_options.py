from __future__ import annotations

import dataclasses

import pytest

from imagist.services.color import BLACK, Color
from imagist.services.options import ParserPolicy, default_spec, parse


def test_empty_query_gives_defaults() -> None:
    spec = parse({})
    assert spec == default_spec()
    assert spec.quality == 80
    assert spec.output_format is None
    assert spec.resize.fit == "cover"
    assert spec.resize.position == "center"
    assert spec.resize.interpolation == "lanczos3"
    assert spec.resize.allow_upscale is False
    assert spec.resize.background == BLACK
    assert not spec.resize.active
    assert spec.trim_threshold is None


def test_resize_and_format() -> None:
    spec = parse({"w": "100", "h": "50", "fit": "cover", "fmt": "webp"})
    assert (spec.resize.width, spec.resize.height) == (100, 50)
    assert spec.resize.fit == "cover"
    assert spec.output_format == "webp"
    assert spec.quality == 80


def test_verbose_name_wins() -> None:
    spec = parse({"width": "200", "w": "100", "quality": "60", "q": "90"})
    assert spec.resize.width == 200
    assert spec.quality == 60


@pytest.mark.parametrize(
    "raw, expected",
    [("abc", None), ("0", None), ("-120", 120), ("100px", 100)],
)
def test_dimension_coercion(raw, expected) -> None:
    assert parse({"w": raw}).resize.width == expected


@pytest.mark.parametrize("raw", ["150", "0", "abc", "80.5", ""])
def test_bad_quality_keeps_default(raw) -> None:
    assert parse({"q": raw}).quality == 80


def test_quality_in_range() -> None:
    assert parse({"q": "1"}).quality == 1
    assert parse({"q": "100"}).quality == 100


def test_policy_default_quality() -> None:
    assert parse({}, ParserPolicy(default_quality=65)).quality == 65


def test_unknown_enum_values_are_ignored() -> None:
    spec = parse({"fit": "stretch", "i": "bilinear", "pos": "middle", "flip": "x"})
    assert spec.resize.fit == "cover"
    assert spec.resize.interpolation == "lanczos3"
    assert spec.resize.position == "center"
    assert not spec.flip_horizontal and not spec.flip_vertical


def test_position_aliases() -> None:
    assert parse({"pos": "north"}).resize.position == "top"
    assert parse({"position": "SouthEast"}).resize.position == "bottom-right"
    assert parse({"pos": "centre"}).resize.position == "center"


def test_content_aware_position_needs_cover() -> None:
    assert parse({"pos": "entropy"}).resize.position == "entropy"
    assert parse({"pos": "attention", "fit": "cover"}).resize.position == "attention"
    assert parse({"pos": "entropy", "fit": "contain"}).resize.position is None
    # gravity positions survive any fit
    assert parse({"pos": "top", "fit": "contain"}).resize.position == "top"


def test_cover_only_positions_follow_policy() -> None:
    policy = ParserPolicy(cover_only_positions=frozenset())
    assert parse({"pos": "entropy", "fit": "inside"}, policy).resize.position == "entropy"


def test_enlarge_and_max_allow_upscale() -> None:
    assert parse({"enlarge": ""}).resize.allow_upscale is True
    assert parse({"max": "1"}).resize.allow_upscale is True
    assert parse({"enlarge": "false"}).resize.allow_upscale is False


def test_background_and_tint() -> None:
    spec = parse({"bg": "fff", "tint": "255,0,0"})
    assert spec.resize.background == Color(255, 255, 255)
    assert spec.tint == Color(255, 0, 0)
    assert parse({"bg": "#fff"}).resize.background == BLACK
    assert parse({"tint": "nope"}).tint is None


def test_format_aliases_and_policy() -> None:
    assert parse({"fmt": "jpg"}).output_format == "jpeg"
    assert parse({"format": "PNG"}).output_format == "png"
    assert parse({"fmt": "gif"}).output_format is None
    policy = ParserPolicy(output_formats=frozenset({"jpeg", "tiff"}))
    assert parse({"fmt": "tif"}, policy).output_format == "tiff"


def test_trim_uses_policy_threshold() -> None:
    assert parse({"trim": ""}).trim_threshold == 10
    assert parse({"trim": "0"}).trim_threshold is None
    assert parse({"trim": "1"}, ParserPolicy(trim_threshold=25)).trim_threshold == 25


def test_rotate_range() -> None:
    assert parse({"r": "90"}).rotate_degrees == 90.0
    assert parse({"rotate": "-45.5"}).rotate_degrees == -45.5
    assert parse({"r": "400"}).rotate_degrees == 0.0
    assert parse({"r": "ninety"}).rotate_degrees == 0.0


def test_blur_range() -> None:
    assert parse({"blur": "2"}).blur_sigma == 2.0
    assert parse({"blur": "0.1"}).blur_sigma is None
    assert parse({"blur": "2000"}).blur_sigma is None


def test_flip_values() -> None:
    assert parse({"flip": "v"}).flip_vertical
    assert parse({"flip": "h"}).flip_horizontal
    both = parse({"flip": "both"})
    assert both.flip_vertical and both.flip_horizontal


def test_boolean_flags() -> None:
    spec = parse({"sharpen": "", "neg": "1", "gs": "true", "meta": ""})
    assert spec.sharpen and spec.negate and spec.greyscale and spec.preserve_metadata
    off = parse({"sharp": "0", "negative": "false", "greyscale": "off"})
    assert not (off.sharpen or off.negate or off.greyscale or off.preserve_metadata)


def test_spec_is_immutable() -> None:
    spec = parse({"w": "10"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.quality = 10  # type: ignore[misc]
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.resize.width = 20  # type: ignore[misc]


def test_empty_verbose_value_falls_back_to_alias() -> None:
    spec = parse({"width": "", "w": "100", "quality": "", "q": "55"})
    assert spec.resize.width == 100
    assert spec.quality == 55
    assert parse({"sharpen": ""}).sharpen is True


def test_oversize_dimensions_are_ignored() -> None:
    spec = parse({"w": "40000", "h": "40000", "fit": "fill"})
    assert spec.resize.width is None
    assert spec.resize.height is None
    assert parse({"w": "8192"}).resize.width == 8192


def test_max_dimension_comes_from_policy() -> None:
    policy = ParserPolicy(max_dimension=500)
    spec = parse({"w": "400", "h": "600"}, policy)
    assert spec.resize.width == 400
    assert spec.resize.height is None
