from __future__ import annotations

import pytest

from imagist.services.color import Color
from imagist.services.options import default_spec, parse
from imagist.services.pipeline import FALLBACK_FORMAT, build, resolve_format


def test_default_spec_only_reencodes() -> None:
    ops = build(default_spec(), "image/png")
    assert ops.names() == ["encode"]
    assert ops.mime == "image/png"
    assert dict(ops.terminal.args) == {"format": "png", "quality": 80}


def test_resize_to_webp() -> None:
    spec = parse({"w": "100", "h": "50", "fit": "cover", "fmt": "webp"})
    ops = build(spec, "image/jpeg")

    assert ops.names() == ["resize", "encode"]
    assert ops.mime == "image/webp"
    name, args = ops.terminal
    assert name == "encode"
    assert args["format"] == "webp" and args["quality"] == 80

    resize = ops.operations[0].args
    assert resize["width"] == 100 and resize["height"] == 50
    assert resize["fit"] == "cover"
    assert resize["position"] == "center"
    assert resize["kernel"] == "lanczos3"
    assert resize["allow_upscale"] is False


def test_operation_order_is_fixed() -> None:
    spec = parse(
        {
            "w": "10",
            "trim": "",
            "r": "90",
            "flip": "both",
            "sharpen": "",
            "blur": "1",
            "neg": "",
            "tint": "ff0000",
            "gs": "",
            "meta": "",
            "q": "70",
            "fmt": "png",
        }
    )
    ops = build(spec, "image/jpeg")
    assert ops.names() == [
        "trim",
        "rotate",
        "flip",
        "flop",
        "sharpen",
        "blur",
        "negate",
        "tint",
        "greyscale",
        "metadata",
        "resize",
        "encode",
    ]
    assert ops.operations[1].args["degrees"] == 90.0
    assert ops.operations[7].args["color"] == Color(255, 0, 0)
    assert ops.output_format == "png"
    assert len(ops) == 12


def test_metadata_dropped_unless_requested() -> None:
    assert "metadata" not in build(parse({"w": "5"}), "image/jpeg").names()


def test_operation_args_are_read_only() -> None:
    ops = build(default_spec(), "image/jpeg")
    with pytest.raises(TypeError):
        ops.terminal.args["quality"] = 10  # type: ignore[index]


@pytest.mark.parametrize(
    "explicit, mime, expected",
    [
        ("webp", "image/jpeg", "webp"),
        (None, "image/png", "png"),
        (None, "image/gif", "gif"),
        (None, "image/svg+xml", FALLBACK_FORMAT),
        ("bmp", "image/png", "png"),
    ],
)
def test_resolve_format(explicit, mime, expected) -> None:
    assert resolve_format(explicit, mime) == expected


def test_non_reencodable_input_falls_back() -> None:
    assert resolve_format(None, "image/gif", frozenset({"jpeg", "png"})) == "jpeg"
