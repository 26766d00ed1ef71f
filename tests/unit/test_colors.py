from __future__ import annotations

import pytest

from darkpatch.contracts.types import TRANSPARENT, Color
from darkpatch.errors import ClassificationError
from darkpatch.scanning.colors import (
    contrast_ratio,
    is_dark,
    is_light,
    parse_color,
    parse_length,
    parse_opacity,
    parse_z_index,
    perceived_brightness,
)


class TestParseColor:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("rgb(255, 255, 255)", Color(255, 255, 255)),
            ("rgba(0, 0, 0, 0)", Color(0, 0, 0, 0.0)),
            ("rgba(10, 20, 30, 0.5)", Color(10, 20, 30, 0.5)),
            ("rgb(10 20 30 / 50%)", Color(10, 20, 30, 0.5)),
            ("#fff", Color(255, 255, 255)),
            ("#1a2b3c", Color(26, 43, 60)),
            ("white", Color(255, 255, 255)),
            ("  RGB(1, 2, 3)  ", Color(1, 2, 3)),
        ],
    )
    def test_supported_forms(self, value, expected):
        assert parse_color(value) == expected

    def test_empty_and_transparent_mean_transparent(self):
        assert parse_color(None) == TRANSPARENT
        assert parse_color("") == TRANSPARENT
        assert parse_color("transparent").is_transparent

    def test_hex_with_alpha(self):
        color = parse_color("#00000000")
        assert color.is_transparent

    def test_currentcolor_resolves_to_foreground(self):
        fg = Color(200, 200, 200)
        assert parse_color("currentColor", current_color=fg) == fg

    def test_currentcolor_without_foreground_raises(self):
        with pytest.raises(ClassificationError):
            parse_color("currentcolor")

    @pytest.mark.parametrize("value", ["rgb(1, 2)", "hsl(0, 0%, 0%)", "not-a-colour", "#12"])
    def test_malformed_raises(self, value):
        with pytest.raises(ClassificationError):
            parse_color(value)


def test_parse_length_takes_largest_component():
    assert parse_length("1px 3px 2px") == 3.0
    assert parse_length("thin") == 1.0
    assert parse_length(None) == 0.0
    with pytest.raises(ClassificationError):
        parse_length("2em")


def test_parse_opacity_and_z_index():
    assert parse_opacity("0.3") == pytest.approx(0.3)
    assert parse_opacity("") == 1.0
    assert parse_z_index("auto") is None
    assert parse_z_index("500") == 500
    with pytest.raises(ClassificationError):
        parse_z_index("high")


class TestContrast:
    def test_black_on_white_is_maximum(self):
        assert contrast_ratio(Color(0, 0, 0), Color(255, 255, 255)) == pytest.approx(21.0)

    def test_same_colour_is_minimum(self):
        grey = Color(128, 128, 128)
        assert contrast_ratio(grey, grey) == pytest.approx(1.0)

    def test_argument_order_does_not_matter(self):
        a, b = Color(30, 30, 30), Color(90, 90, 90)
        assert contrast_ratio(a, b) == contrast_ratio(b, a)


def test_light_and_dark_thresholds():
    assert perceived_brightness(Color(255, 255, 255)) == 255
    assert is_light(Color(240, 240, 240))
    assert is_dark(Color(20, 20, 20))
    assert not is_light(TRANSPARENT)
    assert not is_dark(TRANSPARENT)
