import pytest

from orion.backends.payload import (
    first_mapping,
    first_present,
    format_duration,
    normalize_z_mm,
    parse_bool,
    parse_float,
    parse_int,
    parse_layer_duration_seconds,
    parse_layer_height,
    parse_print_time,
    parse_temperature,
    parse_volume_ml,
    ticks_to_mm,
)


def test_first_present_skips_missing_and_none():
    data = {"a": None, "b": 0, "c": 2}
    assert first_present(data, ("x", "a", "b", "c")) == 0
    assert first_present(data, ("x", "y"), "fallback") == "fallback"
    assert first_present(None, ("a",)) is None


def test_first_mapping_requires_mapping_values():
    data = {"file": "name.zip", "plate": {"Path": "p.zip"}}
    assert first_mapping(data, ("file", "plate")) == {"Path": "p.zip"}
    assert first_mapping(data, ("file",)) is None


@pytest.mark.parametrize(
    "value, expected",
    [("12.5", 12.5), ("  7 mm", 7.0), (3, 3.0), (True, None), ("abc", None), (None, None)],
)
def test_parse_float(value, expected):
    assert parse_float(value) == expected


def test_parse_int_truncates():
    assert parse_int("42.9") == 42
    assert parse_int(False) is None


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "1e999", "-1e999"])
def test_non_finite_numbers_parse_as_missing(value):
    assert parse_float(value) is None
    assert parse_int(value) is None
    assert parse_print_time(value) is None
    assert parse_temperature(value) is None
    assert parse_volume_ml(value) is None
    assert parse_layer_height(value) is None


def test_huge_integer_does_not_overflow_float_parsers():
    huge = 10**400
    assert parse_int(huge) == huge
    assert parse_float(huge) is None
    assert parse_print_time(huge) is None


@pytest.mark.parametrize(
    "value, expected",
    [("yes", True), ("off", False), (1, True), (0, False), ("2", True), ("maybe", None)],
)
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_parse_temperature_strips_units():
    assert parse_temperature("31.5 °C") == 31.5
    assert parse_temperature("45C") == 45.0
    assert parse_temperature(None) is None


def test_parse_print_time_accepts_clock_strings():
    assert parse_print_time("01:02:03") == 3723
    assert parse_print_time("~00:10:00") == 600
    assert parse_print_time(90.7) == 90
    assert format_duration(3723) == "01:02:03"


@pytest.mark.parametrize(
    "raw, expected",
    [(4.5, 4.5), (2_000_000, 2.0), (3_500_000_000, 3.5), ("junk", None)],
)
def test_layer_duration_units_by_magnitude(raw, expected):
    assert parse_layer_duration_seconds(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        (12.5, 12.5),
        ("500 µL", 0.5),
        ("1.5 L", 1500.0),
        ("20 ml", 20.0),
        ("15 cc", 15.0),
        ("2500", 2.5),
        ("40", 40.0),
    ],
)
def test_volume_units(raw, expected):
    assert parse_volume_ml(raw) == pytest.approx(expected)


def test_layer_height_units():
    assert parse_layer_height(0.05) == 0.05
    assert parse_layer_height(50) == 0.05
    assert parse_layer_height("50", assume_microns=True) == 0.05
    assert parse_layer_height("0.1mm") == 0.1


def test_ticks_to_mm():
    assert ticks_to_mm(320) == pytest.approx(0.05)
    assert ticks_to_mm(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        (12.5, 12.5),
        (1000, 1000),
        (150_000, 150.0),
        (150_000_000, 150.0),
        (900_000_000_000, 900_000_000.0),
    ],
)
def test_normalize_z_mm(raw, expected):
    assert normalize_z_mm(raw) == pytest.approx(expected)
