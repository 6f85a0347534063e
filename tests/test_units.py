"""Tests for the unit catalog, lookups and conversions."""

import pytest

from numby_pkg.currency import build_rate_set
from numby_pkg.locales import resolve_locale
from numby_pkg.types import ConfigError, IncompatibleUnitsError, Value
from numby_pkg.units import (
    UNITS,
    convert_currency,
    convert_unit,
    convert_value,
    find_currency,
    find_unit,
    unit_value,
)

RATES = build_rate_set("USD", {"EUR": 0.5, "GBP": 0.25})


class TestLookup:
    def test_exact_alias(self):
        assert find_unit("kilometers").id == "km"
        assert find_unit("°").id == "deg"

    def test_case_insensitive_when_unambiguous(self):
        assert find_unit("Meters").id == "m"
        assert find_unit("KILOGRAMS").id == "kg"

    def test_unknown(self):
        assert find_unit("furlong") is None
        assert find_unit("") is None

    def test_locale_alias(self):
        assert find_unit("Meter", resolve_locale("de")).id == "m"
        assert find_unit("metros", resolve_locale("es")).id == "m"

    def test_currency_lookup(self):
        assert find_currency("$") == "USD"
        assert find_currency("eur") == "EUR"
        assert find_currency("XYZ") is None
        assert find_currency("XYZ", build_rate_set("USD", {"XYZ": 2.0})) == "XYZ"

    def test_unit_value(self):
        assert unit_value("mi") == Value.quantity(1, "mi")
        assert unit_value("€") == Value.money(1, "EUR")
        assert unit_value("nonsense") is None


class TestConversion:
    @pytest.mark.parametrize(
        "amount,source,target,expected",
        [
            (5, "km", "mi", 3.10685596),
            (1, "ft", "in", 12),
            (100, "°C", "°F", 212),
            (0, "°C", "K", 273.15),
            (32, "°F", "°C", 0),
            (1, "kWh", "J", 3.6e6),
            (1, "GiB", "MiB", 1024),
            (1, "ha", "m²", 10000),
            (1, "gal", "l", 3.785411784),
            (180, "deg", "rad", 3.14159265),
        ],
    )
    def test_known_values(self, amount, source, target, expected):
        assert convert_unit(amount, source, target) == pytest.approx(expected)

    @pytest.mark.parametrize("unit", UNITS, ids=lambda unit: unit.id)
    def test_round_trip_through_category_members(self, unit):
        for other in UNITS:
            if other.category != unit.category:
                continue
            there = convert_unit(12.5, unit.id, other.id)
            assert convert_unit(there, other.id, unit.id) == pytest.approx(12.5, rel=1e-9)

    def test_categories_do_not_mix(self):
        with pytest.raises(IncompatibleUnitsError):
            convert_unit(1, "km", "kg")

    def test_convert_value_rejects_plain_numbers(self):
        with pytest.raises(IncompatibleUnitsError):
            convert_value(Value.number(5), Value.quantity(1, "km"))

    def test_convert_value_rejects_units_to_money(self):
        with pytest.raises(IncompatibleUnitsError):
            convert_value(Value.quantity(5, "km"), Value.money(1, "USD"), RATES)


class TestCurrencyConversion:
    def test_through_base(self):
        assert convert_currency(100, "USD", "EUR", RATES) == pytest.approx(50)
        assert convert_currency(10, "EUR", "GBP", RATES) == pytest.approx(5)

    def test_same_code_needs_no_rates(self):
        assert convert_currency(7, "EUR", "EUR", None) == 7

    def test_no_rates(self):
        with pytest.raises(ConfigError) as exc:
            convert_currency(1, "USD", "EUR", None)
        assert exc.value.code == "RATES_UNAVAILABLE"

    def test_missing_rate(self):
        with pytest.raises(IncompatibleUnitsError):
            convert_currency(1, "USD", "JPY", RATES)
