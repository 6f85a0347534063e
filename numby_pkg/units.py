"""Unit catalog and table-driven conversion.

Every unit belongs to exactly one category and is defined by a factor relative
to that category's base unit (temperature uses affine functions instead).
Currencies form their own category whose factors come from the active
``CurrencyRateSet`` rather than from this module.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .types import ConfigError, IncompatibleUnitsError, Value, ValueKind

if TYPE_CHECKING:
    from .currency import CurrencyRateSet
    from .locales import LocaleSetting

LENGTH = "length"
MASS = "mass"
TIME = "time"
TEMPERATURE = "temperature"
AREA = "area"
VOLUME = "volume"
SPEED = "speed"
ANGLE = "angle"
DATA = "data"
ENERGY = "energy"
CURRENCY = "currency"


@dataclass(frozen=True)
class Unit:
    """A unit of measurement.

    ``factor`` converts one of this unit into the category base. Units with
    ``to_base``/``from_base`` (temperatures) ignore the factor.
    """

    id: str
    category: str
    factor: float = 1.0
    aliases: tuple[str, ...] = ()
    to_base: Callable[[float], float] | None = field(default=None, compare=False)
    from_base: Callable[[float], float] | None = field(default=None, compare=False)

    def amount_to_base(self, amount: float) -> float:
        if self.to_base is not None:
            return self.to_base(amount)
        return amount * self.factor

    def amount_from_base(self, amount: float) -> float:
        if self.from_base is not None:
            return self.from_base(amount)
        return amount / self.factor


def _units(category: str, rows: list[tuple]) -> list[Unit]:
    return [Unit(row[0], category, row[1], tuple(row[2:])) for row in rows]


UNITS: list[Unit] = [
    *_units(
        LENGTH,
        [
            ("m", 1.0, "meter", "meters", "metre", "metres"),
            ("mm", 0.001, "millimeter", "millimeters", "millimetre", "millimetres"),
            ("cm", 0.01, "centimeter", "centimeters", "centimetre", "centimetres"),
            ("km", 1000.0, "kilometer", "kilometers", "kilometre", "kilometres"),
            ("in", 0.0254, "inch", "inches"),
            ("ft", 0.3048, "foot", "feet"),
            ("yd", 0.9144, "yard", "yards"),
            ("mi", 1609.344, "mile", "miles"),
            ("nmi", 1852.0, "nautical mile", "nautical miles"),
        ],
    ),
    *_units(
        MASS,
        [
            ("g", 1.0, "gram", "grams"),
            ("mg", 0.001, "milligram", "milligrams"),
            ("kg", 1000.0, "kilogram", "kilograms", "kilo", "kilos"),
            ("t", 1_000_000.0, "tonne", "tonnes", "ton", "tons"),
            ("ct", 0.2, "carat", "carats"),
            ("oz", 28.349523125, "ounce", "ounces"),
            ("lb", 453.59237, "lbs", "pound", "pounds"),
            ("st", 6350.29318, "stone", "stones"),
        ],
    ),
    *_units(
        TIME,
        [
            ("s", 1.0, "sec", "secs", "second", "seconds"),
            ("ms", 0.001, "millisecond", "milliseconds"),
            ("min", 60.0, "mins", "minute", "minutes"),
            ("h", 3600.0, "hr", "hrs", "hour", "hours"),
            ("day", 86400.0, "days"),
            ("week", 604800.0, "weeks", "wk"),
            ("month", 2592000.0, "months"),
            ("year", 31536000.0, "years", "yr", "yrs"),
        ],
    ),
    *_units(
        AREA,
        [
            ("m²", 1.0, "m2", "sqm", "square meter", "square meters", "square metre", "square metres"),
            ("cm²", 1e-4, "cm2", "square centimeter", "square centimeters"),
            ("km²", 1e6, "km2", "square kilometer", "square kilometers"),
            ("ft²", 0.09290304, "ft2", "sqft", "sq ft", "square foot", "square feet"),
            ("ha", 10000.0, "hectare", "hectares"),
            ("are", 100.0, "ares"),
            ("acre", 4046.8564224, "acres"),
        ],
    ),
    *_units(
        VOLUME,
        [
            ("m³", 1.0, "m3", "cubic meter", "cubic meters", "cubic metre", "cubic metres"),
            ("l", 0.001, "L", "liter", "liters", "litre", "litres"),
            ("ml", 1e-6, "mL", "milliliter", "milliliters", "millilitre", "millilitres"),
            ("gal", 0.003785411784, "gallon", "gallons"),
            ("qt", 0.000946352946, "quart", "quarts"),
            ("pt", 0.000473176473, "pint", "pints"),
            ("cup", 0.0002365882365, "cups"),
            ("tbsp", 1.478676478125e-05, "tablespoon", "tablespoons"),
            ("tsp", 4.92892159375e-06, "teaspoon", "teaspoons"),
        ],
    ),
    *_units(
        SPEED,
        [
            ("m/s", 1.0, "meter per second", "meters per second", "mps"),
            ("km/h", 1000.0 / 3600.0, "kph", "kmh", "kilometer per hour", "kilometers per hour"),
            ("mph", 0.44704, "mile per hour", "miles per hour"),
            ("kn", 1852.0 / 3600.0, "knot", "knots"),
        ],
    ),
    *_units(
        ANGLE,
        [
            ("rad", 1.0, "radian", "radians"),
            ("deg", math.pi / 180.0, "°", "degree", "degrees"),
        ],
    ),
    *_units(
        DATA,
        [
            ("bit", 1.0, "bits"),
            ("B", 8.0, "byte", "bytes"),
            ("KB", 8e3, "kilobyte", "kilobytes"),
            ("MB", 8e6, "megabyte", "megabytes"),
            ("GB", 8e9, "gigabyte", "gigabytes"),
            ("TB", 8e12, "terabyte", "terabytes"),
            ("KiB", 8.0 * 1024, "kibibyte", "kibibytes"),
            ("MiB", 8.0 * 1024**2, "mebibyte", "mebibytes"),
            ("GiB", 8.0 * 1024**3, "gibibyte", "gibibytes"),
        ],
    ),
    *_units(
        ENERGY,
        [
            ("J", 1.0, "joule", "joules"),
            ("kJ", 1000.0, "kilojoule", "kilojoules"),
            ("cal", 4.184, "calorie", "calories"),
            ("kcal", 4184.0, "kilocalorie", "kilocalories"),
            ("Wh", 3600.0, "watt hour", "watt hours"),
            ("kWh", 3.6e6, "kilowatt hour", "kilowatt hours"),
        ],
    ),
    Unit("K", TEMPERATURE, aliases=("kelvin", "kelvins"), to_base=lambda v: v, from_base=lambda v: v),
    Unit(
        "°C",
        TEMPERATURE,
        aliases=("C", "celsius", "degC"),
        to_base=lambda v: v + 273.15,
        from_base=lambda v: v - 273.15,
    ),
    Unit(
        "°F",
        TEMPERATURE,
        aliases=("F", "fahrenheit", "degF"),
        to_base=lambda v: (v - 32.0) * 5.0 / 9.0 + 273.15,
        from_base=lambda v: (v - 273.15) * 9.0 / 5.0 + 32.0,
    ),
]

UNITS_BY_ID: dict[str, Unit] = {unit.id: unit for unit in UNITS}

_ALIASES: dict[str, str] = {}
for _unit in UNITS:
    for _name in (_unit.id, *_unit.aliases):
        _ALIASES[_name] = _unit.id

_FOLDED_ALIASES: dict[str, set[str]] = {}
for _name, _unit_id in _ALIASES.items():
    _FOLDED_ALIASES.setdefault(_name.casefold(), set()).add(_unit_id)

# Aliases that cannot be read as one identifier token ("km/h", "square meters")
COMPOUND_ALIASES: tuple[str, ...] = tuple(
    sorted(
        (name for name in _ALIASES if not name.isidentifier()),
        key=len,
        reverse=True,
    )
)

# Symbols accepted in input, and the ones used when rendering
CURRENCY_SYMBOLS = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "￥": "CNY",
    "₽": "RUB",
    "₩": "KRW",
    "₪": "ILS",
    "₦": "NGN",
    "₱": "PHP",
    "฿": "THB",
    "₴": "UAH",
    "₺": "TRY",
    "₸": "KZT",
    "₿": "BTC",
}
CURRENCY_DISPLAY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "RUB": "₽",
    "KRW": "₩",
    "ILS": "₪",
    "PHP": "₱",
    "THB": "฿",
    "UAH": "₴",
    "TRY": "₺",
}

KNOWN_CURRENCIES = frozenset(
    {
        "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "INR", "MXN",
        "BRL", "ZAR", "RUB", "KRW", "SEK", "NOK", "DKK", "SGD", "HKD", "NZD",
        "TRY", "PLN", "THB", "MYR", "IDR", "PHP", "CZK", "ILS", "CLP", "AED",
        "COP", "BYN", "UAH", "KZT", "NGN", "HUF", "RON", "ARS", "EGP", "SAR",
        "BTC", "ETH",
    }
)


def find_unit(token: str, locale: LocaleSetting | None = None) -> Unit | None:
    """Resolve a token to a unit.

    Lookup order: the active locale's aliases, exact aliases, then a
    case-insensitive match when it is unambiguous.

    Args:
        token: Unit text as typed (e.g. "km", "Meters", "km/h")
        locale: Locale whose localized unit names are consulted first

    Returns:
        The matching Unit, or None
    """
    if not token:
        return None
    if locale is not None:
        unit_id = locale.unit_aliases.get(token) or locale.unit_aliases.get(
            token.casefold()
        )
        if unit_id:
            return UNITS_BY_ID[unit_id]
    unit_id = _ALIASES.get(token)
    if unit_id:
        return UNITS_BY_ID[unit_id]
    candidates = _FOLDED_ALIASES.get(token.casefold())
    if candidates and len(candidates) == 1:
        return UNITS_BY_ID[next(iter(candidates))]
    return None


def find_currency(token: str, rates: CurrencyRateSet | None = None) -> str | None:
    """Resolve a currency symbol or ISO code (any case) to the upper-case code."""
    if token in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[token]
    if len(token) != 3 or not token.isalpha():
        return None
    code = token.upper()
    if code in KNOWN_CURRENCIES or (rates is not None and code in rates.rates):
        return code
    return None


def category_of(value: Value) -> str | None:
    """Return the category a value belongs to (None for plain numbers)."""
    if value.kind is ValueKind.CURRENCY:
        return CURRENCY
    if value.kind is ValueKind.UNIT:
        return UNITS_BY_ID[value.unit].category
    return None


def describe(value: Value) -> str:
    if value.is_number:
        return "a plain number"
    return f"{value.unit} ({category_of(value)})"


def convert_unit(amount: float, from_id: str, to_id: str) -> float:
    """Convert an amount between two units of the same category.

    Raises:
        IncompatibleUnitsError: If the units belong to different categories
    """
    source = UNITS_BY_ID[from_id]
    target = UNITS_BY_ID[to_id]
    if source.category != target.category:
        raise IncompatibleUnitsError(
            f"Cannot convert {source.id} ({source.category}) to {target.id} ({target.category})"
        )
    if source.id == target.id:
        return amount
    return target.amount_from_base(source.amount_to_base(amount))


def convert_currency(
    amount: float, from_code: str, to_code: str, rates: CurrencyRateSet | None
) -> float:
    """Convert money between two currencies using the given rate set.

    Raises:
        ConfigError: If no rate set is active
        IncompatibleUnitsError: If a currency is missing from the rate set
    """
    if from_code == to_code:
        return amount
    if rates is None:
        raise ConfigError(
            f"No currency rates loaded; cannot convert {from_code} to {to_code}",
            "RATES_UNAVAILABLE",
        )
    from_rate = rates.rate_for(from_code)
    to_rate = rates.rate_for(to_code)
    if from_rate is None or to_rate is None:
        missing = from_code if from_rate is None else to_code
        raise IncompatibleUnitsError(f"No exchange rate for {missing}")
    return amount / from_rate * to_rate


def convert_value(
    value: Value, target: Value, rates: CurrencyRateSet | None = None
) -> Value:
    """Express ``value`` in the unit (or currency) carried by ``target``.

    Raises:
        IncompatibleUnitsError: For plain numbers or mismatched categories
    """
    if value.kind != target.kind or value.is_number:
        raise IncompatibleUnitsError(
            f"Cannot convert {describe(value)} to {describe(target)}"
        )
    if value.kind is ValueKind.CURRENCY:
        amount = convert_currency(value.amount, value.unit, target.unit, rates)
    else:
        amount = convert_unit(value.amount, value.unit, target.unit)
    return Value(amount, target.kind, target.unit)


def unit_value(token: str, locale: LocaleSetting | None = None, rates: CurrencyRateSet | None = None) -> Value | None:
    """Return ``1 <token>`` as a Value when the token names a unit or currency."""
    unit = find_unit(token, locale)
    if unit is not None:
        return Value.quantity(1.0, unit.id)
    code = find_currency(token, rates)
    if code is not None:
        return Value.money(1.0, code)
    return None
