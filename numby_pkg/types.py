"""Type definitions, result dataclasses and the error taxonomy."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ValueKind(str, Enum):
    """What an amount is measured in."""

    NUMBER = "number"
    UNIT = "unit"
    CURRENCY = "currency"


@dataclass(frozen=True)
class Value:
    """A finite amount, optionally tagged with a unit id or a currency code."""

    amount: float
    kind: ValueKind = ValueKind.NUMBER
    unit: str | None = None

    def __post_init__(self) -> None:
        if not math.isfinite(self.amount):
            raise DomainError(f"Result is not a finite number ({self.amount})")
        if self.kind is ValueKind.NUMBER and self.unit is not None:
            raise ValueError("plain numbers carry no unit")
        if self.kind is not ValueKind.NUMBER and not self.unit:
            raise ValueError(f"{self.kind.value} values need a unit")

    @classmethod
    def number(cls, amount: float) -> Value:
        return cls(float(amount))

    @classmethod
    def quantity(cls, amount: float, unit_id: str) -> Value:
        return cls(float(amount), ValueKind.UNIT, unit_id)

    @classmethod
    def money(cls, amount: float, code: str) -> Value:
        return cls(float(amount), ValueKind.CURRENCY, code)

    @property
    def is_number(self) -> bool:
        return self.kind is ValueKind.NUMBER

    def with_amount(self, amount: float) -> Value:
        """Return a copy carrying the same unit with a new amount."""
        return Value(float(amount), self.kind, self.unit)

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "kind": self.kind.value, "unit": self.unit}


@dataclass
class EvalResult:
    """Result of evaluating one line of input."""

    ok: bool
    value: Value | None = None
    formatted: str | None = None
    unit: str | None = None
    error: str | None = None
    code: str | None = None

    @property
    def amount(self) -> float | None:
        return self.value.amount if self.value is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result_dict: dict[str, Any] = {"ok": self.ok}
        if self.value is not None:
            result_dict["value"] = self.value.amount
            result_dict["kind"] = self.value.kind.value
        if self.formatted is not None:
            result_dict["formatted"] = self.formatted
        if self.unit is not None:
            result_dict["unit"] = self.unit
        if self.error is not None:
            result_dict["error"] = self.error
        if self.code is not None:
            result_dict["code"] = self.code
        return result_dict

    def __repr__(self) -> str:
        if not self.ok:
            return f"EvalResult(ok=False, code={self.code!r}, error={self.error!r})"
        return f"EvalResult(ok=True, formatted={self.formatted!r}, unit={self.unit!r})"


@dataclass
class OpResult:
    """Outcome of a state-mutating boundary operation."""

    ok: bool
    error: str | None = None
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result_dict: dict[str, Any] = {"ok": self.ok}
        if self.error is not None:
            result_dict["error"] = self.error
            result_dict["code"] = self.code
        return result_dict


@dataclass
class RatesStatusResult:
    """Whether the persisted currency rates are stale ("fresh" or "stale")."""

    ok: bool
    status: str | None = None
    date: str | None = None
    error: str | None = None
    code: str | None = None

    @property
    def stale(self) -> bool:
        return self.status != "fresh"

    def to_dict(self) -> dict[str, Any]:
        result_dict: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            result_dict["status"] = self.status
            result_dict["date"] = self.date
        else:
            result_dict["error"] = self.error
            result_dict["code"] = self.code
        return result_dict


class NumbyError(Exception):
    """Base class for every failure the engine reports to callers."""

    default_code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class InvalidInputError(NumbyError):
    """Raised for malformed, oversized or undecodable input text."""

    default_code = "INVALID_INPUT"


class ParseError(NumbyError):
    """Raised when no grammar could make sense of the input."""

    default_code = "PARSE_ERROR"


class UnknownVariableError(NumbyError):
    default_code = "UNKNOWN_VARIABLE"


class UnknownHistoryReferenceError(NumbyError):
    """Raised when a history keyword has nothing to refer to."""

    default_code = "UNKNOWN_HISTORY_REFERENCE"


class DivisionByZeroError(NumbyError):
    default_code = "DIVISION_BY_ZERO"


class IncompatibleUnitsError(NumbyError):
    """Raised when units of different categories meet, or a unit cannot take part."""

    default_code = "INCOMPATIBLE_UNITS"


class InvalidNameError(NumbyError):
    default_code = "INVALID_NAME"


class ConfigError(NumbyError):
    """Raised for unreadable or malformed configuration and rate payloads."""

    default_code = "CONFIG_ERROR"


class NetworkError(NumbyError):
    default_code = "NETWORK_ERROR"


class LocaleNotFoundError(NumbyError):
    default_code = "LOCALE_NOT_FOUND"


class DomainError(NumbyError):
    """Raised when a math function or operator leaves the real, finite numbers."""

    default_code = "DOMAIN_ERROR"
