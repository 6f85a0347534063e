"""Evaluation sessions: variables, bounded history and the active rate set."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .config import (
    ALLOWED_SYMPY_FUNCTIONS,
    CONVERSION_KEYWORDS,
    HISTORY_KEYWORDS,
    HISTORY_LIMIT,
    OPERATOR_KEYWORDS,
    PERCENT_KEYWORDS,
    VAR_NAME_RE,
)
from .evaluator import Scope
from .locales import LocaleSetting, current_locale
from .logging_config import get_logger
from .types import (
    IncompatibleUnitsError,
    InvalidInputError,
    InvalidNameError,
    Value,
)
from .units import find_currency, find_unit

if TYPE_CHECKING:
    from .currency import CurrencyRateSet

logger = get_logger("context")

RESERVED_NAMES = frozenset(
    {*HISTORY_KEYWORDS, *CONVERSION_KEYWORDS, *PERCENT_KEYWORDS, *ALLOWED_SYMPY_FUNCTIONS}
)


def validate_variable_name(name: Any) -> str:
    """Check that ``name`` can be bound as a variable.

    Raises:
        InvalidNameError: If the name is not an identifier or is reserved
    """
    if not isinstance(name, str):
        raise InvalidNameError("Variable name must be text")
    name = name.strip()
    if not VAR_NAME_RE.match(name):
        raise InvalidNameError(f"Invalid variable name: {name!r}")
    if name in RESERVED_NAMES or name.casefold() in OPERATOR_KEYWORDS:
        raise InvalidNameError(f"'{name}' is a reserved word")
    return name


def tag_value(amount: Any, unit: str | None = None, rates: CurrencyRateSet | None = None) -> Value:
    """Build a Value from a raw number and an optional unit or currency name.

    Raises:
        InvalidInputError: If the amount is not a finite number
        IncompatibleUnitsError: If the unit is not known
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidInputError(f"Variable value must be a number, got {amount!r}")
    if not math.isfinite(amount):
        raise InvalidInputError("Variable value must be finite")
    if unit is None or not str(unit).strip():
        return Value.number(amount)
    unit = str(unit).strip()
    found = find_unit(unit, current_locale())
    if found is not None:
        return Value.quantity(amount, found.id)
    code = find_currency(unit, rates)
    if code is not None:
        return Value.money(amount, code)
    raise IncompatibleUnitsError(f"Unknown unit: {unit}")


@dataclass(frozen=True)
class HistoryEntry:
    input: str
    result: Value
    formatted: str
    sequence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "formatted": self.formatted,
            "sequence": self.sequence,
            **self.result.to_dict(),
        }


class Context:
    """One calculator session.

    All reads and writes go through a re-entrant lock, so a context can be
    shared between threads; an evaluation commits its variable binding and
    history entry in one step.
    """

    def __init__(
        self,
        rates: CurrencyRateSet | None = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self._lock = threading.RLock()
        self._variables: dict[str, Value] = {}
        self._history: deque[HistoryEntry] = deque(maxlen=history_limit)
        self._rates = rates
        self._sequence = 0
        self._closed = False

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise InvalidInputError("Context has been destroyed", "CONTEXT_CLOSED")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._variables.clear()
            self._history.clear()
            self._rates = None

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def scope(self, locale: LocaleSetting | None = None) -> Scope:
        """Snapshot of the state an evaluation reads."""
        with self._lock:
            self.ensure_open()
            return Scope(
                locale=locale or current_locale(),
                variables=dict(self._variables),
                history=tuple(entry.result for entry in self._history),
                rates=self._rates,
            )

    # Variables

    def set_variable(self, name: str, amount: float, unit: str | None = None) -> Value:
        """Bind ``name`` to a number, optionally tagged with a unit or currency.

        Raises:
            InvalidNameError: If the name is malformed or reserved
            InvalidInputError: If the amount is not a finite number
            IncompatibleUnitsError: If the unit is not known
        """
        name = validate_variable_name(name)
        with self._lock:
            self.ensure_open()
            value = tag_value(amount, unit, self._rates)
            self._variables[name] = value
        logger.debug(f"Set variable {name} = {value}")
        return value

    def bind(self, name: str, value: Value) -> None:
        """Bind an already validated name to a value."""
        with self._lock:
            self.ensure_open()
            self._variables[name] = value

    def get_variable(self, name: str) -> Value | None:
        with self._lock:
            return self._variables.get(name)

    def variables(self) -> dict[str, Value]:
        with self._lock:
            return dict(self._variables)

    def clear_variables(self) -> None:
        with self._lock:
            self._variables.clear()

    # History

    def commit(
        self, text: str, result: Value, formatted: str, assign: str | None = None
    ) -> HistoryEntry:
        """Record one successful evaluation (and its variable binding, if any)."""
        with self._lock:
            self.ensure_open()
            if assign is not None:
                self._variables[assign] = result
            self._sequence += 1
            entry = HistoryEntry(text, result, formatted, self._sequence)
            self._history.append(entry)
            return entry

    def history(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._history)

    def history_count(self) -> int:
        with self._lock:
            return len(self._history)

    def last_result(self) -> Value | None:
        with self._lock:
            return self._history[-1].result if self._history else None

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    # Currency rates

    @property
    def rates(self) -> CurrencyRateSet | None:
        with self._lock:
            return self._rates

    def replace_rates(self, rate_set: CurrencyRateSet | None) -> None:
        with self._lock:
            self.ensure_open()
            self._rates = rate_set
        if rate_set is not None:
            logger.info(
                f"Installed {len(rate_set.rates)} rates (base {rate_set.base}, {rate_set.date_string})"
            )
