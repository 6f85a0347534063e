"""Unit-aware evaluation of parsed expressions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Sequence

import sympy as sp

from .config import (
    ALLOWED_SYMPY_CONSTANTS,
    ALLOWED_SYMPY_FUNCTIONS,
    HISTORY_AVERAGE_KEYWORDS,
    HISTORY_KEYWORDS,
    HISTORY_LAST_KEYWORDS,
    HISTORY_SUM_KEYWORDS,
    SCALE_WORDS,
    TRIGONOMETRIC_FUNCTIONS,
    UNIT_PRESERVING_FUNCTIONS,
)
from .locales import LocaleSetting
from .parser import MOD, BinaryOp, Call, Name, Node, Number, Percent, PercentPhrase, UnaryOp
from .types import (
    DivisionByZeroError,
    DomainError,
    IncompatibleUnitsError,
    UnknownHistoryReferenceError,
    UnknownVariableError,
    Value,
)
from .units import ANGLE, category_of, convert_unit, convert_value, describe, unit_value

if TYPE_CHECKING:
    from .currency import CurrencyRateSet


@dataclass(frozen=True)
class Scope:
    """Read-only view of a context used while evaluating one input."""

    locale: LocaleSetting
    variables: Mapping[str, Value] = field(default_factory=dict)
    history: Sequence[Value] = ()
    rates: CurrencyRateSet | None = None


# Arithmetic


def _aligned(left: Value, right: Value, rates: CurrencyRateSet | None) -> float:
    """Return the right amount expressed in the left operand's unit."""
    if left.is_number and right.is_number:
        return right.amount
    return convert_value(right, left, rates).amount


def add(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    return left.with_amount(left.amount + _aligned(left, right, rates))


def subtract(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    return left.with_amount(left.amount - _aligned(left, right, rates))


def multiply(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    if not left.is_number and not right.is_number:
        raise IncompatibleUnitsError(
            f"Cannot multiply {describe(left)} by {describe(right)}"
        )
    carrier = right if left.is_number else left
    return carrier.with_amount(left.amount * right.amount)


def _divisor(left: Value, right: Value, rates: CurrencyRateSet | None, verb: str) -> float:
    if right.is_number:
        divisor = right.amount
    elif left.is_number:
        raise IncompatibleUnitsError(f"Cannot {verb} a plain number by {describe(right)}")
    else:
        divisor = _aligned(left, right, rates)
    if divisor == 0:
        raise DivisionByZeroError("Division by zero")
    return divisor


def divide(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    """Divide two values.

    A quantity divided by a quantity of the same category is a plain ratio.
    """
    divisor = _divisor(left, right, rates, "divide")
    if not left.is_number and not right.is_number:
        return Value.number(left.amount / divisor)
    return left.with_amount(left.amount / divisor)


def modulo(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    divisor = _divisor(left, right, rates, "take the modulo of")
    return left.with_amount(math.fmod(left.amount, divisor))


def power(left: Value, right: Value, rates: CurrencyRateSet | None = None) -> Value:
    if not left.is_number or not right.is_number:
        raise IncompatibleUnitsError("Exponents only work on plain numbers")
    if left.amount == 0 and right.amount < 0:
        raise DivisionByZeroError("Zero cannot be raised to a negative power")
    try:
        result = left.amount**right.amount
    except OverflowError as e:
        raise DomainError("Result is too large") from e
    if isinstance(result, complex):
        raise DomainError(f"{left.amount:g}^{right.amount:g} is not a real number")
    return Value.number(result)


def percent_of(value: Value) -> Value:
    return value.with_amount(value.amount / 100.0)


def apply_percent(
    kind: str, base: Value, ratio: Value, rates: CurrencyRateSet | None = None
) -> Value:
    """Apply a percent phrase: ``of`` takes the portion, ``off`` and ``on`` remove or add it.

    ``ratio`` is already divided by 100.

    Raises:
        IncompatibleUnitsError: If the ratio carries a unit
    """
    if not ratio.is_number:
        raise IncompatibleUnitsError(f"A percentage must be a plain number, not {describe(ratio)}")
    portion = multiply(base, ratio)
    if kind == "of":
        return portion
    if kind == "off":
        return subtract(base, portion, rates)
    return add(base, portion, rates)


BINARY_OPERATIONS = {
    "+": add,
    "-": subtract,
    "*": multiply,
    "/": divide,
    MOD: modulo,
    "^": power,
}


def apply_function(name: str, arg: Value) -> Value:
    """Evaluate a whitelisted function with SymPy.

    Angles are converted to radians for trigonometric functions; rounding
    and ``abs`` keep the unit of their argument.

    Raises:
        IncompatibleUnitsError: If the argument's unit is not accepted
        DomainError: If the result is not a finite real number
    """
    amount = arg.amount
    keeps_unit = False
    if not arg.is_number:
        if name in UNIT_PRESERVING_FUNCTIONS:
            keeps_unit = True
        elif name in TRIGONOMETRIC_FUNCTIONS and category_of(arg) == ANGLE:
            amount = convert_unit(amount, arg.unit, "rad")
        else:
            raise IncompatibleUnitsError(f"{name}() cannot take {describe(arg)}")

    try:
        result = sp.N(ALLOWED_SYMPY_FUNCTIONS[name](sp.Float(amount)))
    except (TypeError, ValueError, ArithmeticError) as e:
        raise DomainError(f"{name}({amount:g}) is undefined") from e
    if result.is_real is not True or result.is_finite is not True:
        raise DomainError(f"{name}({amount:g}) is not a real number")
    number = float(result)
    if not math.isfinite(number):
        raise DomainError(f"{name}({amount:g}) is too large")
    if name in TRIGONOMETRIC_FUNCTIONS and abs(number) < 1e-12:
        # sin(pi) and friends
        number = 0.0
    return arg.with_amount(number) if keeps_unit else Value.number(number)


# History


def history_aggregate(
    keyword: str, values: Sequence[Value], rates: CurrencyRateSet | None = None
) -> Value:
    """Resolve a history keyword against past results.

    ``prev``/``ans``/``last`` return the latest result, ``sum``/``total`` add
    every result (0 when empty) and ``average``/``avg``/``mean`` divide that
    sum by the count. Totals are expressed in the unit of the latest result.

    Raises:
        UnknownHistoryReferenceError: If there is nothing to refer to
        IncompatibleUnitsError: If results cannot be added together
    """
    if keyword in HISTORY_LAST_KEYWORDS:
        if not values:
            raise UnknownHistoryReferenceError(f"'{keyword}' has no previous result")
        return values[-1]
    if keyword in HISTORY_SUM_KEYWORDS and not values:
        return Value.number(0)
    if keyword in HISTORY_AVERAGE_KEYWORDS and not values:
        raise UnknownHistoryReferenceError(f"'{keyword}' needs at least one result")
    if keyword not in HISTORY_KEYWORDS:
        raise UnknownHistoryReferenceError(f"Unknown history reference: {keyword}")

    target = values[-1]
    total = 0.0
    for value in values:
        try:
            total += _aligned(target, value, rates)
        except IncompatibleUnitsError as e:
            raise IncompatibleUnitsError(
                f"Cannot total history mixing {describe(value)} and {describe(target)}"
            ) from e
    if keyword in HISTORY_AVERAGE_KEYWORDS:
        total /= len(values)
    return target.with_amount(total)


# Expression tree


class Evaluator:
    """Evaluates an expression tree against a Scope."""

    def __init__(self, scope: Scope):
        self.scope = scope

    def resolve_name(self, name: str) -> Value:
        """Look up a bare name.

        Order: variable, history keyword, constant, scale word, unit,
        currency.

        Raises:
            UnknownVariableError: If nothing matches
        """
        scope = self.scope
        if name in scope.variables:
            return scope.variables[name]
        if name in HISTORY_KEYWORDS:
            return history_aggregate(name, scope.history, scope.rates)
        if name in ALLOWED_SYMPY_CONSTANTS:
            return Value.number(float(sp.N(ALLOWED_SYMPY_CONSTANTS[name])))
        if name in SCALE_WORDS:
            return Value.number(SCALE_WORDS[name])
        value = unit_value(name, scope.locale, scope.rates)
        if value is not None:
            return value
        raise UnknownVariableError(f"Unknown variable: {name}")

    def evaluate(self, node: Node) -> Value:
        if isinstance(node, Number):
            return Value.number(node.value)
        if isinstance(node, Name):
            return self.resolve_name(node.name)
        if isinstance(node, BinaryOp):
            return self._binary(node)
        if isinstance(node, UnaryOp):
            operand = self.evaluate(node.operand)
            return operand.with_amount(-operand.amount) if node.op == "-" else operand
        if isinstance(node, Percent):
            depth = 0
            while isinstance(node, Percent):
                node = node.operand
                depth += 1
            value = self.evaluate(node)
            for _ in range(depth):
                value = percent_of(value)
            return value
        if isinstance(node, PercentPhrase):
            ratio = self.evaluate(node.ratio)
            return apply_percent(node.kind, self.evaluate(node.base), ratio, self.scope.rates)
        if isinstance(node, Call):
            return apply_function(node.func, self.evaluate(node.arg))
        raise TypeError(f"Unknown expression node: {node!r}")

    def _binary(self, node: BinaryOp) -> Value:
        if node.op == "^":
            return power(self.evaluate(node.left), self.evaluate(node.right))
        # Left-leaning chains ("1 + 2 + 3 + ...") are walked iteratively
        spine = []
        while isinstance(node, BinaryOp) and node.op != "^":
            spine.append(node)
            node = node.left
        value = self.evaluate(node)
        rates = self.scope.rates
        for step in reversed(spine):
            value = BINARY_OPERATIONS[step.op](value, self.evaluate(step.right), rates)
        return value
