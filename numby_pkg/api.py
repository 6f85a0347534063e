"""Public API for Numby - returns structured objects instead of raising.

Every operation validates its input, runs the core and converts any
NumbyError into a typed result carrying a message and an error code.

Example:
    >>> from numby_pkg import api
    >>> ctx = api.create_context()
    >>> api.evaluate(ctx, "10% of 50").formatted
    '5'
    >>> api.evaluate(ctx, "prev + 1").formatted
    '6'
"""

from __future__ import annotations

import datetime as dt
from typing import Any

import httpx

from . import currency, locales, settings
from .agents import evaluate as _evaluate
from .context import Context
from .formatter import unit_label
from .logging_config import get_logger
from .types import EvalResult, InvalidInputError, NumbyError, OpResult, RatesStatusResult

logger = get_logger("api")


def _decode(text: Any, what: str = "Input") -> str:
    """Accept str, or UTF-8 bytes from a foreign caller."""
    if isinstance(text, (bytes, bytearray)):
        try:
            return bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(f"{what} is not valid UTF-8", "INVALID_ENCODING") from e
    if not isinstance(text, str):
        raise InvalidInputError(f"{what} must be text, got {type(text).__name__}")
    return text


def _failed(e: NumbyError) -> OpResult:
    return OpResult(ok=False, error=e.message, code=e.code)


def _require_context(ctx: Any) -> Context:
    if not isinstance(ctx, Context):
        raise InvalidInputError("A context created by create_context() is required", "NO_CONTEXT")
    return ctx


def create_context() -> Context:
    """Create an evaluation session with no variables and no history."""
    return Context()


def destroy_context(ctx: Context) -> OpResult:
    """Release a context; evaluating with it afterwards fails with INVALID_INPUT."""
    try:
        _require_context(ctx).close()
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def evaluate(ctx: Context, text: str | bytes) -> EvalResult:
    """Evaluate one line of input.

    Args:
        ctx: Context from create_context()
        text: Input such as "3 km to miles" or "x = 12.5"

    Returns:
        EvalResult with the value, its formatted display and unit label, or
        the error message and code. Failures leave the context unchanged.
    """
    try:
        source = _decode(text)
        result, entry = _evaluate(_require_context(ctx), source)
    except NumbyError as e:
        logger.debug(f"Evaluation failed [{e.code}]: {e.message}")
        return EvalResult(ok=False, error=e.message, code=e.code)
    return EvalResult(
        ok=True,
        value=result.value,
        formatted=entry.formatted,
        unit=unit_label(result.value),
    )


def set_variable(
    ctx: Context, name: str | bytes, value: float, unit: str | bytes | None = None
) -> OpResult:
    """Bind a variable directly (history is not touched)."""
    try:
        name = _decode(name, "Variable name")
        if unit is not None:
            unit = _decode(unit, "Unit")
        _require_context(ctx).set_variable(name, value, unit)
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def load_config(ctx: Context, path: str | bytes | None = None) -> OpResult:
    """Apply a JSON config file; nothing changes when it is invalid."""
    try:
        if path is not None:
            path = _decode(path, "Config path")
        settings.load_config(_require_context(ctx), path)
    except NumbyError as e:
        logger.warning(f"Config not loaded: {e.message}")
        return _failed(e)
    return OpResult(ok=True)


def set_locale(code: str | bytes) -> OpResult:
    try:
        locales.set_locale(_decode(code, "Locale"))
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def get_locale() -> str:
    """Code of the active locale, e.g. "en-US"."""
    return locales.current_locale().code


def list_locales() -> list[dict[str, str]]:
    return [{"code": code, "name": name} for code, name in locales.list_locales()]


def get_locales_count() -> int:
    return locales.get_locales_count()


def get_locale_code(index: int) -> str | None:
    """Code of the catalog locale at ``index``, or None when out of range."""
    try:
        return locales.locale_at(index).code
    except NumbyError:
        return None


def get_locale_name(index: int) -> str | None:
    """Display name of the catalog locale at ``index``, or None when out of range."""
    try:
        return locales.locale_at(index).display_name
    except NumbyError:
        return None


def clear_history(ctx: Context) -> OpResult:
    try:
        _require_context(ctx).clear_history()
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def clear_variables(ctx: Context) -> OpResult:
    try:
        _require_context(ctx).clear_variables()
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def get_history_count(ctx: Context) -> int:
    """Number of history entries; 0 for anything that is not a context."""
    if not isinstance(ctx, Context):
        return 0
    return ctx.history_count()


def update_currency_rates(ctx: Context, client: httpx.Client | None = None) -> OpResult:
    """Fetch the latest rates over the network, persist them and install them.

    This call blocks for up to a few seconds; hosts should run it off their
    UI thread.
    """
    try:
        currency.update_currency_rates(_require_context(ctx), client=client)
    except NumbyError as e:
        logger.warning(f"Currency update failed [{e.code}]: {e.message}")
        return _failed(e)
    return OpResult(ok=True)


def set_currency_rates_json(ctx: Context, payload: str | bytes) -> OpResult:
    """Install rates from a JSON payload in the currency API format."""
    try:
        currency.set_currency_rates_json(_require_context(ctx), _decode(payload, "Payload"))
    except NumbyError as e:
        return _failed(e)
    return OpResult(ok=True)


def are_rates_stale(now: dt.datetime | None = None) -> RatesStatusResult:
    """Report whether the persisted rates are older than a day."""
    try:
        status = currency.are_rates_stale(now)
        date = currency.get_rates_update_date()
    except NumbyError as e:
        return RatesStatusResult(ok=False, error=e.message, code=e.code)
    return RatesStatusResult(ok=True, status=status.value, date=date)


def get_rates_update_date() -> str | None:
    """Date ("YYYY-MM-DD") of the persisted rates, or None."""
    try:
        return currency.get_rates_update_date()
    except NumbyError as e:
        logger.warning(f"Cannot read rates date: {e.message}")
        return None


def get_default_config_path() -> str:
    return settings.get_default_config_path()
