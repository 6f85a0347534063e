"""Configuration file discovery, loading and persistence.

The config file is a JSON object. Every key is optional::

    {
        "locale": "de",
        "variables": {"rent": 1200, "trip": {"value": 42, "unit": "km"}},
        "currency_base": "USD",
        "currencies": {"EUR": 0.92, "GBP": 0.79},
        "api_rates_date": "2024-05-01",
        "rates_updated_at": "2024-05-01T08:00:00+00:00"
    }
"""

from __future__ import annotations

import datetime as dt
import json
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import DEFAULT_CURRENCY_BASE, MAX_CONFIG_BYTES, MAX_PATH_LENGTH
from .context import tag_value, validate_variable_name
from .currency import CurrencyRateSet, build_rate_set, parse_date, record_rates_date
from .locales import set_locale, resolve_locale
from .logging_config import get_logger
from .types import ConfigError, NumbyError, Value

if TYPE_CHECKING:
    from .context import Context

logger = get_logger("settings")

_override_lock = threading.Lock()
_override: list[Path | None] = [None]


def get_default_config_path() -> str:
    """Config path from NUMBY_CONFIG_PATH, else XDG_CONFIG_HOME, else ~/.config."""
    explicit = os.getenv("NUMBY_CONFIG_PATH")
    if explicit:
        return str(Path(explicit).expanduser())
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return str(Path(base).expanduser() / "numby" / "config.json")


def get_config_path() -> str:
    """The path installed by the last successful load_config, else the default."""
    with _override_lock:
        if _override[0] is not None:
            return str(_override[0])
    return get_default_config_path()


def reset_config_path() -> None:
    with _override_lock:
        _override[0] = None


def _resolve(path: str | os.PathLike | None) -> Path:
    if path is None:
        return Path(get_config_path())
    text = os.fspath(path)
    if not text or len(text) > MAX_PATH_LENGTH or "\x00" in text:
        raise ConfigError(f"Invalid config path: {text[:80]!r}", "INVALID_PATH")
    return Path(text).expanduser()


def read_config_file(path: str | os.PathLike | None = None, missing_ok: bool = True) -> dict[str, Any]:
    """Read the config file as a dict.

    Args:
        path: File to read (defaults to get_config_path())
        missing_ok: Return {} instead of failing when the file does not exist

    Raises:
        ConfigError: If the file is too large, unreadable or not a JSON object
    """
    config_file = _resolve(path)
    if not config_file.exists():
        if missing_ok:
            return {}
        raise ConfigError(f"Config file not found: {config_file}", "CONFIG_NOT_FOUND")
    try:
        size = config_file.stat().st_size
        if size > MAX_CONFIG_BYTES:
            raise ConfigError(
                f"Config file too large ({size} bytes > {MAX_CONFIG_BYTES})", "CONFIG_TOO_LARGE"
            )
        with open(config_file, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {config_file} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_file} must hold a JSON object")
    return data


def read_rates_date(path: str | os.PathLike | None = None) -> dt.date | None:
    """Date of the rates stored in the config file, or None if there are none."""
    data = read_config_file(path)
    if data.get("api_rates_date") is None:
        return None
    return parse_date(data["api_rates_date"])


def _write_atomic(config_file: Path, data: dict[str, Any]) -> None:
    config_file.parent.mkdir(parents=True, exist_ok=True)
    temp_file = config_file.with_suffix(config_file.suffix + ".tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        temp_file.replace(config_file)
    except BaseException:
        temp_file.unlink(missing_ok=True)
        raise


def persist_rates(rate_set: CurrencyRateSet, path: str | os.PathLike | None = None) -> None:
    """Merge a rate set into the config file, keeping every other key.

    Raises:
        ConfigError: If the existing file is invalid or cannot be replaced
    """
    config_file = _resolve(path)
    data = read_config_file(config_file)
    data["currency_base"] = rate_set.base
    data["currencies"] = dict(sorted(rate_set.rates.items()))
    data["api_rates_date"] = rate_set.date_string
    data["rates_updated_at"] = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
    try:
        _write_atomic(config_file, data)
    except (OSError, TypeError) as e:
        raise ConfigError(f"Cannot write config file {config_file}: {e}") from e
    logger.debug(f"Persisted {len(rate_set.rates)} rates to {config_file}")


def _parse_variables(raw: Any, rates: CurrencyRateSet | None) -> dict[str, Value]:
    if not isinstance(raw, dict):
        raise ConfigError("'variables' must be an object")
    values: dict[str, Value] = {}
    for name, entry in raw.items():
        if isinstance(entry, dict):
            amount, unit = entry.get("value"), entry.get("unit")
        else:
            amount, unit = entry, None
        try:
            name = validate_variable_name(name)
            values[name] = tag_value(amount, unit, rates)
        except NumbyError as e:
            raise ConfigError(f"Invalid variable {name!r} in config: {e}") from e
    return values


def load_config(ctx: Context, path: str | os.PathLike | None = None) -> dict[str, Any]:
    """Apply a config file to ``ctx`` and the process-wide settings.

    Everything is validated before anything changes: on failure the locale,
    the context and the config path override are left as they were.

    Returns:
        Summary of what was applied (locale, variable names, rate count)

    Raises:
        ConfigError: If the file is missing, unreadable or holds an invalid field
    """
    config_file = _resolve(path if path is not None else get_default_config_path())
    data = read_config_file(config_file, missing_ok=False)

    locale = None
    if data.get("locale") is not None:
        try:
            locale = resolve_locale(data["locale"])
        except NumbyError as e:
            raise ConfigError(f"Invalid locale in config: {e}") from e

    rate_date = None
    if data.get("api_rates_date") is not None:
        rate_date = parse_date(data["api_rates_date"])
    updated_at = data.get("rates_updated_at")
    if updated_at is not None and not isinstance(updated_at, str):
        raise ConfigError("'rates_updated_at' must be a string")

    rate_set = None
    currencies = data.get("currencies")
    if currencies is not None and currencies != {}:
        base = data.get("currency_base", DEFAULT_CURRENCY_BASE)
        rate_set = build_rate_set(base, currencies, rate_date)

    variables = _parse_variables(data.get("variables", {}), rate_set or ctx.rates)

    with ctx.lock:
        ctx.ensure_open()
        if locale is not None:
            set_locale(locale.code)
        for name, value in variables.items():
            ctx.bind(name, value)
        if rate_set is not None:
            ctx.replace_rates(rate_set)
    if rate_date is not None or rate_set is not None:
        record_rates_date(rate_date)
    with _override_lock:
        _override[0] = config_file

    logger.info(f"Loaded config from {config_file}")
    return {
        "path": str(config_file),
        "locale": locale.code if locale else None,
        "variables": sorted(variables),
        "rates": len(rate_set.rates) if rate_set else 0,
    }
