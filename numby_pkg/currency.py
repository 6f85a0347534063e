"""Currency rate sets, payload validation, staleness and the rate fetcher.

The fetcher talks to the public currency API with httpx and never runs on the
evaluation path. The date of the most recently persisted rate set is kept in
one process-wide slot so that hosts can ask whether rates are stale without
holding a context.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

import httpx

from .config import (
    DATE_RE,
    MIN_REQUEST_INTERVAL,
    RATES_FALLBACK_URL,
    RATES_PRIMARY_URL,
    REQUEST_TIMEOUT,
    STALE_AFTER_HOURS,
)
from .logging_config import get_logger
from .types import ConfigError, NetworkError

if TYPE_CHECKING:
    from .context import Context

logger = get_logger("currency")


class RateStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class CurrencyRateSet:
    """Exchange rates relative to one base currency.

    ``rates[code]`` is how many units of ``code`` one unit of ``base`` buys.
    The base itself is always present with rate 1.0.
    """

    base: str
    rates: Mapping[str, float]
    date: dt.date | None = None
    fetched_at: str | None = field(default=None, compare=False)

    def rate_for(self, code: str) -> float | None:
        return self.rates.get(code.upper())

    @property
    def date_string(self) -> str | None:
        return self.date.isoformat() if self.date else None

    def __contains__(self, code: str) -> bool:
        return code.upper() in self.rates


def parse_date(text: Any) -> dt.date:
    """Parse a ``YYYY-MM-DD`` string.

    Raises:
        ConfigError: If the text is not a valid calendar date
    """
    if not isinstance(text, str) or not DATE_RE.match(text):
        raise ConfigError(f"Invalid rates date: {text!r}", "INVALID_RATES")
    try:
        return dt.date.fromisoformat(text)
    except ValueError as e:
        raise ConfigError(f"Invalid rates date: {text!r}", "INVALID_RATES") from e


def _valid_rate(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def build_rate_set(
    base: str,
    rates: Mapping[str, Any],
    date: dt.date | None = None,
    strict: bool = True,
) -> CurrencyRateSet:
    """Validate raw rates and build an immutable rate set.

    Args:
        base: Base currency code (any case)
        rates: Mapping of currency code to rate
        date: Date the rates apply to
        strict: Reject the whole set on any invalid entry; otherwise skip it

    Returns:
        CurrencyRateSet with upper-cased codes

    Raises:
        ConfigError: If the base or any rate is invalid (strict mode)
    """
    if not isinstance(base, str) or not base.strip():
        raise ConfigError("Currency base must be a non-empty code", "INVALID_RATES")
    base_code = base.strip().upper()
    if not isinstance(rates, Mapping):
        raise ConfigError("Currency rates must be an object", "INVALID_RATES")

    cleaned: dict[str, float] = {}
    skipped = 0
    for code, rate in rates.items():
        if not isinstance(code, str) or not code.strip():
            if strict:
                raise ConfigError(f"Invalid currency code: {code!r}", "INVALID_RATES")
            skipped += 1
            continue
        if not _valid_rate(rate):
            if strict:
                raise ConfigError(
                    f"Rate for {code} must be a positive number, got {rate!r}",
                    "INVALID_RATES",
                )
            skipped += 1
            continue
        cleaned[code.strip().upper()] = float(rate)

    if not cleaned:
        raise ConfigError("Currency rates are empty", "INVALID_RATES")
    if skipped:
        logger.debug(f"Skipped {skipped} invalid rate entries")
    cleaned[base_code] = 1.0
    return CurrencyRateSet(base=base_code, rates=cleaned, date=date)


def parse_rates_payload(text: str | bytes, strict: bool = True) -> CurrencyRateSet:
    """Parse a currency API payload.

    The payload is ``{"date": "YYYY-MM-DD", "<base>": {"<code>": rate, ...}}``
    with exactly one base key besides ``date``.

    Raises:
        ConfigError: With code INVALID_RATES for any schema violation
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Rates payload is not valid JSON: {e}", "INVALID_RATES") from e
    if not isinstance(data, dict):
        raise ConfigError("Rates payload must be a JSON object", "INVALID_RATES")
    if "date" not in data:
        raise ConfigError("Rates payload has no date", "INVALID_RATES")
    rate_date = parse_date(data["date"])

    bases = [key for key in data if key != "date"]
    if len(bases) != 1:
        raise ConfigError(
            f"Rates payload must hold exactly one base currency, found {len(bases)}",
            "INVALID_RATES",
        )
    base = bases[0]
    if not isinstance(data[base], dict):
        raise ConfigError(f"Rates for {base} must be an object", "INVALID_RATES")
    return build_rate_set(base, data[base], rate_date, strict=strict)


def is_stale(rate_date: dt.date | None, now: dt.datetime | None = None) -> bool:
    """Return True when rates dated ``rate_date`` are older than the staleness window."""
    if rate_date is None:
        return True
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    issued = dt.datetime.combine(rate_date, dt.time(0, 0), tzinfo=dt.timezone.utc)
    return now - issued > dt.timedelta(hours=STALE_AFTER_HOURS)


# Process-wide status of the last persisted rate set
_status_lock = threading.Lock()
_status: dict[str, Any] = {"loaded": False, "date": None, "last_request": None}


def reset_rate_status() -> None:
    """Forget the cached rate date and request timestamp (reloaded lazily)."""
    with _status_lock:
        _status["loaded"] = False
        _status["date"] = None
        _status["last_request"] = None


def record_rates_date(rate_date: dt.date | None) -> None:
    with _status_lock:
        _status["loaded"] = True
        _status["date"] = rate_date


def _persisted_date() -> dt.date | None:
    from .settings import read_rates_date

    with _status_lock:
        if not _status["loaded"]:
            _status["date"] = read_rates_date()
            _status["loaded"] = True
        return _status["date"]


def get_rates_update_date() -> str | None:
    """Return the date of the last persisted rates as ``YYYY-MM-DD``, or None."""
    rate_date = _persisted_date()
    return rate_date.isoformat() if rate_date else None


def are_rates_stale(now: dt.datetime | None = None) -> RateStatus:
    """Report whether the persisted rates are older than the staleness window.

    Raises:
        ConfigError: If the config file cannot be read
    """
    return RateStatus.STALE if is_stale(_persisted_date(), now) else RateStatus.FRESH


def _claim_request_slot() -> None:
    now = time.monotonic()
    with _status_lock:
        last = _status["last_request"]
        if last is not None and now - last < MIN_REQUEST_INTERVAL:
            wait = MIN_REQUEST_INTERVAL - (now - last)
            raise NetworkError(
                f"Rates were requested {now - last:.0f}s ago; retry in {wait:.0f}s",
                "RATE_LIMITED",
            )
        _status["last_request"] = now


def _get_payload(client: httpx.Client, url: str) -> str:
    response = client.get(url)
    response.raise_for_status()
    return response.text


def fetch_rates(client: httpx.Client | None = None) -> CurrencyRateSet:
    """Download the latest rates, trying the primary URL then the fallback.

    Args:
        client: Optional httpx client (tests inject one with a mock transport)

    Returns:
        The validated rate set

    Raises:
        NetworkError: If both endpoints fail or requests are too frequent
        ConfigError: If a response arrives but its payload is malformed
    """
    _claim_request_slot()
    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=REQUEST_TIMEOUT, follow_redirects=True)

    errors = []
    try:
        for url in (RATES_PRIMARY_URL, RATES_FALLBACK_URL):
            try:
                payload = _get_payload(client, url)
            except httpx.TimeoutException:
                logger.warning(f"Timed out fetching rates from {url}")
                errors.append(f"{url}: timed out")
                continue
            except httpx.HTTPStatusError as e:
                logger.warning(f"Rates endpoint {url} returned {e.response.status_code}")
                errors.append(f"{url}: HTTP {e.response.status_code}")
                continue
            except httpx.HTTPError as e:
                logger.warning(f"Failed to fetch rates from {url}: {e}")
                errors.append(f"{url}: {e}")
                continue
            rate_set = parse_rates_payload(payload, strict=False)
            logger.info(
                f"Fetched {len(rate_set.rates)} rates for {rate_set.date_string} from {url}"
            )
            return rate_set
    finally:
        if owns_client:
            client.close()

    raise NetworkError("Could not fetch currency rates: " + "; ".join(errors))


def update_currency_rates(
    ctx: Context, client: httpx.Client | None = None, path: str | None = None
) -> CurrencyRateSet:
    """Fetch rates, persist them, then install them in ``ctx``.

    Nothing changes unless the fetch, validation and persisting all succeed.
    """
    from .settings import persist_rates

    ctx.ensure_open()
    rate_set = fetch_rates(client)
    try:
        persist_rates(rate_set, path)
    except ConfigError:
        logger.error("Fetched rates could not be persisted", exc_info=True)
        raise
    ctx.replace_rates(rate_set)
    record_rates_date(rate_set.date)
    return rate_set


def set_currency_rates_json(
    ctx: Context, payload: str | bytes, path: str | None = None
) -> CurrencyRateSet:
    """Validate a rates payload and install it in ``ctx``.

    The payload is persisted to the config file as well; a failure to persist
    is logged and does not undo the in-memory swap.
    """
    from .settings import persist_rates

    rate_set = parse_rates_payload(payload)
    ctx.replace_rates(rate_set)
    record_rates_date(rate_set.date)
    try:
        persist_rates(rate_set, path)
    except ConfigError as e:
        logger.warning(f"Could not persist currency rates: {e}")
    return rate_set
