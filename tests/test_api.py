"""Tests for the public API: typed results instead of exceptions."""

import datetime as dt
import json

import httpx

from numby_pkg import api
from numby_pkg.types import EvalResult, OpResult, RatesStatusResult, Value


class TestAPITypedReturns:
    """Every API call returns a result object."""

    def test_evaluate_success(self):
        """A successful evaluation carries value, display and unit."""
        ctx = api.create_context()
        res = api.evaluate(ctx, "2 + 3 * 4")
        assert isinstance(res, EvalResult)
        assert res.ok is True
        assert res.amount == 14
        assert res.formatted == "14"
        assert res.unit == ""
        assert res.error is None

    def test_evaluate_failure(self):
        """Failures come back with an error message and code."""
        ctx = api.create_context()
        res = api.evaluate(ctx, "5 / 0")
        assert res.ok is False
        assert res.code == "DIVISION_BY_ZERO"
        assert res.value is None
        assert "zero" in res.error.lower()

    def test_unit_label(self):
        ctx = api.create_context()
        res = api.evaluate(ctx, "3 km to m")
        assert res.unit == "m"
        assert res.formatted == "3,000 m"
        assert res.to_dict() == {
            "ok": True,
            "value": 3000.0,
            "kind": "unit",
            "formatted": "3,000 m",
            "unit": "m",
        }

    def test_bytes_input(self):
        ctx = api.create_context()
        assert api.evaluate(ctx, "1 + 1".encode("utf-8")).amount == 2
        res = api.evaluate(ctx, b"\xff\xfe")
        assert res.code == "INVALID_ENCODING"

    def test_non_text_input(self):
        ctx = api.create_context()
        assert api.evaluate(ctx, 42).code == "INVALID_INPUT"

    def test_literal_too_large_is_a_failure(self):
        ctx = api.create_context()
        for text in ("1e400", "2 * 1e999", "0x" + "f" * 300):
            res = api.evaluate(ctx, text)
            assert res.ok is False
            assert res.code == "DOMAIN_ERROR"
        assert api.get_history_count(ctx) == 0

    def test_operator_word_is_not_a_variable(self):
        ctx = api.create_context()
        res = api.set_variable(ctx, "plus", 5)
        assert res.ok is False
        assert res.code == "INVALID_NAME"

    def test_no_context(self):
        assert api.evaluate(None, "1 + 1").code == "NO_CONTEXT"
        assert api.set_variable("ctx", "x", 1).code == "NO_CONTEXT"
        assert api.get_history_count(None) == 0

    def test_destroyed_context(self):
        ctx = api.create_context()
        assert api.destroy_context(ctx).ok
        res = api.evaluate(ctx, "1 + 1")
        assert res.ok is False
        assert res.code == "CONTEXT_CLOSED"


class TestSessionState:
    def test_history_counts_successes(self):
        ctx = api.create_context()
        api.evaluate(ctx, "1")
        api.evaluate(ctx, "2 +")
        api.evaluate(ctx, "foo")
        api.evaluate(ctx, "x = 4")
        assert api.get_history_count(ctx) == 2
        assert api.clear_history(ctx).ok
        assert api.get_history_count(ctx) == 0

    def test_set_variable(self):
        ctx = api.create_context()
        res = api.set_variable(ctx, "rent", 1200)
        assert isinstance(res, OpResult) and res.ok
        assert api.evaluate(ctx, "rent / 4").amount == 300
        assert api.get_history_count(ctx) == 1

    def test_set_variable_with_unit(self):
        ctx = api.create_context()
        assert api.set_variable(ctx, "d", 5, "km").ok
        assert api.evaluate(ctx, "d to m").formatted == "5,000 m"

    def test_set_variable_errors(self):
        ctx = api.create_context()
        assert api.set_variable(ctx, "2x", 1).code == "INVALID_NAME"
        assert api.set_variable(ctx, "sum", 1).code == "INVALID_NAME"
        assert api.set_variable(ctx, "x", float("nan")).code == "INVALID_INPUT"
        assert api.set_variable(ctx, "x", 1, "furlongs").code == "INCOMPATIBLE_UNITS"

    def test_clear_variables(self):
        ctx = api.create_context()
        api.set_variable(ctx, "rent", 1200)
        assert api.clear_variables(ctx).ok
        assert api.evaluate(ctx, "rent").code == "UNKNOWN_VARIABLE"

    def test_contexts_are_independent(self):
        first = api.create_context()
        second = api.create_context()
        api.evaluate(first, "x = 1")
        assert api.evaluate(second, "x").code == "UNKNOWN_VARIABLE"
        assert api.get_history_count(second) == 0


class TestLocales:
    def test_set_and_get(self):
        assert api.set_locale("de").ok
        assert api.get_locale() == "de"
        res = api.set_locale("xx")
        assert res.code == "LOCALE_NOT_FOUND"
        assert api.get_locale() == "de"

    def test_locale_changes_formatting(self):
        ctx = api.create_context()
        api.set_locale("de")
        assert api.evaluate(ctx, "1,5 * 1000").formatted == "1.500"

    def test_catalog(self):
        assert api.get_locales_count() == 9
        assert api.list_locales()[1] == {"code": "es", "name": "Español"}
        assert api.get_locale_code(0) == "en-US"
        assert api.get_locale_name(0) == "English"
        assert api.get_locale_code(99) is None
        assert api.get_locale_name(-1) is None


class TestRates:
    def test_set_rates_json(self, rates_payload):
        ctx = api.create_context()
        assert api.set_currency_rates_json(ctx, rates_payload).ok
        assert api.evaluate(ctx, "10 EUR to USD").formatted == "$20.00"
        assert api.get_rates_update_date() == "2024-05-01"

    def test_bad_payload(self):
        ctx = api.create_context()
        res = api.set_currency_rates_json(ctx, '{"date": "2024-05-01"}')
        assert res.code == "INVALID_RATES"
        assert api.get_rates_update_date() is None

    def test_staleness(self, rates_payload):
        ctx = api.create_context()
        status = api.are_rates_stale()
        assert isinstance(status, RatesStatusResult)
        assert status.ok and status.stale and status.date is None

        api.set_currency_rates_json(ctx, rates_payload)
        fresh = api.are_rates_stale(dt.datetime(2024, 5, 1, 12, tzinfo=dt.timezone.utc))
        assert fresh.status == "fresh"
        assert fresh.to_dict() == {"ok": True, "status": "fresh", "date": "2024-05-01"}

    def test_staleness_with_broken_config(self, config_path):
        config_path.write_text("{not json", encoding="utf-8")
        status = api.are_rates_stale()
        assert status.ok is False
        assert status.code == "CONFIG_ERROR"
        assert api.get_rates_update_date() is None

    def test_update_currency_rates(self, rates_payload):
        ctx = api.create_context()
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=rates_payload))
        )
        assert api.update_currency_rates(ctx, client=client).ok
        assert api.evaluate(ctx, "150 JPY to USD").formatted == "$1.00"

    def test_update_failure(self):
        ctx = api.create_context()
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(404))
        )
        res = api.update_currency_rates(ctx, client=client)
        assert res.ok is False
        assert res.code == "NETWORK_ERROR"


class TestConfig:
    def test_load_config(self, config_path):
        config_path.write_text(
            json.dumps({"locale": "fr", "variables": {"rent": 1200}}), encoding="utf-8"
        )
        ctx = api.create_context()
        assert api.load_config(ctx).ok
        assert api.get_locale() == "fr"
        assert api.evaluate(ctx, "rent").formatted == "1 200"

    def test_load_missing_config(self, tmp_path):
        ctx = api.create_context()
        res = api.load_config(ctx, str(tmp_path / "missing.json"))
        assert res.code == "CONFIG_NOT_FOUND"

    def test_default_config_path(self, config_path):
        assert api.get_default_config_path() == str(config_path)


def test_history_value_round_trip():
    ctx = api.create_context()
    api.evaluate(ctx, "$5")
    assert ctx.last_result() == Value.money(5, "USD")
