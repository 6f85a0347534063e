"""Tests for config discovery, loading and atomic persistence."""

import json
from pathlib import Path

import pytest

from numby_pkg import settings
from numby_pkg.currency import build_rate_set, get_rates_update_date, parse_date
from numby_pkg.locales import current_locale
from numby_pkg.settings import (
    get_config_path,
    get_default_config_path,
    load_config,
    persist_rates,
    read_config_file,
)
from numby_pkg.types import ConfigError, Value


def write_config(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestConfigPath:
    def test_environment_override(self, config_path):
        assert get_default_config_path() == str(config_path)

    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NUMBY_CONFIG_PATH")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        assert get_default_config_path() == str(tmp_path / "xdg" / "numby" / "config.json")

    def test_home_fallback(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NUMBY_CONFIG_PATH")
        monkeypatch.setenv("HOME", str(tmp_path))
        expected = Path(tmp_path) / ".config" / "numby" / "config.json"
        assert get_default_config_path() == str(expected)

    def test_invalid_path(self):
        with pytest.raises(ConfigError) as exc:
            read_config_file("bad\x00path")
        assert exc.value.code == "INVALID_PATH"


class TestReadConfig:
    def test_missing_file(self, tmp_path):
        assert read_config_file(tmp_path / "none.json") == {}
        with pytest.raises(ConfigError) as exc:
            read_config_file(tmp_path / "none.json", missing_ok=False)
        assert exc.value.code == "CONFIG_NOT_FOUND"

    def test_too_large(self, config_path, monkeypatch):
        write_config(config_path, {"locale": "de"})
        monkeypatch.setattr(settings, "MAX_CONFIG_BYTES", 5)
        with pytest.raises(ConfigError) as exc:
            read_config_file(config_path)
        assert exc.value.code == "CONFIG_TOO_LARGE"

    @pytest.mark.parametrize("content", ["{oops", "[1, 2]", '"text"'])
    def test_not_an_object(self, config_path, content):
        config_path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            read_config_file(config_path)


class TestLoadConfig:
    def test_full_config(self, ctx, config_path):
        write_config(
            config_path,
            {
                "locale": "de",
                "variables": {"rent": 1200, "trip": {"value": 42, "unit": "km"}},
                "currency_base": "USD",
                "currencies": {"EUR": 0.5},
                "api_rates_date": "2024-05-01",
                "rates_updated_at": "2024-05-01T08:00:00+00:00",
            },
        )
        summary = load_config(ctx, config_path)
        assert summary["locale"] == "de"
        assert summary["variables"] == ["rent", "trip"]
        assert current_locale().code == "de"
        assert ctx.get_variable("trip") == Value.quantity(42, "km")
        assert ctx.get_variable("rent") == Value.number(1200)
        assert ctx.rates.rate_for("EUR") == 0.5
        assert get_rates_update_date() == "2024-05-01"
        assert get_config_path() == str(config_path)

    def test_money_variable_uses_config_rates(self, ctx, config_path):
        write_config(
            config_path,
            {"currencies": {"XAU": 0.0005}, "variables": {"gold": {"value": 2, "unit": "XAU"}}},
        )
        load_config(ctx, config_path)
        assert ctx.get_variable("gold") == Value.money(2, "XAU")

    @pytest.mark.parametrize(
        "data",
        [
            {"locale": "de", "variables": {"sum": 1}},
            {"locale": "de", "variables": {"x": "one"}},
            {"locale": "de", "variables": {"x": {"value": 1, "unit": "parsec"}}},
            {"locale": "de", "variables": [1]},
            {"locale": "xx"},
            {"locale": "de", "currencies": {"EUR": -1}},
            {"locale": "de", "api_rates_date": "May 1st"},
            {"locale": "de", "rates_updated_at": 12},
        ],
    )
    def test_invalid_config_changes_nothing(self, ctx, tmp_path, data):
        path = write_config(tmp_path / "other.json", data)
        ctx.set_variable("keep", 1)
        with pytest.raises(ConfigError):
            load_config(ctx, path)
        assert current_locale().code == "en-US"
        assert ctx.variables() == {"keep": Value.number(1)}
        assert ctx.rates is None
        assert get_config_path() == get_default_config_path()

    def test_empty_currencies_are_ignored(self, ctx, config_path):
        write_config(config_path, {"currencies": {}})
        assert load_config(ctx, config_path)["rates"] == 0
        assert ctx.rates is None


class TestPersistRates:
    def test_merges_into_existing_file(self, config_path):
        write_config(config_path, {"locale": "fr", "variables": {"x": 1}})
        persist_rates(build_rate_set("USD", {"EUR": 0.5}, parse_date("2024-05-01")))
        saved = json.loads(config_path.read_text(encoding="utf-8"))
        assert saved["locale"] == "fr"
        assert saved["variables"] == {"x": 1}
        assert saved["currencies"] == {"EUR": 0.5, "USD": 1.0}
        assert saved["api_rates_date"] == "2024-05-01"
        assert "rates_updated_at" in saved
        assert not config_path.with_suffix(".json.tmp").exists()

    def test_creates_missing_directories(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "config.json"
        persist_rates(build_rate_set("USD", {"EUR": 0.5}), target)
        assert json.loads(target.read_text(encoding="utf-8"))["api_rates_date"] is None

    def test_refuses_to_overwrite_broken_file(self, config_path):
        config_path.write_text("{broken", encoding="utf-8")
        with pytest.raises(ConfigError):
            persist_rates(build_rate_set("USD", {"EUR": 0.5}))
        assert config_path.read_text(encoding="utf-8") == "{broken"
