"""Shared fixtures: every test gets its own config file, locale and rate status."""

import json

import pytest

from numby_pkg import currency, locales, parser, settings
from numby_pkg.context import Context

SAMPLE_RATES = {
    "date": "2024-05-01",
    "usd": {"eur": 0.5, "gbp": 0.25, "jpy": 150},
}


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    monkeypatch.setenv("NUMBY_CONFIG_PATH", str(tmp_path / "config.json"))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    settings.reset_config_path()
    currency.reset_rate_status()
    locales.set_locale("en-US")
    yield
    settings.reset_config_path()
    currency.reset_rate_status()
    locales.reset_locale()
    parser.clear_parse_cache()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


@pytest.fixture
def ctx():
    context = Context()
    yield context
    context.close()


@pytest.fixture
def rates_payload():
    return json.dumps(SAMPLE_RATES)


@pytest.fixture
def rated_ctx(ctx):
    ctx.replace_rates(currency.parse_rates_payload(json.dumps(SAMPLE_RATES)))
    return ctx
