"""Numby package: natural-language calculator engine with units, currencies and locales."""

__all__ = [
    "config",
    "types",
    "units",
    "currency",
    "locales",
    "parser",
    "evaluator",
    "formatter",
    "context",
    "settings",
    "agents",
    "api",
    "cli",
    "logging_config",
]

# Public API exports

__api_exports__ = [
    "create_context",
    "destroy_context",
    "evaluate",
    "set_variable",
    "load_config",
    "set_locale",
    "get_locale",
    "list_locales",
    "clear_history",
    "clear_variables",
    "update_currency_rates",
    "set_currency_rates_json",
    "are_rates_stale",
    "get_rates_update_date",
]
