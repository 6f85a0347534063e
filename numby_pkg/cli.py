"""Command-line interface: one-shot evaluation, files and an interactive REPL."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from . import api
from .config import DEFAULT_CURRENCY_BASE, NUMERIC_TOLERANCE, VERSION
from .context import Context
from .currency import build_rate_set
from .formatter import compact_number, format_value
from .logging_config import get_logger, setup_logging
from .types import ConfigError, EvalResult

logger = get_logger("cli")

HELP_TEXT = """\
Type an expression and press Enter. Examples:
  2 + 3 * 4            15% of 80           3 km to miles
  x = 12.5             x * 2               $100 in EUR
  sqrt(16) + prev      sum                 average

Commands:
  help      show this message
  history   list previous results
  vars      list variables
  clear     forget history and variables
  locale X  switch the display locale (e.g. locale de)
  quit      leave (also: exit, Ctrl-D)"""


def print_result(res: EvalResult, output_format: str = "human", source: str | None = None) -> None:
    """Print an evaluation result.

    Args:
        res: Result from api.evaluate
        output_format: "json" for JSON output, "human" for human-readable
        source: Input line, echoed in JSON output when given
    """
    if output_format == "json":
        data = res.to_dict()
        if source is not None:
            data["input"] = source
        print(json.dumps(data, ensure_ascii=False))
        return
    if not res.ok:
        print(f"Error: {res.error}")
        return
    print(res.formatted)


def parse_rate_option(text: str) -> tuple[str, float]:
    """Parse a ``CODE:RATE`` command-line override.

    Raises:
        ConfigError: If the option is malformed
    """
    code, sep, rate = text.partition(":")
    code = code.strip().upper()
    if not sep or len(code) != 3 or not code.isalpha():
        raise ConfigError(f"Rate must look like EUR:0.92, got {text!r}", "INVALID_RATES")
    try:
        value = float(rate)
    except ValueError as e:
        raise ConfigError(f"Invalid rate in {text!r}", "INVALID_RATES") from e
    return code, value


def apply_rate_overrides(ctx: Context, options: list[str]) -> None:
    """Merge ``CODE:RATE`` overrides into the context's rates (memory only)."""
    overrides = dict(parse_rate_option(option) for option in options)
    current = ctx.rates
    base = current.base if current else DEFAULT_CURRENCY_BASE
    merged = dict(current.rates) if current else {}
    merged.update(overrides)
    ctx.replace_rates(build_rate_set(base, merged, current.date if current else None))


def _health_check() -> int:
    """Run health check to verify dependencies and basic operations.

    Returns:
        Exit code (0 for success, non-zero for failures)
    """
    checks_passed = 0
    checks_failed = 0

    print("Running Numby health check...")
    print("-" * 50)

    try:
        import sympy as sp

        print(f"[OK] SymPy {sp.__version__} imported successfully")
        checks_passed += 1
    except ImportError as e:
        print(f"[FAIL] SymPy import failed: {e}")
        checks_failed += 1

    try:
        import httpx

        print(f"[OK] httpx {httpx.__version__} imported successfully")
        checks_passed += 1
    except ImportError as e:
        print(f"[FAIL] httpx import failed: {e}")
        checks_failed += 1

    ctx = api.create_context()
    for expression, expected in (("2 + 3 * 4", 14.0), ("1 km to m", 1000.0), ("10% of 50", 5.0)):
        res = api.evaluate(ctx, expression)
        if res.ok and abs(res.amount - expected) < NUMERIC_TOLERANCE:
            print(f"[OK] {expression} = {res.formatted}")
            checks_passed += 1
        else:
            print(f"[FAIL] {expression}: expected {expected}, got {res.formatted or res.error}")
            checks_failed += 1
    api.destroy_context(ctx)

    config_path = api.get_default_config_path()
    print(f"[INFO] Config path: {config_path}")
    print("-" * 50)
    print(f"Health check: {checks_passed} passed, {checks_failed} failed")
    return 0 if checks_failed == 0 else 1


def _print_history(ctx: Context) -> None:
    entries = ctx.history()
    if not entries:
        print("(no history)")
        return
    for entry in entries:
        line = f"{entry.sequence:>4}  {entry.input}  =>  {entry.formatted}"
        if entry.result.is_number and abs(entry.result.amount) >= 1e6:
            line += f"  (~{compact_number(entry.result.amount)})"
        print(line)


def _print_variables(ctx: Context) -> None:
    variables = ctx.variables()
    if not variables:
        print("(no variables)")
        return
    for name, value in sorted(variables.items()):
        print(f"{name} = {format_value(value)}")


def repl_loop(ctx: Context, output_format: str = "human") -> None:
    """Interactive REPL loop."""
    try:
        import readline  # noqa: F401
    except ImportError:
        # readline not available on Windows - that's fine
        pass

    print(f"Numby {VERSION} - type 'help' for commands, 'quit' to exit.")
    while True:
        try:
            line = input(">>> ")
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("\n[Press Ctrl-D or type 'quit' to exit]")
            continue

        line = line.strip()
        if not line:
            continue
        command = line.lower()
        if command in ("quit", "exit"):
            break
        if command == "help":
            print(HELP_TEXT)
        elif command == "history":
            _print_history(ctx)
        elif command == "vars":
            _print_variables(ctx)
        elif command == "clear":
            ctx.clear_history()
            ctx.clear_variables()
            print("History and variables cleared.")
        elif command.startswith("locale "):
            res = api.set_locale(line.split(None, 1)[1])
            print(f"Locale: {api.get_locale()}" if res.ok else f"Error: {res.error}")
        else:
            print_result(api.evaluate(ctx, line), output_format)


def _iter_file_lines(path: str):
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or line.startswith("//"):
                continue
            yield line


def _refresh_stale_rates(ctx: Context) -> None:
    status = api.are_rates_stale()
    if status.ok and not status.stale:
        return
    logger.info("Currency rates are stale, updating")
    res = api.update_currency_rates(ctx)
    if not res.ok:
        logger.warning(f"Using cached rates: {res.error}")


def main_entry(argv: list[str] | None = None) -> int:
    """
    Main entry point for the Numby CLI.

    Args:
        argv: Optional command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = argparse.ArgumentParser(
        prog="numby", description="Numby - a natural language calculator"
    )
    parser.add_argument("expression", nargs="?", help="Expression to evaluate")
    parser.add_argument(
        "-e",
        "--eval",
        type=str,
        help="Evaluate one expression and exit (non-interactive)",
        dest="eval_expr",
    )
    parser.add_argument("-f", "--file", type=str, help="Evaluate every line of a file")
    parser.add_argument(
        "--format",
        type=str,
        choices=["json", "human"],
        default="human",
        help="Output format: json (machine-readable) or human (human-readable)",
    )
    parser.add_argument("--locale", type=str, help="Locale to use (e.g. en-US, de, zh-CN)")
    parser.add_argument("--config", type=str, help="Config file to load")
    parser.add_argument(
        "-r",
        "--rate",
        action="append",
        default=[],
        metavar="CODE:RATE",
        help="Override a currency rate against the base (repeatable)",
    )
    parser.add_argument(
        "--update-rates", action="store_true", help="Fetch the latest currency rates"
    )
    parser.add_argument(
        "--no-update",
        action="store_true",
        help="Skip the automatic rate refresh when starting the REPL",
    )
    parser.add_argument(
        "--list-locales", action="store_true", help="List available locales and exit"
    )
    parser.add_argument(
        "-v", "--version", action="store_true", help="Show program version"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (default: $NUMBY_LOG_LEVEL or WARNING)",
    )
    parser.add_argument("--log-file", type=str, help="Write logs to file")
    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check and verify dependencies",
    )
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)

    if args.version:
        print(VERSION)
        return 0
    if args.health_check:
        return _health_check()
    if args.list_locales:
        if args.format == "json":
            print(json.dumps(api.list_locales(), ensure_ascii=False))
        else:
            for entry in api.list_locales():
                print(f"{entry['code']:<6} {entry['name']}")
        return 0

    ctx = api.create_context()
    if args.config:
        res = api.load_config(ctx, args.config)
        if not res.ok:
            print(f"Error: {res.error}", file=sys.stderr)
            return 1
    elif Path(api.get_default_config_path()).exists():
        res = api.load_config(ctx)
        if not res.ok:
            print(f"Warning: {res.error}", file=sys.stderr)

    if args.locale:
        res = api.set_locale(args.locale)
        if not res.ok:
            print(f"Error: {res.error}", file=sys.stderr)
            return 2

    if args.rate:
        try:
            apply_rate_overrides(ctx, args.rate)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    if args.update_rates:
        print("Updating currency rates...", file=sys.stderr)
        res = api.update_currency_rates(ctx)
        if res.ok:
            print(
                f"Currency rates updated ({api.get_rates_update_date()})", file=sys.stderr
            )
        else:
            print(f"Failed to update currency rates: {res.error}", file=sys.stderr)
            if not (args.eval_expr or args.expression or args.file):
                return 1

    if not args.file and args.expression and args.expression.endswith(".numby"):
        if Path(args.expression).is_file():
            args.file, args.expression = args.expression, None

    expression = args.eval_expr or args.expression
    if expression:
        res = api.evaluate(ctx, expression)
        print_result(res, args.format)
        return 0 if res.ok else 1

    if args.file:
        try:
            lines = list(_iter_file_lines(args.file))
        except OSError as e:
            print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
            return 1
        failures = 0
        for line in lines:
            res = api.evaluate(ctx, line)
            failures += 0 if res.ok else 1
            if args.format == "json":
                print_result(res, "json", source=line)
            else:
                shown = res.formatted if res.ok else f"Error: {res.error}"
                print(f"{line}  =>  {shown}")
        return 0 if failures == 0 else 1

    if args.update_rates:
        return 0

    if not args.no_update and sys.stdin.isatty():
        _refresh_stale_rates(ctx)
    repl_loop(ctx, args.format)
    return 0


if __name__ == "__main__":
    sys.exit(main_entry())
