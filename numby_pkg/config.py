"""Centralized configuration for Numby.

This module defines:
- Input validation limits (length, config file size)
- History retention and cache sizes
- Output precision for the formatter
- Currency rate endpoints, timeouts and staleness window
- Allowed SymPy functions and constants
- Regex patterns and keyword tables shared by the parser and agents

Configuration can be overridden via:
- CLI flags (see cli.py)
- Environment variables (prefixed with NUMBY_)
"""

import os
import re

import sympy as sp

try:
    import importlib.metadata

    VERSION = importlib.metadata.version("numby")
except Exception:
    # Fallback if package not installed
    VERSION = "0.9.0"

# Input validation limits
MAX_INPUT_LENGTH = int(os.getenv("NUMBY_MAX_INPUT_LENGTH", "100000"))  # characters
MAX_CONFIG_BYTES = int(os.getenv("NUMBY_MAX_CONFIG_BYTES", "1048576"))  # 1 MB
MAX_PATH_LENGTH = 4096
MAX_EXPRESSION_DEPTH = int(
    os.getenv("NUMBY_MAX_EXPRESSION_DEPTH", "100")
)  # nesting of parentheses and unary operators

# Session limits
HISTORY_LIMIT = int(os.getenv("NUMBY_HISTORY_LIMIT", "1000"))  # entries per context

# Cache configuration
CACHE_SIZE_PARSE = int(os.getenv("NUMBY_CACHE_SIZE_PARSE", "1024"))
CACHE_MAX_INPUT = int(os.getenv("NUMBY_CACHE_MAX_INPUT", "4096"))  # longer inputs bypass the cache

# Formatting
OUTPUT_PRECISION = int(os.getenv("NUMBY_OUTPUT_PRECISION", "12"))  # significant digits
CURRENCY_DECIMALS = 2
SCIENTIFIC_UPPER = 1e15
SCIENTIFIC_LOWER = 1e-6

# Numeric tolerance used when comparing converted amounts
NUMERIC_TOLERANCE = float(os.getenv("NUMBY_NUMERIC_TOLERANCE", "1e-9"))

# Currency rates
DEFAULT_CURRENCY_BASE = "USD"
RATES_PRIMARY_URL = os.getenv(
    "NUMBY_RATES_PRIMARY_URL",
    "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.min.json",
)
RATES_FALLBACK_URL = os.getenv(
    "NUMBY_RATES_FALLBACK_URL",
    "https://latest.currency-api.pages.dev/v1/currencies/usd.min.json",
)
REQUEST_TIMEOUT = float(os.getenv("NUMBY_REQUEST_TIMEOUT", "5"))  # seconds
MIN_REQUEST_INTERVAL = float(
    os.getenv("NUMBY_MIN_REQUEST_INTERVAL", "60")
)  # seconds between two fetches
STALE_AFTER_HOURS = int(os.getenv("NUMBY_STALE_AFTER_HOURS", "24"))

# Default locale (falls back to LANG, then en-US)
DEFAULT_LOCALE = os.getenv("NUMBY_LOCALE", "")

# Functions callable from expressions. Each receives a SymPy number.
ALLOWED_SYMPY_FUNCTIONS = {
    "sqrt": sp.sqrt,
    "cbrt": lambda x: sp.real_root(x, 3),
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "arcsin": sp.asin,  # alias
    "arccos": sp.acos,  # alias
    "arctan": sp.atan,  # alias
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "ln": sp.log,
    "log": lambda x: sp.log(x, 10),
    "log2": lambda x: sp.log(x, 2),
    "exp": sp.exp,
    "abs": sp.Abs,
    "round": lambda x: sp.sign(x) * sp.floor(sp.Abs(x) + sp.Rational(1, 2)),
    "ceil": sp.ceiling,
    "floor": sp.floor,
}

# Functions that accept any unit and return the same unit
UNIT_PRESERVING_FUNCTIONS = {"abs", "round", "ceil", "floor"}
TRIGONOMETRIC_FUNCTIONS = {"sin", "cos", "tan"}

ALLOWED_SYMPY_CONSTANTS = {
    "pi": sp.pi,
    "π": sp.pi,
    "e": sp.E,
    "tau": 2 * sp.pi,
}

SCALE_WORDS = {
    "thousand": 1e3,
    "million": 1e6,
    "billion": 1e9,
    "trillion": 1e12,
}

# Suffix letters directly attached to a number literal ("5k", "2M")
SCALE_SUFFIXES = {
    "k": 1e3,
    "M": 1e6,
    "G": 1e9,
    "T": 1e12,
}

# History keywords understood by the history agent and the evaluator
HISTORY_LAST_KEYWORDS = ("prev", "ans", "last")
HISTORY_SUM_KEYWORDS = ("sum", "total")
HISTORY_AVERAGE_KEYWORDS = ("average", "avg", "mean")
HISTORY_KEYWORDS = (
    HISTORY_LAST_KEYWORDS + HISTORY_SUM_KEYWORDS + HISTORY_AVERAGE_KEYWORDS
)

CONVERSION_KEYWORDS = ("to", "in", "into", "as")
PERCENT_KEYWORDS = {"of": "of", "off": "off", "on": "on"}

# Words rewritten to operators; never usable as variable names
OPERATOR_KEYWORDS = ("plus", "minus", "times", "mod")

# Operator words and symbols normalized before tokenizing
OPERATOR_WORDS = (
    (re.compile(r"\bmultiplied\s+by\b", re.IGNORECASE), "*"),
    (re.compile(r"\bdivided\s+by\b", re.IGNORECASE), "/"),
    (re.compile(r"\bdivide\s+by\b", re.IGNORECASE), "/"),
    (re.compile(r"\bplus\b", re.IGNORECASE), "+"),
    (re.compile(r"\bminus\b", re.IGNORECASE), "-"),
    (re.compile(r"\btimes\b", re.IGNORECASE), "*"),
)
OPERATOR_SYMBOLS = {
    "×": "*",
    "·": "*",
    "÷": "/",
    "−": "-",
    "–": "-",
    "**": "^",
}

VAR_NAME_RE = re.compile(r"^[^\W\d]\w*$")
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
ASSIGNMENT_RE = re.compile(r"^\s*(?P<name>[^=<>!]+?)\s*=(?!=)\s*(?P<expr>.+)$", re.DOTALL)
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SQRT_UNICODE_REGEX = re.compile(r"√\s*")
