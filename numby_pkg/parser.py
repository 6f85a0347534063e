"""Input preprocessing, tokenizing and parsing.

This module handles:
- Input sanitization and validation (length, control characters, brackets)
- Normalization of operator words and symbols ("plus", "×", "**", "√")
- Locale-aware number literals and compound unit names
- Telling a percent sign apart from the modulo operator
- A recursive-descent parser producing an immutable expression tree
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Union

from .config import (
    ALLOWED_SYMPY_FUNCTIONS,
    CACHE_MAX_INPUT,
    CACHE_SIZE_PARSE,
    CONTROL_CHARS_RE,
    CONVERSION_KEYWORDS,
    MAX_EXPRESSION_DEPTH,
    MAX_INPUT_LENGTH,
    OPERATOR_SYMBOLS,
    OPERATOR_WORDS,
    PERCENT_KEYWORDS,
    SCALE_SUFFIXES,
    SQRT_UNICODE_REGEX,
)
from .locales import LocaleSetting, current_locale, resolve_locale
from .types import DomainError, InvalidInputError, ParseError
from .units import COMPOUND_ALIASES, CURRENCY_SYMBOLS

NUMBER = "NUMBER"
NAME = "NAME"
SYMBOL = "SYMBOL"
OP = "OP"
LPAREN = "LPAREN"
RPAREN = "RPAREN"
PERCENT = "PERCENT"
PERCENT_WORD = "PERCENT_WORD"

MOD = "mod"

_NAME_RE = re.compile(r"[^\W\d]\w*")
_RADIX_RE = re.compile(r"0[xX][0-9a-fA-F]+|0[bB][01]+|0[oO][0-7]+")
_DECIMAL_RE = re.compile(r"\d+(?:[.,]\d+)*|\.\d+")
_EXPONENT_RE = re.compile(r"[eE][+-]?\d+")
_OPERATORS = {"+", "-", "*", "/", "^"}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int
    value: float | None = None
    word: str | None = None


# Expression tree


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Call:
    func: str
    arg: "Node"


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Percent:
    """Postfix percent: the operand divided by 100."""

    operand: "Node"


@dataclass(frozen=True)
class PercentPhrase:
    """``ratio of base``, ``ratio off base`` or ``ratio on base``."""

    kind: str
    ratio: "Node"
    base: "Node"


Node = Union[Number, Name, Call, UnaryOp, BinaryOp, Percent, PercentPhrase]


def is_balanced(input_str: str) -> tuple[bool, int | None]:
    """Check if parentheses are balanced. Returns (is_balanced, error_position)."""
    stack: list[int] = []
    for i, char in enumerate(input_str):
        if char == "(":
            stack.append(i)
        elif char == ")":
            if not stack:
                return False, i
            stack.pop()
    if stack:
        return False, stack[0]
    return True, None


def preprocess(input_str: str) -> str:
    """Validate and normalize raw input.

    Args:
        input_str: Raw input string from the user

    Returns:
        The normalized string, ready for tokenizing

    Raises:
        InvalidInputError: If the input is empty, too long or holds control characters
        ParseError: If parentheses are unbalanced
    """
    if not isinstance(input_str, str):
        raise InvalidInputError("Input must be text")
    input_str = input_str.strip()
    if not input_str:
        raise InvalidInputError("Input cannot be empty", "EMPTY_INPUT")
    if len(input_str) > MAX_INPUT_LENGTH:
        raise InvalidInputError(
            f"Input too long (>{MAX_INPUT_LENGTH} characters)", "TOO_LONG"
        )
    if CONTROL_CHARS_RE.search(input_str):
        raise InvalidInputError("Input contains control characters")

    balanced, position = is_balanced(input_str)
    if not balanced:
        raise ParseError(f"Unbalanced parenthesis at position {position}")

    for symbol, replacement in OPERATOR_SYMBOLS.items():
        input_str = input_str.replace(symbol, replacement)
    for pattern, replacement in OPERATOR_WORDS:
        input_str = pattern.sub(replacement, input_str)
    input_str = SQRT_UNICODE_REGEX.sub("sqrt ", input_str)
    return input_str.strip()


def _check_groups(raw: str, separator: str) -> None:
    parts = raw.split(separator)
    if not 1 <= len(parts[0]) <= 3 or any(len(part) != 3 for part in parts[1:]):
        raise ParseError(f"Malformed number: {raw}")


def parse_number_literal(raw: str, locale: LocaleSetting) -> float:
    """Convert a digit run with ``.``/``,`` separators to a float.

    With both separators present the last one is the decimal mark. A single
    separator is a decimal mark unless it is the locale's group separator
    followed by exactly three digits. A repeated separator must group digits
    in threes.

    Raises:
        ParseError: If the grouping is malformed
    """
    separators = [char for char in raw if char in ".,"]
    if not separators:
        return float(raw)

    if len(set(separators)) == 2:
        decimal = raw[max(raw.rfind("."), raw.rfind(","))]
        group = "," if decimal == "." else "."
        integer, fraction = raw.rsplit(decimal, 1)
        if group in fraction or decimal in integer:
            raise ParseError(f"Malformed number: {raw}")
        _check_groups(integer, group)
        return float(integer.replace(group, "") + "." + fraction)

    separator = separators[0]
    if len(separators) > 1:
        _check_groups(raw, separator)
        return float(raw.replace(separator, ""))

    head, tail = raw.split(separator)
    if (
        separator != locale.decimal_separator
        and separator == locale.group_separator
        and head
        and len(tail) == 3
    ):
        return float(head + tail)
    return float((head or "0") + "." + tail)


def _compound_aliases(locale: LocaleSetting) -> tuple[tuple[str, str], ...]:
    names = set(COMPOUND_ALIASES)
    names.update(alias for alias in locale.unit_aliases if not alias.isidentifier())
    ordered = sorted(names, key=len, reverse=True)
    return tuple((alias, alias.casefold()) for alias in ordered)


def _match_compound(text: str, pos: int, aliases) -> str | None:
    for alias, folded in aliases:
        end = pos + len(alias)
        if text[pos:end].casefold() != folded:
            continue
        if alias[-1].isalnum() and end < len(text) and (text[end].isalnum() or text[end] == "_"):
            continue
        return text[pos:end]
    return None


def _scan_number(text: str, pos: int, locale: LocaleSetting) -> tuple[float, int]:
    radix = _RADIX_RE.match(text, pos)
    if radix:
        try:
            value = float(int(radix.group(0), 0))
        except OverflowError as e:
            raise DomainError(f"Number too large at position {pos}") from e
        return value, radix.end()

    match = _DECIMAL_RE.match(text, pos)
    value = parse_number_literal(match.group(0), locale)
    end = match.end()

    exponent = _EXPONENT_RE.match(text, end)
    if exponent:
        try:
            value = value * 10.0 ** int(exponent.group(0)[1:])
        except (OverflowError, ValueError) as e:
            raise DomainError(f"Number too large at position {pos}") from e
        end = exponent.end()

    if end < len(text) and text[end] in SCALE_SUFFIXES:
        after = end + 1
        if after >= len(text) or not (text[after].isalnum() or text[after] == "_"):
            value *= SCALE_SUFFIXES[text[end]]
            end = after
    if not math.isfinite(value):
        raise DomainError(f"Number too large at position {pos}")
    return value, end


def _stop_words(locale: LocaleSetting) -> frozenset[str]:
    words = set(CONVERSION_KEYWORDS) | set(PERCENT_KEYWORDS)
    words.update(locale.conversion_keywords)
    words.update(locale.percent_of_keywords)
    return frozenset(word.casefold() for word in words)


def _percent_words(locale: LocaleSetting) -> dict[str, str]:
    words = {word.casefold(): kind for word, kind in PERCENT_KEYWORDS.items()}
    words.update({word.casefold(): "of" for word in locale.percent_of_keywords})
    return words


def _starts_operand(token: Token | None, stop_words: frozenset[str]) -> bool:
    if token is None:
        return False
    if token.kind in (NUMBER, LPAREN, SYMBOL):
        return True
    return token.kind == NAME and token.text.casefold() not in stop_words


def _classify_percent(tokens: list[Token], locale: LocaleSetting) -> list[Token]:
    """Turn each raw ``%`` into a PERCENT token or the modulo operator."""
    stop_words = _stop_words(locale)
    result: list[Token] = []
    for index, token in enumerate(tokens):
        if token.kind != "%":
            result.append(token)
            continue
        previous = result[-1] if result else None
        following = tokens[index + 1] if index + 1 < len(tokens) else None
        if previous is None:
            raise ParseError(f"Unexpected '%' at position {token.pos}")
        if previous.kind in (NUMBER, RPAREN, NAME, PERCENT) and not _starts_operand(
            following, stop_words
        ):
            result.append(Token(PERCENT, "%", token.pos))
        else:
            result.append(Token(OP, MOD, token.pos))
    return result


def _tag_percent_words(tokens: list[Token], locale: LocaleSetting) -> list[Token]:
    """Mark ``of``/``off``/``on`` (and locale forms) right after a percent sign."""
    words = _percent_words(locale)
    result: list[Token] = []
    for token in tokens:
        previous = result[-1] if result else None
        if (
            token.kind == NAME
            and previous is not None
            and previous.kind == PERCENT
            and token.text.casefold() in words
        ):
            token = Token(PERCENT_WORD, token.text, token.pos, word=words[token.text.casefold()])
        result.append(token)
    return result


def tokenize(text: str, locale: LocaleSetting | None = None) -> tuple[Token, ...]:
    """Split preprocessed text into tokens.

    Raises:
        ParseError: On characters or literals that cannot be read
        DomainError: On a number literal too large for a float
    """
    if locale is None:
        locale = current_locale()
    if len(text) > CACHE_MAX_INPUT:
        return _tokenize(text, locale.code)
    return _tokenize_cached(text, locale.code)


def _tokenize(text: str, locale_code: str) -> tuple[Token, ...]:
    locale = resolve_locale(locale_code)
    aliases = _compound_aliases(locale)
    tokens: list[Token] = []
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue
        if char.isdigit() or (char == "." and pos + 1 < length and text[pos + 1].isdigit()):
            value, end = _scan_number(text, pos, locale)
            tokens.append(Token(NUMBER, text[pos:end], pos, value))
            pos = end
            continue
        compound = _match_compound(text, pos, aliases)
        if compound:
            tokens.append(Token(NAME, compound, pos))
            pos += len(compound)
            continue
        name = _NAME_RE.match(text, pos)
        if name:
            if name.group(0).casefold() == MOD:
                tokens.append(Token(OP, MOD, pos))
            else:
                tokens.append(Token(NAME, name.group(0), pos))
            pos = name.end()
            continue
        if char in CURRENCY_SYMBOLS:
            tokens.append(Token(SYMBOL, char, pos))
        elif char in _OPERATORS:
            tokens.append(Token(OP, char, pos))
        elif char == "(":
            tokens.append(Token(LPAREN, char, pos))
        elif char == ")":
            tokens.append(Token(RPAREN, char, pos))
        elif char == "%":
            tokens.append(Token("%", char, pos))
        else:
            raise ParseError(f"Unexpected character {char!r} at position {pos}")
        pos += 1
    return tuple(_tag_percent_words(_classify_percent(tokens, locale), locale))


_tokenize_cached = lru_cache(maxsize=CACHE_SIZE_PARSE)(_tokenize)


class _Parser:
    """Recursive-descent parser over a token sequence.

    Grammar, loosest to tightest::

        expr    := sum (PERCENT_WORD expr)?
        sum     := term (('+' | '-') term)*
        term    := power (('*' | '/' | mod) power)*
        power   := unary ('^' power)?
        unary   := ('-' | '+') unary | postfix
        postfix := primary '%'*
        primary := NUMBER (NAME | SYMBOL)* | SYMBOL NUMBER (NAME)*
                 | FUNC '(' expr ')' | FUNC unary | NAME | '(' expr ')'
    """

    def __init__(self, tokens: tuple[Token, ...] | list[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise ParseError("Nothing to evaluate")
        node = self._expr()
        if self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            raise ParseError(f"Unexpected {token.text!r} at position {token.pos}")
        return node

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise ParseError("Unexpected end of input")
        self.pos += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == OP and token.text in ops

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_EXPRESSION_DEPTH:
            raise ParseError(f"Expression nested too deeply (>{MAX_EXPRESSION_DEPTH})")

    def _expr(self) -> Node:
        node = self._sum()
        token = self._peek()
        if token is None or token.kind != PERCENT_WORD:
            return node
        self._next()
        if self._peek() is None or self._peek().kind == RPAREN:
            raise ParseError(f"Missing value after '{token.text}'")
        self._descend()
        base = self._expr()
        self.depth -= 1
        return PercentPhrase(token.word, node, base)

    def _sum(self) -> Node:
        node = self._term()
        while self._at_op("+", "-"):
            op = self._next().text
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._power()
        while self._at_op("*", "/", MOD):
            op = self._next().text
            node = BinaryOp(op, node, self._power())
        return node

    def _power(self) -> Node:
        base = self._unary()
        if self._at_op("^"):
            self._next()
            self._descend()
            exponent = self._power()
            self.depth -= 1
            return BinaryOp("^", base, exponent)
        return base

    def _unary(self) -> Node:
        if self._at_op("-", "+"):
            op = self._next().text
            self._descend()
            operand = self._unary()
            self.depth -= 1
            return UnaryOp(op, operand)
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while self._peek() is not None and self._peek().kind == PERCENT:
            self._next()
            node = Percent(node)
        return node

    def _attached_names(self, node: Node) -> Node:
        # "5 km", "5 million", "$5 million", "2 sqrt(9)"
        while self._peek() is not None and self._peek().kind in (NAME, SYMBOL):
            node = BinaryOp("*", node, self._name())
        return node

    def _name(self) -> Node:
        token = self._next()
        if token.kind == SYMBOL:
            return Name(token.text)
        if token.text in ALLOWED_SYMPY_FUNCTIONS:
            following = self._peek()
            if following is None or following.kind in (OP, RPAREN, PERCENT) and not (
                following.kind == OP and following.text in ("-", "+")
            ):
                raise ParseError(f"Function {token.text} needs an argument")
            self._descend()
            if following.kind == LPAREN:
                self._next()
                arg = self._expr()
                self._expect_rparen()
            else:
                arg = self._unary()
            self.depth -= 1
            return Call(token.text, arg)
        return Name(token.text)

    def _expect_rparen(self) -> None:
        token = self._peek()
        if token is None or token.kind != RPAREN:
            where = f"position {token.pos}" if token else "end of input"
            raise ParseError(f"Expected ')' at {where}")
        self._next()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise ParseError("Unexpected end of input")
        if token.kind == NUMBER:
            self._next()
            return self._attached_names(Number(token.value))
        if token.kind == SYMBOL:
            self._next()
            following = self._peek()
            if following is not None and following.kind == NUMBER:
                self._next()
                node = BinaryOp("*", Number(following.value), Name(token.text))
                return self._attached_names(node)
            return Name(token.text)
        if token.kind == NAME:
            return self._name()
        if token.kind == LPAREN:
            self._next()
            self._descend()
            node = self._expr()
            self._expect_rparen()
            self.depth -= 1
            return node
        raise ParseError(f"Unexpected {token.text!r} at position {token.pos}")


def parse_tokens(tokens: tuple[Token, ...] | list[Token]) -> Node:
    """Parse a token sequence (or a slice of one) into an expression tree."""
    return _Parser(tokens).parse()


def parse(text: str, locale: LocaleSetting | None = None) -> Node:
    """Preprocess, tokenize and parse one expression.

    Raises:
        InvalidInputError: For empty, oversized or control-character input
        ParseError: If the text is not a well-formed expression
    """
    if locale is None:
        locale = current_locale()
    text = preprocess(text)
    if len(text) > CACHE_MAX_INPUT:
        return parse_tokens(_tokenize(text, locale.code))
    return _parse_cached(text, locale.code)


@lru_cache(maxsize=CACHE_SIZE_PARSE)
def _parse_cached(text: str, locale_code: str) -> Node:
    return parse_tokens(_tokenize_cached(text, locale_code))


def clear_parse_cache() -> None:
    _tokenize_cached.cache_clear()
    _parse_cached.cache_clear()


def keyword_positions(tokens: tuple[Token, ...], keywords) -> list[int]:
    """Indexes of NAME tokens matching any of ``keywords`` (case-insensitive)."""
    folded = {keyword.casefold() for keyword in keywords}
    return [
        index
        for index, token in enumerate(tokens)
        if token.kind == NAME and token.text.casefold() in folded
    ]
