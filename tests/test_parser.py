"""Tests for preprocessing, number literals, tokenizing and the grammar."""

import pytest

from numby_pkg import parser
from numby_pkg.locales import resolve_locale
from numby_pkg.parser import (
    MOD,
    NAME,
    NUMBER,
    OP,
    PERCENT,
    PERCENT_WORD,
    SYMBOL,
    BinaryOp,
    Call,
    Name,
    Number,
    Percent,
    PercentPhrase,
    UnaryOp,
    parse,
    parse_number_literal,
    preprocess,
    tokenize,
)
from numby_pkg.types import DomainError, InvalidInputError, ParseError

EN = resolve_locale("en-US")
DE = resolve_locale("de")
FR = resolve_locale("fr")


def kinds(text, locale=EN):
    return [token.kind for token in tokenize(preprocess(text), locale)]


class TestPreprocess:
    """Validation and normalization of raw input."""

    def test_operator_words_are_normalized(self):
        assert preprocess("  2 plus 3 ") == "2 + 3"
        assert preprocess("6 divided by 3") == "6 / 3"
        assert preprocess("4 TIMES 2") == "4 * 2"

    def test_operator_symbols_are_normalized(self):
        assert preprocess("2 ** 3") == "2 ^ 3"
        assert preprocess("6 ÷ 2 × 3") == "6 / 2 * 3"
        assert preprocess("√16") == "sqrt 16"

    def test_empty_input(self):
        with pytest.raises(InvalidInputError) as exc:
            preprocess("   ")
        assert exc.value.code == "EMPTY_INPUT"

    def test_too_long_input(self):
        with pytest.raises(InvalidInputError) as exc:
            preprocess("1" * 100_001)
        assert exc.value.code == "TOO_LONG"

    def test_control_characters_rejected(self):
        with pytest.raises(InvalidInputError) as exc:
            preprocess("2\x00 + 1")
        assert exc.value.code == "INVALID_INPUT"

    def test_non_text_rejected(self):
        with pytest.raises(InvalidInputError):
            preprocess(42)

    @pytest.mark.parametrize("text", ["(2 + 3", "2 + 3)", ")("])
    def test_unbalanced_parentheses(self, text):
        with pytest.raises(ParseError):
            preprocess(text)


class TestNumberLiterals:
    """Decimal and group separators follow the locale."""

    @pytest.mark.parametrize(
        "raw,locale,expected",
        [
            ("1,234.5", EN, 1234.5),
            ("1.234,5", DE, 1234.5),
            ("1,5", DE, 1.5),
            ("1.500", DE, 1500.0),
            ("1,000", EN, 1000.0),
            ("1.5", EN, 1.5),
            ("1,000,000", EN, 1_000_000.0),
            ("1,25", EN, 1.25),
            ("3,5", FR, 3.5),
        ],
    )
    def test_separators(self, raw, locale, expected):
        assert parse_number_literal(raw, locale) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["1,00,0", "1.2.3", "12,34.5,6"])
    def test_malformed_grouping(self, raw):
        with pytest.raises(ParseError):
            parse_number_literal(raw, EN)

    def test_radix_exponent_and_suffix(self):
        values = [token.value for token in tokenize("0x1F 1e3 5k 2M", EN)]
        assert values == [31.0, 1000.0, 5000.0, 2_000_000.0]

    @pytest.mark.parametrize("text", ["1e400", "2 * 1e999", "0x" + "f" * 300, "9" * 400])
    def test_too_large_for_a_float(self, text):
        with pytest.raises(DomainError):
            tokenize(text, EN)

    def test_tiny_exponent_underflows_to_zero(self):
        assert tokenize("1e-400", EN)[0].value == 0.0

    def test_suffix_not_taken_from_a_word(self):
        tokens = tokenize("5km", EN)
        assert [(token.kind, token.text) for token in tokens] == [(NUMBER, "5"), (NAME, "km")]
        assert tokens[0].value == 5.0


class TestTokenize:
    def test_percent_before_keyword_is_percent(self):
        assert kinds("10% of 50") == [NUMBER, PERCENT, PERCENT_WORD, NUMBER]

    def test_percent_between_operands_is_modulo(self):
        tokens = tokenize(preprocess("10 % 3"), EN)
        assert tokens[1].kind == OP and tokens[1].text == MOD

    def test_mod_word(self):
        tokens = tokenize(preprocess("10 mod 3"), EN)
        assert [token.kind for token in tokens] == [NUMBER, OP, NUMBER]
        assert tokens[1].text == MOD

    def test_mod_word_before_negative_operand(self):
        assert kinds("7 mod -3") == [NUMBER, OP, OP, NUMBER]
        assert kinds("50% MOD 3") == [NUMBER, PERCENT, OP, NUMBER]

    def test_keyword_word_elsewhere_is_a_name(self):
        assert kinds("5 of") == [NUMBER, NAME]

    def test_trailing_percent(self):
        assert kinds("100 + 10%") == [NUMBER, OP, NUMBER, PERCENT]

    def test_locale_percent_keyword(self):
        assert kinds("10% von 50", DE) == [NUMBER, PERCENT, PERCENT_WORD, NUMBER]
        assert tokenize("10% von 50", DE)[2].word == "of"

    def test_compound_units(self):
        tokens = tokenize("60 km/h", EN)
        assert [token.text for token in tokens] == ["60", "km/h"]
        tokens = tokenize("100 °C", EN)
        assert tokens[1].text == "°C"

    def test_currency_symbol(self):
        assert kinds("$5") == [SYMBOL, NUMBER]

    def test_unexpected_character(self):
        with pytest.raises(ParseError):
            tokenize("2 & 3", EN)

    def test_leading_percent(self):
        with pytest.raises(ParseError):
            tokenize("% 3", EN)


class TestGrammar:
    """Precedence and associativity of the expression tree."""

    def test_multiplication_binds_tighter(self):
        assert parse("2 + 3 * 4", EN) == BinaryOp(
            "+", Number(2.0), BinaryOp("*", Number(3.0), Number(4.0))
        )

    def test_power_is_right_associative(self):
        assert parse("2 ^ 3 ^ 2", EN) == BinaryOp(
            "^", Number(2.0), BinaryOp("^", Number(3.0), Number(2.0))
        )

    def test_unary_minus_binds_tighter_than_power(self):
        assert parse("-2 ^ 2", EN) == BinaryOp("^", UnaryOp("-", Number(2.0)), Number(2.0))

    def test_implicit_multiplication_with_unit(self):
        assert parse("5 kg", EN) == BinaryOp("*", Number(5.0), Name("kg"))

    def test_function_call_forms(self):
        assert parse("sqrt(16)", EN) == Call("sqrt", Number(16.0))
        assert parse("√16", EN) == Call("sqrt", Number(16.0))

    def test_function_without_argument(self):
        with pytest.raises(ParseError):
            parse("sqrt", EN)

    def test_percent_node(self):
        assert parse("15%", EN) == Percent(Number(15.0))

    def test_percent_phrase_in_parentheses(self):
        assert parse("(10% of 50) + 1", EN) == BinaryOp(
            "+", PercentPhrase("of", Percent(Number(10.0)), Number(50.0)), Number(1.0)
        )

    def test_percent_phrases_chain_to_the_right(self):
        assert parse("10% of 20% off 50", EN) == PercentPhrase(
            "of", Percent(Number(10.0)), PercentPhrase("off", Percent(Number(20.0)), Number(50.0))
        )

    def test_percent_phrase_needs_a_base(self):
        with pytest.raises(ParseError):
            parse("(10% of)", EN)

    @pytest.mark.parametrize("text", ["2 +", "* 3", "()", "2 3 +"])
    def test_malformed(self, text):
        with pytest.raises(ParseError):
            parse(text, EN)

    def test_nesting_limit(self):
        with pytest.raises(ParseError):
            parse("(" * 150 + "1" + ")" * 150, EN)

    def test_long_flat_chain(self):
        node = parse(" + ".join(["1"] * 5000), EN)
        assert isinstance(node, BinaryOp)

    def test_parse_cache_hits(self):
        parser.clear_parse_cache()
        parse("1 + 2", EN)
        parse("1 + 2", EN)
        assert parser._parse_cached.cache_info().hits >= 1

    def test_long_input_bypasses_the_caches(self):
        parser.clear_parse_cache()
        text = " + ".join(["1"] * 3000)
        parse(text, EN)
        tokenize(text, EN)
        assert parser._parse_cached.cache_info().currsize == 0
        assert parser._tokenize_cached.cache_info().currsize == 0
