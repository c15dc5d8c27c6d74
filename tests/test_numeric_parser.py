"""
Unit tests for NumericParser service.
"""
from decimal import Decimal

import pytest

from balancete.services.numeric_parser import (
    NumericParser,
    ParsedNumber,
    get_numeric_parser,
    round_money,
)


class TestNumericParser:
    """Tests for NumericParser class."""

    @pytest.fixture
    def parser(self) -> NumericParser:
        """Create parser instance."""
        return NumericParser()

    # Standard number tests
    def test_parse_brazilian_amount(self, parser: NumericParser):
        """Test parsing amount with dot thousands and decimal comma."""
        result = parser.parse("1.234,56")
        assert result.value == Decimal("1234.56")
        assert result.is_negative is False

    def test_parse_large_amount(self, parser: NumericParser):
        result = parser.parse("15.196.986,85")
        assert result.value == Decimal("15196986.85")

    def test_parse_small_amount(self, parser: NumericParser):
        assert parser.parse("0,01").value == Decimal("0.01")

    def test_parse_plain_integer(self, parser: NumericParser):
        assert parser.parse("1234").value == Decimal("1234")

    # Negative number tests
    @pytest.mark.parametrize("token", ["(1.234,56)", "-1.234,56", "1.234,56-"])
    def test_parse_negative_markers(self, parser: NumericParser, token: str):
        """Parentheses, leading minus and trailing minus all mean negative."""
        result = parser.parse(token)
        assert result.value == Decimal("-1234.56")
        assert result.is_negative is True
        assert result.raw_value == token

    def test_parse_keeps_raw_text(self, parser: NumericParser):
        """Whitespace, including non-breaking spaces, is normalized in raw_value."""
        result = parser.parse("\u00a01.234,56  ")
        assert result.raw_value == "1.234,56"
        assert result.value == Decimal("1234.56")

    # Invalid input tests
    @pytest.mark.parametrize("token", ["", "   ", "abc", "1.2.3,4,5", "R$ --", None])
    def test_parse_invalid_returns_none(self, parser: NumericParser, token):
        """Malformed tokens never raise; they yield value=None."""
        result = parser.parse(token)
        assert isinstance(result, ParsedNumber)
        assert result.value is None


class TestGluedTokens:
    """Tests for token splitting and discovery."""

    @pytest.fixture
    def parser(self) -> NumericParser:
        """Create parser instance."""
        return NumericParser()

    def test_split_glued_cents(self, parser: NumericParser):
        """Two amounts without a space are split after the cents."""
        assert parser.split_glued_tokens("15.196.986,855.511.188,33") == (
            "15.196.986,85 5.511.188,33"
        )

    def test_split_glued_parenthesis(self, parser: NumericParser):
        assert parser.split_glued_tokens("(1.000,00)2.000,00") == "(1.000,00) 2.000,00"

    def test_split_leaves_clean_line(self, parser: NumericParser):
        line = "11 1.1.01 Caixa 1.200,00 1.000,00"
        assert parser.split_glued_tokens(line) == line

    def test_find_tokens(self, parser: NumericParser):
        """Classifications and codes are not mistaken for amounts."""
        tokens = parser.find_tokens("11 1.1.01 Caixa 1.200,00 (300,00) 50,00-")
        assert tokens == ["1.200,00", "(300,00)", "50,00-"]

    def test_find_tokens_empty(self, parser: NumericParser):
        assert parser.find_tokens("ATIVO") == []
        assert parser.find_tokens(None) == []


class TestMoneyHelpers:
    """Tests for the rounding helper and the singleton."""

    def test_round_money_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")
        assert round_money(Decimal("7")) == Decimal("7.00")

    def test_singleton(self):
        assert get_numeric_parser() is get_numeric_parser()
