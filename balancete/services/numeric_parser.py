"""
Numeric parser service for ledger monetary values.

Handles Brazilian-locale amounts as printed in balancetes:
- Thousands separator ".", decimal comma: 1.234,56
- Negative: (1.234,56), -1.234,56, 1.234,56-
- Tokens glued together by the text extractor: 15.196.986,855.511.188,33
"""
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional

import structlog

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ParsedNumber:
    """Result of parsing a monetary token."""

    value: Optional[Decimal]
    raw_value: str
    is_negative: bool = False


class NumericParser:
    """
    Parser for ledger monetary tokens.

    Never raises for malformed input: a token that does not reduce to a
    finite number yields a ParsedNumber whose value is None.
    """

    # One amount: digit groups, two-digit cents, optional sign markers
    MONEY_TOKEN_PATTERN = re.compile(r"\(?-?\d{1,3}(?:\.\d{3})*,\d{2}\)?-?")

    # Cents or closing parenthesis immediately followed by another digit
    GLUED_CENTS_PATTERN = re.compile(r"(,\d{2})(?=\d)")
    GLUED_PAREN_PATTERN = re.compile(r"(\))(?=\d)")

    CLEAN_NUMBER_PATTERN = re.compile(r"^\d+(?:\.\d+)?$")
    WHITESPACE_PATTERN = re.compile(r"\s+")

    def parse(self, token: str) -> ParsedNumber:
        """
        Parse one monetary token into a signed Decimal.

        Args:
            token: Text such as "1.234,56", "(1.234,56)" or "1.234,56-".

        Returns:
            ParsedNumber with the signed value, or value=None.
        """
        raw = self.WHITESPACE_PATTERN.sub(" ", (token or "").replace("\u00a0", " ")).strip()
        if not raw:
            return ParsedNumber(value=None, raw_value=raw)

        # Markers never contradict each other; any of them means negative
        is_negative = (
            (raw.startswith("(") and raw.endswith(")"))
            or raw.endswith("-")
            or raw.startswith("-")
        )

        digits = raw.replace("(", "").replace(")", "").replace("-", "").strip()
        cleaned = digits.replace(".", "").replace(",", ".")

        if not self.CLEAN_NUMBER_PATTERN.match(cleaned):
            logger.debug("Unparseable money token", token=raw)
            return ParsedNumber(value=None, raw_value=raw)

        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            logger.debug("Unparseable money token", token=raw)
            return ParsedNumber(value=None, raw_value=raw)

        if not value.is_finite():
            return ParsedNumber(value=None, raw_value=raw)

        return ParsedNumber(
            value=-value if is_negative else value,
            raw_value=raw,
            is_negative=is_negative,
        )

    def split_glued_tokens(self, line: str) -> str:
        """
        Insert a space between monetary tokens rendered without one.

        "15.196.986,855.511.188,33" -> "15.196.986,85 5.511.188,33"
        """
        line = self.GLUED_CENTS_PATTERN.sub(r"\1 ", line or "")
        line = self.GLUED_PAREN_PATTERN.sub(r"\1 ", line)
        return self.WHITESPACE_PATTERN.sub(" ", line)

    def find_tokens(self, line: str) -> List[str]:
        """Return every monetary token in a line, left to right."""
        return self.MONEY_TOKEN_PATTERN.findall(line or "")


# Singleton instance
_parser_instance: Optional[NumericParser] = None


def get_numeric_parser() -> NumericParser:
    """Get singleton NumericParser instance."""
    global _parser_instance
    if _parser_instance is None:
        _parser_instance = NumericParser()
    return _parser_instance
