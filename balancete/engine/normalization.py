"""
Classification normalizer.

Canonicalizes plan-of-accounts codes into dotted form rooted at 1, 2 or 3 and
turns the RawAccountRows of one document into NormalizedRows for its period.
"""
import re
import unicodedata
from typing import Iterable, List, Optional

import structlog

from balancete.engine.models import AccountGroup, NormalizedRow, RawAccountRow

logger = structlog.get_logger(__name__)


class ClassificationNormalizer:
    """
    Normalizer for classification codes and row groups.

    Transformations, first match wins:
    - already dotted ("3.1.1.01") passes through
    - "311.01" becomes "3.1.1.01"
    - "3111" becomes "3.1.1.1"
    - anything else passes through unchanged
    """

    DOTTED_PATTERN = re.compile(r"^[1-3]\.\d")
    FUSED_DECIMAL_PATTERN = re.compile(r"^([1-3])(\d)(\d)\.(\d+)$")
    FUSED_DIGITS_PATTERN = re.compile(r"^([1-3])(\d)(\d)(\d)$")
    ROOT_PATTERN = re.compile(r"^([123])(?:\.|$)")

    ROOT_GROUPS = {
        "1": AccountGroup.ASSET,
        "2": AccountGroup.LIABILITY,
        "3": AccountGroup.INCOME_STATEMENT,
    }

    DESCRIPTION_GROUPS = {
        "ATIVO": AccountGroup.ASSET,
        "TOTAL ATIVO": AccountGroup.ASSET,
        "ATIVO TOTAL": AccountGroup.ASSET,
        "PASSIVO": AccountGroup.LIABILITY,
        "TOTAL PASSIVO": AccountGroup.LIABILITY,
        "PASSIVO TOTAL": AccountGroup.LIABILITY,
        "DRE": AccountGroup.INCOME_STATEMENT,
    }

    def normalize(self, classification: Optional[str]) -> Optional[str]:
        """Canonical dotted form; None for empty input."""
        raw = (classification or "").strip()
        if not raw:
            return None

        if self.DOTTED_PATTERN.match(raw):
            return raw

        for pattern in (self.FUSED_DECIMAL_PATTERN, self.FUSED_DIGITS_PATTERN):
            match = pattern.match(raw)
            if match:
                return ".".join(match.groups())

        return raw

    def infer_group(self, classification: Optional[str]) -> AccountGroup:
        """Group from the classification root digit, OTHER when there is none."""
        match = self.ROOT_PATTERN.match(classification or "")
        if not match:
            return AccountGroup.OTHER
        return self.ROOT_GROUPS[match.group(1)]

    def group_from_description(self, description: Optional[str]) -> AccountGroup:
        """Group for rows whose description is a section title."""
        text = normalize_text(description)
        if not text:
            return AccountGroup.OTHER
        if text in self.DESCRIPTION_GROUPS:
            return self.DESCRIPTION_GROUPS[text]
        if "RESULTADO" in text or "DEMONSTRACAO" in text:
            return AccountGroup.INCOME_STATEMENT
        return AccountGroup.OTHER

    def normalize_row(self, row: RawAccountRow, period: str, year: Optional[int] = None) -> NormalizedRow:
        """Build the NormalizedRow for one raw row; the raw row is kept as source."""
        classification = self.normalize(row.classification)

        group = row.group
        if group is AccountGroup.OTHER:
            group = self.infer_group(classification)
        if group is AccountGroup.OTHER:
            group = self.group_from_description(row.description)

        return NormalizedRow(
            period=period,
            year=year,
            raw_line=row.raw_line,
            group=group,
            code=row.code,
            classification=classification,
            description=(row.description or "").strip() or None,
            current_balance=row.current_balance,
            prior_balance=row.prior_balance,
            debit=row.debit,
            credit=row.credit,
            source=row,
        )

    def normalize_rows(
        self,
        rows: Iterable[RawAccountRow],
        period: str,
        year: Optional[int] = None,
    ) -> List[NormalizedRow]:
        """
        Normalize every row of one document.

        Args:
            rows: Raw rows from the line parser.
            period: Non-empty period label of the document.
            year: Detected year, if any.

        Returns:
            One NormalizedRow per input row, in order.
        """
        label = (period or "").strip()
        normalized = [self.normalize_row(row, label, year) for row in rows]
        logger.debug("Rows normalized", period=label, rows=len(normalized))
        return normalized


def normalize_text(value: Optional[str]) -> str:
    """Uppercase, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.upper().split())


def classification_root(classification: Optional[str]) -> Optional[str]:
    """Root digit of a canonical classification, or None."""
    match = ClassificationNormalizer.ROOT_PATTERN.match(classification or "")
    return match.group(1) if match else None


# Singleton instance
_normalizer_instance: Optional[ClassificationNormalizer] = None


def get_classification_normalizer() -> ClassificationNormalizer:
    """Get singleton ClassificationNormalizer instance."""
    global _normalizer_instance
    if _normalizer_instance is None:
        _normalizer_instance = ClassificationNormalizer()
    return _normalizer_instance
