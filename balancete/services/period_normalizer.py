"""
Period normalizer service for balancete analysis.

Handles period label detection for a document and the total ordering of
period labels across documents.
"""
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class Granularity(str, Enum):
    """Period granularity selected by the caller."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @classmethod
    def parse(cls, value: "str | Granularity | None") -> "Granularity":
        """Accept enum values, names and the Portuguese aliases."""
        if isinstance(value, Granularity):
            return value
        key = (value or "").strip().lower()
        aliases = {
            "monthly": cls.MONTHLY,
            "mensal": cls.MONTHLY,
            "quarterly": cls.QUARTERLY,
            "trimestral": cls.QUARTERLY,
            "annual": cls.ANNUAL,
            "anual": cls.ANNUAL,
        }
        if key not in aliases:
            raise ValueError(f"Unknown granularity: {value!r}")
        return aliases[key]


class PeriodKind(Enum):
    """Recognized sub-forms of a period label, in sort order."""

    RAW = 0
    YEAR = 1
    QUARTER = 2
    MONTH = 3


@dataclass(frozen=True)
class Period:
    """A parsed period label."""

    kind: PeriodKind
    year: int
    index: int  # quarter 1-4, month 1-12, 0 otherwise
    label: str

    @property
    def sort_key(self) -> tuple:
        if self.kind is PeriodKind.RAW:
            return (self.kind.value, 0, 0, self.label)
        return (self.kind.value, self.year, self.index, self.label)


class PeriodNormalizer:
    """
    Service for period detection and ordering.

    Features:
    - Detect one period label per document from its text and file name
    - Honor the selected granularity (monthly, quarterly, annual)
    - Parse labels back into (kind, year, index) for chronological ordering
    """

    YEAR_PATTERN = re.compile(r"(?<!\d)(19|20)\d{2}(?!\d)")

    # "PERIODO: 01/01/2024 - 31/03/2024"
    RANGE_PATTERN = re.compile(
        r"PERIODO[:\s]*([0-3]\d)/([01]\d)/(\d{4})\s*[-–]\s*([0-3]\d)/([01]\d)/(\d{4})"
    )

    QUARTER_NAME_PATTERNS = [
        re.compile(r"(?<!\d)([1-4])\s*(?:O|º|°)?\s*TRIM"),
        re.compile(r"(?<![A-Z0-9])T([1-4])(?!\d)"),
    ]

    MONTH_NUMBER_PATTERN = re.compile(r"(?:(?<![A-Z])M(?:ES)?\s*|[_-])([01]\d)(?!\d)")

    MONTH_MAP = {
        "JANEIRO": 1, "JAN": 1,
        "FEVEREIRO": 2, "FEV": 2,
        "MARCO": 3, "MAR": 3,
        "ABRIL": 4, "ABR": 4,
        "MAIO": 5, "MAI": 5,
        "JUNHO": 6, "JUN": 6,
        "JULHO": 7, "JUL": 7,
        "AGOSTO": 8, "AGO": 8,
        "SETEMBRO": 9, "SET": 9,
        "OUTUBRO": 10, "OUT": 10,
        "NOVEMBRO": 11, "NOV": 11,
        "DEZEMBRO": 12, "DEZ": 12,
    }

    MONTH_NAME_PATTERN = re.compile(
        r"(?<![A-Z])("
        + "|".join(sorted(MONTH_MAP, key=len, reverse=True))
        + r")(?![A-Z])"
    )

    QUARTER_LABEL_PATTERN = re.compile(r"^T\s*([1-4])\s*/\s*(\d{4})$", re.IGNORECASE)
    MONTH_LABEL_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
    YEAR_LABEL_PATTERN = re.compile(r"^(\d{4})$")

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_label(
        self,
        file_name: str,
        text: str,
        granularity: Granularity,
        detected_year: Optional[int] = None,
    ) -> str:
        """
        Detect the period label of one document.

        Preference order: explicit date range in the text, then month or
        quarter tokens in the file name, then the detected year, then the
        file name itself.

        Args:
            file_name: Document file name.
            text: Extracted document text.
            granularity: Selected granularity.
            detected_year: Year already known from the document, if any.

        Returns:
            Period label such as "2024-03", "T1/2024", "2024" or a raw string.
        """
        name = _fold(file_name)
        body = _fold(text)
        year = detected_year or self.detect_year(text) or self.detect_year(file_name)

        if granularity is Granularity.ANNUAL:
            return str(year) if year else file_name

        date_range = self._find_range(body)

        if granularity is Granularity.MONTHLY:
            if date_range:
                start_month, start_year, end_month, end_year = date_range
                if (start_month, start_year) == (end_month, end_year):
                    return f"{start_year}-{start_month:02d}"

            month = self.month_from_name(name)
            if month and year:
                return f"{year}-{month:02d}"

            return str(year) if year else file_name

        for pattern in self.QUARTER_NAME_PATTERNS:
            match = pattern.search(name)
            if match and year:
                return f"T{match.group(1)}/{year}"

        if date_range:
            start_month, start_year, end_month, end_year = date_range
            start_quarter = (start_month - 1) // 3 + 1
            end_quarter = (end_month - 1) // 3 + 1
            if start_year == end_year and start_quarter == end_quarter:
                return f"T{start_quarter}/{start_year}"
            return self._range_label(body) or file_name

        return str(year) if year else file_name

    def detect_year(self, text: str) -> Optional[int]:
        """First plausible calendar year in a text."""
        match = self.YEAR_PATTERN.search(text or "")
        return int(match.group(0)) if match else None

    def month_from_name(self, name: str) -> Optional[int]:
        """Month from a (folded, uppercased) file name, by name or number."""
        up = _fold(name)
        match = self.MONTH_NAME_PATTERN.search(up)
        if match:
            return self.MONTH_MAP[match.group(1)]

        match = self.MONTH_NUMBER_PATTERN.search(up)
        if match:
            month = int(match.group(1))
            if 1 <= month <= 12:
                return month
        return None

    def _find_range(self, body: str) -> Optional[tuple]:
        match = self.RANGE_PATTERN.search(body)
        if not match:
            return None
        _, m1, y1, _, m2, y2 = match.groups()
        return int(m1), int(y1), int(m2), int(y2)

    def _range_label(self, body: str) -> Optional[str]:
        match = self.RANGE_PATTERN.search(body)
        if not match:
            return None
        d1, m1, y1, d2, m2, y2 = match.groups()
        return f"{d1}/{m1}/{y1}..{d2}/{m2}/{y2}"

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def parse_label(self, label: str) -> Period:
        """Parse a period label into its kind, year and index."""
        text = (label or "").strip()

        match = self.QUARTER_LABEL_PATTERN.match(text)
        if match:
            return Period(PeriodKind.QUARTER, int(match.group(2)), int(match.group(1)), label)

        match = self.MONTH_LABEL_PATTERN.match(text)
        if match:
            return Period(PeriodKind.MONTH, int(match.group(1)), int(match.group(2)), label)

        match = self.YEAR_LABEL_PATTERN.match(text)
        if match:
            return Period(PeriodKind.YEAR, int(match.group(1)), 0, label)

        return Period(PeriodKind.RAW, 0, 0, label)

    def sort_labels(self, labels: Iterable[str]) -> List[str]:
        """
        Order period labels.

        Unparsed labels sort first (lexicographically), then years, then
        quarters, then months; chronological within each kind. Duplicates
        are collapsed.
        """
        unique = list(dict.fromkeys(labels))
        return sorted(unique, key=lambda label: self.parse_label(label).sort_key)


def _fold(text: str) -> str:
    """Uppercase and strip accents."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.upper()


def get_period_normalizer() -> PeriodNormalizer:
    """Get PeriodNormalizer instance."""
    return PeriodNormalizer()
