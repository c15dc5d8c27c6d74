"""
Ledger line parser.

Turns the extracted text of one balancete into RawAccountRow records. The
parser is a left fold over the document lines: each step takes the current
ParserState and one line and returns the next state plus the rows emitted
for that line. Nothing is kept on the parser instance between documents.
"""
import re
import unicodedata
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import structlog

from balancete.engine.models import AccountGroup, ColumnOrder, MoneyValue, RawAccountRow
from balancete.services.numeric_parser import NumericParser, get_numeric_parser

logger = structlog.get_logger(__name__)

EMPTY_TEXT_WARNING = "Empty text extracted from document."
NO_ROWS_WARNING = "No ledger rows with monetary values were detected in the text."


@dataclass(frozen=True)
class ParserState:
    """Accumulator threaded through the lines of one document."""

    current_group: AccountGroup = AccountGroup.OTHER
    pending_total: Optional[RawAccountRow] = None
    column_order: ColumnOrder = ColumnOrder.CURRENT_PRIOR_DEBIT_CREDIT


@dataclass
class LedgerParseResult:
    """Rows and warnings for one document."""

    rows: List[RawAccountRow] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    state: ParserState = field(default_factory=ParserState)


@dataclass(frozen=True)
class _Label:
    code: Optional[str]
    classification: Optional[str]
    description: Optional[str]


class LedgerLineParser:
    """
    Fold-based parser for balancete text.

    Per line: column-order headers update the layout, section titles switch
    the current group, boilerplate is skipped, and lines with two or more
    monetary tokens become rows. A bare total line seen before any section
    title is held back until the title arrives.
    """

    SECTION_PATTERNS = [
        (AccountGroup.ASSET, re.compile(r"^ATIVO(?:\s|$)")),
        (AccountGroup.LIABILITY, re.compile(r"^PASSIVO(?:\s|$)")),
        (
            AccountGroup.INCOME_STATEMENT,
            re.compile(
                r"^DRE(?:\s|$)"
                r"|D\.R\.E"
                r"|DEMONSTRACAO DO RESULTADO"
                r"|DEMONSTRATIVO DO RESULTADO"
            ),
        ),
    ]

    BOILERPLATE_PREFIXES = ("EMPRESA", "BALANCETE", "C.N.P.J", "CNPJ", "PERIODO", "CONSOLIDADO")

    # "371.1.3.02" -> code 371, classification 1.3.02
    FUSED_CODE_PATTERN = re.compile(r"^(\d{1,6})\.(?=[123](?:\.\d{1,3})+)(.*)$")
    LEADING_CODE_PATTERN = re.compile(r"^(\d{1,6})(?:\s+(.*))?$")
    CLASSIFICATION_START_PATTERN = re.compile(r"^(\d{1,3}(?:\.\d{1,3})+)\s+(.*)$")
    CLASSIFICATION_ANY_PATTERN = re.compile(r"\b(\d{1,3}(?:\.\d{1,3})+)\b")
    GROUP_ROOT_PATTERN = re.compile(r"^[123](?:\.|$)")
    WHITESPACE_PATTERN = re.compile(r"\s+")

    def __init__(self, numeric_parser: Optional[NumericParser] = None):
        self._numbers = numeric_parser or get_numeric_parser()

    def parse(self, text: str) -> LedgerParseResult:
        """
        Parse one document's text into raw account rows.

        Args:
            text: Extracted text, one logical row per line.

        Returns:
            LedgerParseResult with rows in document order.
        """
        if not text or not text.strip():
            return LedgerParseResult(warnings=[EMPTY_TEXT_WARNING])

        state = ParserState()
        rows: List[RawAccountRow] = []

        for raw_line in text.splitlines():
            if not raw_line.strip():
                continue
            state, emitted = self.step(state, raw_line)
            rows.extend(emitted)

        state, emitted = self.finish(state)
        rows.extend(emitted)

        warnings = [] if rows else [NO_ROWS_WARNING]
        logger.debug("Ledger text parsed", rows=len(rows), final_group=state.current_group.value)
        return LedgerParseResult(rows=rows, warnings=warnings, state=state)

    def step(self, state: ParserState, raw_line: str) -> Tuple[ParserState, List[RawAccountRow]]:
        """Consume one line; return the next state and the rows it emits."""
        line = self._numbers.split_glued_tokens(self._clean(raw_line)).strip()
        folded = _fold(line)
        tokens = self._numbers.find_tokens(line)

        order = self.detect_column_order(folded)
        if order is not None:
            return replace(state, column_order=order), []
        if self.is_column_caption(folded):
            return state, []

        section = self.detect_section(folded) if len(tokens) < 2 else None
        if section is not None:
            emitted = []
            if state.pending_total is not None:
                emitted.append(
                    replace(
                        state.pending_total,
                        group=section,
                        description=f"TOTAL {section.title}",
                    )
                )
            return replace(state, current_group=section, pending_total=None), emitted

        if self.is_boilerplate(folded):
            return state, []

        if len(tokens) < 2:
            return state, []

        money = self._map_tokens(tokens, state.column_order)
        label = self._split_label(line[: line.index(tokens[0])])

        if (
            state.current_group is AccountGroup.OTHER
            and label.code
            and not label.classification
            and (not label.description or label.description == label.code)
            and len(tokens) >= 4
        ):
            pending = RawAccountRow(raw_line=line, code=label.code, **money)
            emitted = []
            if state.pending_total is not None:
                logger.debug("Replacing pending total line", previous=state.pending_total.raw_line)
                emitted.append(state.pending_total)
            return replace(state, pending_total=pending), emitted

        if state.current_group is not AccountGroup.OTHER:
            group = state.current_group
        else:
            group = self.infer_group(label.classification)

        row = RawAccountRow(
            raw_line=line,
            group=group,
            code=label.code,
            classification=label.classification,
            description=label.description,
            **money,
        )
        return state, [row]

    def finish(self, state: ParserState) -> Tuple[ParserState, List[RawAccountRow]]:
        """Flush a still-pending total line as an OTHER row."""
        if state.pending_total is None:
            return state, []
        return replace(state, pending_total=None), [state.pending_total]

    # ------------------------------------------------------------------
    # Line classification
    # ------------------------------------------------------------------

    def detect_column_order(self, folded: str) -> Optional[ColumnOrder]:
        """Column layout from a "Saldo Anterior / Debito / Credito / Saldo Atual" header."""
        if not self.is_column_caption(folded):
            return None

        current = folded.find("ATUAL")
        prior = folded.find("ANTERIOR")
        debit = folded.find("DEBITO")
        credit = folded.find("CREDITO")
        if min(current, prior, debit, credit) < 0:
            return None

        if prior < debit < credit < current:
            return ColumnOrder.PRIOR_DEBIT_CREDIT_CURRENT
        if current < prior < debit < credit:
            return ColumnOrder.CURRENT_PRIOR_DEBIT_CREDIT
        return None

    def is_column_caption(self, folded: str) -> bool:
        return "SALDO" in folded and "ANTERIOR" in folded and "ATUAL" in folded

    def detect_section(self, folded: str) -> Optional[AccountGroup]:
        """Section title as a whole leading word; None for anything else."""
        for group, pattern in self.SECTION_PATTERNS:
            if pattern.search(folded):
                return group
        return None

    def is_boilerplate(self, folded: str) -> bool:
        if "CODIGO" in folded and "DESCRI" in folded and "SALDO" in folded:
            return True
        if "PAGINA" in folded:
            return True
        return folded.startswith(self.BOILERPLATE_PREFIXES)

    def infer_group(self, classification: Optional[str]) -> AccountGroup:
        """Group from a plan-of-accounts root; fused code prefixes are not roots."""
        if not classification or not self.GROUP_ROOT_PATTERN.match(classification):
            return AccountGroup.OTHER
        return {
            "1": AccountGroup.ASSET,
            "2": AccountGroup.LIABILITY,
            "3": AccountGroup.INCOME_STATEMENT,
        }[classification[0]]

    # ------------------------------------------------------------------
    # Field extraction
    # ------------------------------------------------------------------

    def _map_tokens(self, tokens: List[str], order: ColumnOrder) -> dict:
        parsed = []
        for token in tokens:
            number = self._numbers.parse(token)
            if number.value is None:
                continue
            parsed.append(MoneyValue(raw_text=number.raw_value, value=number.value))

        tail = parsed[-4:]
        layout_a = order is ColumnOrder.CURRENT_PRIOR_DEBIT_CREDIT

        if len(tail) == 4:
            names = (
                ("current_balance", "prior_balance", "debit", "credit")
                if layout_a
                else ("prior_balance", "debit", "credit", "current_balance")
            )
        elif len(tail) == 3:
            names = ("current_balance", "prior_balance", "debit") if layout_a else ("prior_balance", "debit", "credit")
        elif len(tail) == 2:
            names = ("current_balance", "prior_balance") if layout_a else ("prior_balance", "current_balance")
        else:
            names = ("current_balance",)

        return dict(zip(names, tail))

    def _split_label(self, prefix: str) -> _Label:
        text = self._clean(prefix)

        fused = self.FUSED_CODE_PATTERN.match(text)
        if fused and not (len(fused.group(1)) == 1 and fused.group(1) in "123"):
            text = f"{fused.group(1)} {fused.group(2).strip()}".strip()

        code = None
        rest = text
        leading = self.LEADING_CODE_PATTERN.match(text)
        if leading:
            code = leading.group(1)
            rest = (leading.group(2) or "").strip()

        classification = None
        match = self.CLASSIFICATION_START_PATTERN.match(rest)
        if match:
            classification, rest = match.group(1), match.group(2)
        elif self.CLASSIFICATION_ANY_PATTERN.search(rest):
            classification = self.CLASSIFICATION_ANY_PATTERN.search(rest).group(1)
            rest = rest.replace(classification, "", 1)

        description = self._clean(rest) or None
        return _Label(code=code, classification=classification, description=description)

    def _clean(self, text: str) -> str:
        return self.WHITESPACE_PATTERN.sub(" ", (text or "").replace("\u00a0", " ")).strip()


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).upper()


def get_ledger_parser() -> LedgerLineParser:
    """Get LedgerLineParser instance."""
    return LedgerLineParser()
