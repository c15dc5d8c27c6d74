"""
Total reconciliator.

Picks the single best total-assets and total-liabilities row of each period
and undoes the magnitude corruption the text extractor is known to produce:
a stray leading digit glued onto a total, or a digit fused into it. All bands
and thresholds come from HeuristicSettings.
"""
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from balancete.config import HeuristicSettings, get_settings
from balancete.engine.models import (
    AccountGroup,
    BalanceTotals,
    BalanceTotalsResult,
    MoneyColumn,
    NormalizedRow,
)
from balancete.engine.normalization import normalize_text
from balancete.services.numeric_parser import round_money

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)

ASSET_TITLES = frozenset({"ATIVO", "TOTAL ATIVO", "ATIVO TOTAL", "TOTAL DO ATIVO"})
LIABILITY_TITLES = frozenset({"PASSIVO", "TOTAL PASSIVO", "PASSIVO TOTAL", "TOTAL DO PASSIVO"})
EQUITY_PATTERN = re.compile(r"\bPL\b|PATRIM")


@dataclass(frozen=True)
class TotalCandidate:
    """A candidate total row with its raw and corrected current balance."""

    row: NormalizedRow
    raw: Decimal
    corrected: Decimal


def group_rows_by_period(rows: Iterable[NormalizedRow]) -> Dict[str, List[NormalizedRow]]:
    """Rows grouped by period label, in first-appearance order."""
    grouped: Dict[str, List[NormalizedRow]] = {}
    for row in rows:
        if not row.period:
            continue
        grouped.setdefault(row.period, []).append(row)
    return grouped


class TotalReconciliator:
    """
    Reconciliator for balance-sheet totals.

    Candidate pool, in descending preference:
    1. rows whose description is a total title ("TOTAL ATIVO", "PASSIVO E PL", ...)
    2. rows whose classification is the bare root ("1" / "2")
    3. rows with no classification whose description is the bare root digit
    4. liabilities only: rows already tagged LIABILITY
    """

    def __init__(self, heuristics: Optional[HeuristicSettings] = None):
        self.heuristics = heuristics or get_settings().heuristics

    # ------------------------------------------------------------------
    # Magnitude correction
    # ------------------------------------------------------------------

    def correct_assets(self, value: Decimal) -> Decimal:
        """Remove a stray leading "1" glued onto an assets total."""
        h = self.heuristics
        if value == ZERO:
            return ZERO

        magnitude = abs(value)
        if h.assets_glue_low <= magnitude < h.assets_glue_high:
            fixed = magnitude - h.assets_glue_offset
            if fixed > ZERO:
                return fixed.copy_sign(value)
        return value

    def correct_liabilities(self, value: Decimal, assets_total: Decimal = ZERO) -> Decimal:
        """
        Undo glue corruption on a liabilities total.

        Returns zero when the value is implausible relative to the assets
        total (or to an absolute ceiling when assets are unknown).
        """
        h = self.heuristics
        if value == ZERO:
            return ZERO

        magnitude = abs(value)
        assets = abs(assets_total or ZERO)

        if h.liabilities_shift_low <= magnitude < h.liabilities_shift_high:
            fixed = magnitude / h.liabilities_shift_divisor
            if not assets or (
                assets * h.plausibility_min_ratio < fixed < assets * h.plausibility_max_ratio
            ):
                return fixed.copy_sign(value)

        if assets > ZERO:
            if magnitude > max(assets * h.implausible_assets_multiplier, h.implausible_floor):
                return ZERO
        elif magnitude > h.implausible_ceiling_without_assets:
            return ZERO

        bands = (
            (h.liabilities_glue_high_low, h.liabilities_glue_high_high, h.liabilities_glue_high_offset),
            (h.liabilities_glue_low_low, h.liabilities_glue_low_high, h.liabilities_glue_low_offset),
        )
        for low, high, offset in bands:
            if low <= magnitude < high:
                fixed = magnitude - offset
                if fixed > ZERO:
                    return fixed.copy_sign(value)

        return value

    # ------------------------------------------------------------------
    # Candidate selection
    # ------------------------------------------------------------------

    def candidates(
        self,
        rows: List[NormalizedRow],
        group: AccountGroup,
        assets_total: Decimal = ZERO,
    ) -> List[TotalCandidate]:
        """Viable candidates for one group, in preference order."""
        pools = [
            [r for r in rows if self._is_title_row(r, group)],
            [r for r in rows if self._bare_classification(r) == group.root],
            [r for r in rows if self._is_bare_digit_row(r, group)],
        ]
        if group is AccountGroup.LIABILITY:
            pools.append([r for r in rows if r.group is AccountGroup.LIABILITY])

        seen = set()
        result = []
        for pool in pools:
            for row in pool:
                if id(row) in seen:
                    continue
                seen.add(id(row))
                raw = row.amount(MoneyColumn.CURRENT_BALANCE)
                corrected = self._correct(group, raw, assets_total)
                if corrected != ZERO:
                    result.append(TotalCandidate(row=row, raw=raw, corrected=corrected))
        return result

    def pick(
        self,
        rows: List[NormalizedRow],
        group: AccountGroup,
        assets_total: Decimal = ZERO,
    ) -> Optional[TotalCandidate]:
        """
        Choose the total row of one group.

        With a known assets total, the liabilities candidate closest to it is
        taken when its relative error is below max_relative_error; otherwise
        candidates are ranked by score.
        """
        h = self.heuristics
        pool = self.candidates(rows, group, assets_total)
        if not pool:
            return None

        assets = abs(assets_total or ZERO)
        if group is AccountGroup.LIABILITY and assets > ZERO:
            cap = max(assets * h.liabilities_candidate_cap_ratio, h.liabilities_candidate_cap_floor)
            capped = [c for c in pool if abs(c.corrected) <= cap]
            pool = capped or pool

            best = min(pool, key=lambda c: abs(abs(c.corrected) - assets) / assets)
            rel_err = abs(abs(best.corrected) - assets) / assets
            if rel_err < h.max_relative_error:
                return best

        return sorted(pool, key=lambda c: self._score(c, group), reverse=True)[0]

    def _score(self, candidate: TotalCandidate, group: AccountGroup) -> Decimal:
        score = ZERO
        if normalize_text(candidate.row.description) in _titles(group):
            score += 1000
        if self._bare_classification(candidate.row) == group.root:
            score += 200
        if self._is_bare_digit_row(candidate.row, group):
            score += 50
        score += min(Decimal(100), (abs(candidate.corrected) + 1).log10() * 10)
        return score

    def _correct(self, group: AccountGroup, value: Decimal, assets_total: Decimal) -> Decimal:
        if group is AccountGroup.ASSET:
            return self.correct_assets(value)
        return self.correct_liabilities(value, assets_total)

    def _is_title_row(self, row: NormalizedRow, group: AccountGroup) -> bool:
        text = normalize_text(row.description)
        if not text:
            return False
        if text in _titles(group):
            return True
        return (
            group is AccountGroup.LIABILITY
            and "PASSIVO" in text
            and bool(EQUITY_PATTERN.search(text))
        )

    def _bare_classification(self, row: NormalizedRow) -> str:
        return (row.classification or "").strip().rstrip(".")

    def _is_bare_digit_row(self, row: NormalizedRow, group: AccountGroup) -> bool:
        if self._bare_classification(row):
            return False
        digit = group.root
        description = (row.description or "").strip()
        if description:
            return description in (digit, f"{digit}.")
        return (row.code or "").strip() == digit

    # ------------------------------------------------------------------
    # Per period
    # ------------------------------------------------------------------

    def reconcile(
        self,
        rows: Iterable[NormalizedRow],
        periods: Optional[Sequence[str]] = None,
    ) -> BalanceTotalsResult:
        """
        Reconcile assets and liabilities totals for every period.

        Args:
            rows: The full normalized row set of one analysis.
            periods: Ordered period labels to reconcile; a period without
                rows gets zero totals. Defaults to the periods of the rows.

        Returns:
            BalanceTotalsResult; a total that could not be found is zero and
            produces a warning naming the period and group.
        """
        result = BalanceTotalsResult()
        grouped = group_rows_by_period(rows)
        for period in (grouped if periods is None else periods):
            result.by_period.append(
                self._reconcile_period(period, grouped.get(period, []), result.notes, result.warnings)
            )

        if not result.by_period:
            result.warnings.append("No periods available to reconcile assets and liabilities.")

        logger.info(
            "Balance totals reconciled",
            periods=len(result.by_period),
            corrections=len(result.notes),
            missing=len(result.warnings),
        )
        return result

    def _reconcile_period(
        self,
        period: str,
        rows: List[NormalizedRow],
        notes: List[str],
        warnings: List[str],
    ) -> BalanceTotals:
        year = next((r.year for r in rows if r.year is not None), None)

        assets_pick = self.pick(rows, AccountGroup.ASSET)
        assets_raw = assets_pick.raw if assets_pick else ZERO
        assets_total = round_money(self.correct_assets(assets_raw))

        liabilities_pick = self.pick(rows, AccountGroup.LIABILITY, assets_total)
        liabilities_raw = liabilities_pick.raw if liabilities_pick else ZERO
        liabilities_total = round_money(self.correct_liabilities(liabilities_raw, assets_total))

        if assets_pick is None:
            warnings.append(f"Period {period}: total assets not found with certainty.")
        if liabilities_pick is None:
            warnings.append(f"Period {period}: total liabilities not found with certainty.")

        if assets_raw and abs(assets_raw - assets_total) > Decimal("0.01"):
            notes.append(
                f"Period {period}: assets total corrected for a glued digit "
                f"(raw={round_money(assets_raw)} -> fix={assets_total})."
            )
        if (
            liabilities_raw
            and abs(liabilities_raw - liabilities_total) > Decimal("0.01")
            and liabilities_total > ZERO
        ):
            notes.append(
                f"Period {period}: liabilities total corrected or filtered as an outlier "
                f"(raw={round_money(liabilities_raw)} -> fix={liabilities_total})."
            )

        logger.debug(
            "Period totals picked",
            period=period,
            assets_total=str(assets_total),
            liabilities_total=str(liabilities_total),
        )
        return BalanceTotals(
            period=period,
            year=year,
            assets_total=assets_total,
            liabilities_total=liabilities_total,
        )


def _titles(group: AccountGroup) -> frozenset:
    return ASSET_TITLES if group is AccountGroup.ASSET else LIABILITY_TITLES


def get_total_reconciliator(heuristics: Optional[HeuristicSettings] = None) -> TotalReconciliator:
    """Get TotalReconciliator instance."""
    return TotalReconciliator(heuristics)
