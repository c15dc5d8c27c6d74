"""
Cross-period rankings, Pareto list and KPI evidence.

Every ranking reads the reconciled assets total of its period as an outlier
bound, so that a corrupted magnitude that survived parsing can never top a
list.
"""
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from balancete.config import HeuristicSettings, get_settings
from balancete.engine.kpis import (
    ADMIN_EXPENSES,
    COST_OF_GOODS,
    DEDUCTIONS,
    GROSS_REVENUE,
    has_prefix,
)
from balancete.engine.models import (
    AccountGroup,
    BalanceRanking,
    BalanceTotalsResult,
    EvidenceLine,
    KpiEvidence,
    KpiResult,
    MoneyColumn,
    NormalizedRow,
    ParetoItem,
    Rankings,
    Variance,
)
from balancete.engine.normalization import classification_root, get_classification_normalizer, normalize_text
from balancete.services.numeric_parser import round_money

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)

EXPENSE_PREFIXES = ("3.1.3", "3.3", "3.4", "3.5", "3.6", "3.7", "3.8", "3.9")
NON_EXPENSE_PREFIXES = ("3.1.1", "3.1.2", "3.2")
EXPENSE_HINTS = ("DESP", "CUST", "CMV", "CPV", "SAL", "HONOR", "ALUG", "ENCARG", "TAXA", "IMPOST", "SERV")

EVIDENCE_INDICATORS = (
    (GROSS_REVENUE, "Gross revenue"),
    (DEDUCTIONS, "Deductions / sales taxes"),
    (COST_OF_GOODS, "Cost of goods (CMV/CPV)"),
    (ADMIN_EXPENSES, "Administrative expenses"),
)


def variance_key(code: Optional[str], description: Optional[str]) -> str:
    """Identity of an account across periods."""
    c = (code or "").strip()
    d = (description or "").strip().upper()
    return f"C:{c}|D:{d}" if c else f"D:{d}"


def row_label(row: NormalizedRow) -> str:
    """Display label: classification and description when both exist."""
    cls = (row.classification or "").strip()
    desc = (row.description or "").strip()
    if cls and desc:
        return f"{cls} - {desc}"
    return desc or cls or "Account"


def is_expense_row(row: NormalizedRow) -> bool:
    """
    Income-statement expense row eligible for the Pareto list.

    Multi-level class-3 classification outside the revenue sub-roots and the
    deductions group, not a total line, and either under an expense prefix
    or described like an expense.
    """
    cls = row.classification or ""
    if classification_root(cls) != "3":
        return False

    desc = normalize_text(row.description)
    if "TOTAL" in desc:
        return False
    if cls.count(".") <= 1:
        return False
    if any(has_prefix(cls, p) for p in NON_EXPENSE_PREFIXES):
        return False

    if any(has_prefix(cls, p) for p in EXPENSE_PREFIXES):
        return True
    return any(hint in desc for hint in EXPENSE_HINTS)


class RankingBuilder:
    """
    Builder for rankings, variances, Pareto and evidence.

    Args:
        heuristics: Outlier bounds and list sizes.
    """

    def __init__(self, heuristics: Optional[HeuristicSettings] = None):
        self.heuristics = heuristics or get_settings().heuristics
        self._normalizer = get_classification_normalizer()

    # ------------------------------------------------------------------
    # Outlier filter
    # ------------------------------------------------------------------

    def within_bound(self, value: Decimal, assets_total: Decimal) -> bool:
        """Whether a non-zero magnitude is plausible next to the assets total."""
        h = self.heuristics
        magnitude = abs(value)
        if magnitude == ZERO:
            return False
        if not assets_total or assets_total <= ZERO:
            return magnitude < h.unknown_assets_ceiling
        if magnitude > assets_total * h.outlier_cap_ratio:
            return False
        if assets_total < h.small_assets_threshold and magnitude >= h.small_assets_ceiling:
            return False
        return True

    def filter_outliers(self, rows: Sequence[NormalizedRow], assets_total: Decimal) -> List[NormalizedRow]:
        """
        Drop rows whose current balance is zero or implausible.

        Args:
            rows: Rows of one period.
            assets_total: Reconciled assets total of that period (0 if unknown).

        Returns:
            The retained rows, in order.
        """
        return [
            r for r in rows
            if self.within_bound(r.amount(MoneyColumn.CURRENT_BALANCE), assets_total)
        ]

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------

    def build_rankings(
        self,
        rows_by_period: Dict[str, List[NormalizedRow]],
        periods: Sequence[str],
        totals: BalanceTotalsResult,
    ) -> Rankings:
        """Top balances per group and top first-to-last variances."""
        h = self.heuristics
        safe_by_period = {
            period: self.filter_outliers(rows_by_period.get(period, []), _assets(totals, period))
            for period in periods
        }

        top_assets: List[BalanceRanking] = []
        top_liabilities: List[BalanceRanking] = []
        for period in periods:
            for row in safe_by_period[period]:
                value = row.amount(MoneyColumn.CURRENT_BALANCE)
                if "TOTAL" in normalize_text(row.description):
                    continue
                group = self._normalizer.infer_group(row.classification)
                entry = BalanceRanking(
                    code=row.code,
                    description=row.description,
                    value=round_money(value),
                    period=period,
                )
                if group is AccountGroup.ASSET:
                    top_assets.append(entry)
                elif group is AccountGroup.LIABILITY:
                    top_liabilities.append(entry)

        rankings = Rankings(
            top_assets=_top(top_assets, h.top_assets_size, lambda x: abs(x.value)),
            top_liabilities=_top(top_liabilities, h.top_liabilities_size, lambda x: abs(x.value)),
            top_variances=self.variances(safe_by_period, periods),
        )
        logger.debug(
            "Rankings built",
            assets=len(rankings.top_assets),
            liabilities=len(rankings.top_liabilities),
            variances=len(rankings.top_variances),
        )
        return rankings

    def variances(
        self,
        safe_by_period: Dict[str, List[NormalizedRow]],
        periods: Sequence[str],
    ) -> List[Variance]:
        """Largest current-balance deltas between the first and last period."""
        h = self.heuristics
        if len(periods) < 2 or periods[0] == periods[-1]:
            return []
        first, last = periods[0], periods[-1]

        accounts: Dict[str, Tuple[Optional[str], Optional[str], Dict[str, Decimal]]] = {}
        for period in periods:
            for row in safe_by_period.get(period, []):
                key = variance_key(row.code, row.description)
                if key not in accounts:
                    accounts[key] = (row.code, row.description, {})
                accounts[key][2][period] = round_money(row.amount(MoneyColumn.CURRENT_BALANCE))

        variances = []
        for key, (code, description, values) in accounts.items():
            a = values.get(first, ZERO)
            b = values.get(last, ZERO)
            if not a and not b:
                continue

            delta = round_money(b - a)
            if abs(delta) < h.min_variance:
                continue

            variances.append(
                Variance(
                    key=key,
                    code=code,
                    description=description,
                    from_period=first,
                    to_period=last,
                    delta=delta,
                    delta_pct=round_money((b - a) / abs(a) * 100) if a else None,
                )
            )

        return _top(variances, h.top_variances_size, lambda x: abs(x.delta))

    # ------------------------------------------------------------------
    # Pareto
    # ------------------------------------------------------------------

    def pareto(self, rows: Sequence[NormalizedRow], assets_total: Decimal) -> List[ParetoItem]:
        """
        Top expense rows of one period by |debit|, else |current balance|.

        Rows sharing classification and description are merged.
        """
        h = self.heuristics
        merged: Dict[str, ParetoItem] = {}

        for row in rows:
            if not is_expense_row(row):
                continue

            debit = abs(row.amount(MoneyColumn.DEBIT))
            value = debit if debit else abs(row.amount(MoneyColumn.CURRENT_BALANCE))
            if value < Decimal("0.01") or not self.within_bound(value, assets_total):
                continue

            key = f"{row.classification or ''}|{row.description or ''}".upper()
            item = merged.setdefault(key, ParetoItem(label=row_label(row), value=ZERO))
            item.value = round_money(item.value + value)

        return _top(list(merged.values()), h.pareto_size, lambda x: x.value)

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def evidence(self, kpis: KpiResult, period: Optional[str]) -> List[KpiEvidence]:
        """
        Contributing rows of each headline KPI for one period.

        The lines are the contributions recorded by the strategy that
        produced the figure; they are for display only.
        """
        h = self.heuristics
        period_kpis = kpis.for_period(period) if period else None

        trail = []
        for name, title in EVIDENCE_INDICATORS:
            figure = period_kpis.figures.get(name) if period_kpis else None
            if figure is None:
                trail.append(KpiEvidence(indicator=title, rule=f"{title}: no income-statement rows"))
                continue

            rule = f"{title} = {figure.rule}"
            if figure.strategy:
                rule += f" [strategy: {figure.strategy}]"

            lines = [
                EvidenceLine(
                    period=period,
                    classification=c.row.classification,
                    code=c.row.code,
                    description=c.row.description,
                    source_column=c.column,
                    value=round_money(c.value),
                )
                for c in figure.contributions
                if c.value >= Decimal("0.01")
            ]
            trail.append(
                KpiEvidence(
                    indicator=title,
                    rule=rule,
                    lines=_top(lines, h.evidence_size, lambda x: x.value),
                )
            )
        return trail


def _assets(totals: BalanceTotalsResult, period: str) -> Decimal:
    found = totals.for_period(period)
    return found.assets_total if found else ZERO


def _top(items: list, size: int, score) -> list:
    return sorted(items, key=score, reverse=True)[:size]


def get_ranking_builder(heuristics: Optional[HeuristicSettings] = None) -> RankingBuilder:
    """Get RankingBuilder instance."""
    return RankingBuilder(heuristics)
