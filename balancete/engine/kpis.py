"""
Period KPI aggregator.

Computes income-statement figures per period from class-3 rows. Each figure
is resolved by an ordered list of independent strategies (classification
prefixes, description keywords, two-level buckets); the first strategy that
yields a non-zero total wins.
"""
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from balancete.engine.models import (
    AccountGroup,
    BucketTotal,
    Contribution,
    FigureResult,
    KpiResult,
    MoneyColumn,
    NormalizedRow,
    PeriodKpis,
)
from balancete.engine.normalization import classification_root, normalize_text
from balancete.engine.reconciliation import group_rows_by_period
from balancete.services.numeric_parser import round_money

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)

GROSS_REVENUE = "gross_revenue"
NET_REVENUE = "net_revenue"
DEDUCTIONS = "deductions"
COST_OF_GOODS = "cost_of_goods"
ADMIN_EXPENSES = "admin_expenses"
COMMERCIAL_EXPENSES = "commercial_expenses"
OTHER_EXPENSES = "other_expenses"

KEYWORDS = {
    NET_REVENUE: [
        "RECEITA LIQUIDA",
        "RECEITA LIQ",
        "RECEITAS LIQUIDAS",
        "RECEITA OPERACIONAL LIQUIDA",
        "ROL",
    ],
    GROSS_REVENUE: [
        "RECEITA BRUTA",
        "RECEITA OPERACIONAL BRUTA",
        "VENDAS BRUTAS",
        "FATURAMENTO BRUTO",
    ],
    DEDUCTIONS: [
        "DEDUCOES",
        "DEDUCAO",
        "DEVOLUCOES",
        "ABATIMENTOS",
        "CANCELAMENTOS",
        "ICMS",
        "ISS",
        "PIS",
        "COFINS",
    ],
    COST_OF_GOODS: [
        "CMV",
        "CPV",
        "CUSTO",
        "CUSTOS",
        "CUSTO DAS MERCADORIAS",
        "CUSTO DOS PRODUTOS",
        "CUSTO DOS SERVICOS",
        "CUSTO DOS SERVICOS PRESTADOS",
        "CSP",
    ],
    ADMIN_EXPENSES: [
        "DESPESAS ADMIN",
        "DESPESAS ADMINISTRATIVAS",
        "DESPESA ADMIN",
        "ADMINISTRATIVAS",
    ],
    COMMERCIAL_EXPENSES: [
        "DESPESAS COMERC",
        "DESPESAS COMERCIAIS",
        "DESPESAS DE VENDAS",
        "MARKETING",
        "PROPAGANDA",
        "PUBLICIDADE",
    ],
    OTHER_EXPENSES: [
        "OUTRAS DESPESAS",
        "DESPESAS GERAIS",
        "DESPESAS OPERACIONAIS",
        "DESPESAS FINANCEIRAS",
        "CUSTOS FINANCEIROS",
        "DESPESAS",
    ],
}

PLAN_PREFIXES = {
    GROSS_REVENUE: ["3.1"],
    DEDUCTIONS: ["3.2"],
    COST_OF_GOODS: ["3.3", "3.4", "3.5"],
    ADMIN_EXPENSES: ["3.7", "3.8"],
}

BUCKET_PATTERN = re.compile(r"^([123]\.\d{1,3})")


class Preference(str, Enum):
    """Column preferred when reading an income-statement row."""
    CREDIT = "credit"
    DEBIT = "debit"


def row_value(row: NormalizedRow, prefer: Preference) -> Tuple[Decimal, MoneyColumn]:
    """
    Value of a row for a figure, with the column it came from.

    Preferred column first, then current balance, then prior balance, then
    debit minus credit.
    """
    credit = row.amount(MoneyColumn.CREDIT)
    debit = row.amount(MoneyColumn.DEBIT)

    if prefer is Preference.CREDIT and credit:
        return credit, MoneyColumn.CREDIT
    if prefer is Preference.DEBIT and debit:
        return debit, MoneyColumn.DEBIT

    current = row.amount(MoneyColumn.CURRENT_BALANCE)
    if current:
        return current, MoneyColumn.CURRENT_BALANCE

    prior = row.amount(MoneyColumn.PRIOR_BALANCE)
    if prior:
        return prior, MoneyColumn.PRIOR_BALANCE

    if debit or credit:
        return debit - credit, MoneyColumn.NET_MOVEMENT
    return ZERO, MoneyColumn.CURRENT_BALANCE


def balance_value(row: NormalizedRow) -> Tuple[Decimal, MoneyColumn]:
    """Current balance, else prior balance, else debit minus credit."""
    current = row.amount(MoneyColumn.CURRENT_BALANCE)
    if current:
        return current, MoneyColumn.CURRENT_BALANCE
    prior = row.amount(MoneyColumn.PRIOR_BALANCE)
    if prior:
        return prior, MoneyColumn.PRIOR_BALANCE
    return row.amount(MoneyColumn.NET_MOVEMENT), MoneyColumn.NET_MOVEMENT


def bucket_key(classification: Optional[str]) -> Optional[str]:
    """Two-level bucket of a classification ("3.1.2.05" -> "3.1")."""
    match = BUCKET_PATTERN.match(classification or "")
    return match.group(1) if match else None


def has_prefix(classification: Optional[str], prefix: str) -> bool:
    """Segment-aware prefix test: "3.1" covers "3.1" and "3.1.x", not "3.10"."""
    cls = (classification or "").strip().rstrip(".")
    return cls == prefix or cls.startswith(prefix + ".")


def keyword_pattern(keywords: Sequence[str]) -> "re.Pattern":
    """Regex matching any keyword at a word start."""
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"(?<![A-Z0-9])(?:{alternatives})")


def _summed(name: str, strategy: str, rule: str, contributions: List[Contribution]) -> FigureResult:
    total = round_money(sum((c.value for c in contributions), ZERO))
    return FigureResult(
        name=name,
        total=total,
        strategy=strategy if total else None,
        rule=rule,
        contributions=contributions if total else [],
    )


# =============================================================================
# Strategies
# =============================================================================

@dataclass(frozen=True)
class ClassificationPrefixStrategy:
    """Sum of |value| over rows under fixed plan-of-accounts prefixes."""

    prefixes: Tuple[str, ...]
    name: str = "classification"

    def describe(self, prefer: Preference) -> str:
        accounts = ", ".join(f"{p}.*" for p in self.prefixes)
        return f"sum of {prefer.value.upper()} of accounts {accounts} (outermost contributing accounts only)"

    def evaluate(self, figure: str, rows: List[NormalizedRow], prefer: Preference) -> FigureResult:
        matched = [
            r for r in rows
            if any(has_prefix(r.classification, p) for p in self.prefixes)
        ]
        valued = [(row, *row_value(row, prefer)) for row in matched]
        contributing = [row for row, value, _ in valued if value]

        contributions = [
            Contribution(row=row, column=column, value=abs(value))
            for row, value, column in valued
            if value and not _has_matched_ancestor(row, contributing)
        ]
        return _summed(figure, self.name, self.describe(prefer), contributions)


@dataclass(frozen=True)
class KeywordStrategy:
    """Sum of |value| over rows whose description matches a synonym list."""

    keywords: Tuple[str, ...]
    excluded: Tuple[str, ...] = ()
    name: str = "keyword"

    def describe(self, prefer: Preference) -> str:
        return f"sum of {prefer.value.upper()} of accounts described as {', '.join(self.keywords)}"

    def evaluate(self, figure: str, rows: List[NormalizedRow], prefer: Preference) -> FigureResult:
        pattern = keyword_pattern(self.keywords)
        excluded = keyword_pattern(self.excluded) if self.excluded else None

        contributions = []
        for row in rows:
            text = normalize_text(row.description)
            if not text or not pattern.search(text):
                continue
            if excluded is not None and excluded.search(text):
                continue
            value, column = row_value(row, prefer)
            if value:
                contributions.append(Contribution(row=row, column=column, value=abs(value)))
        return _summed(figure, self.name, self.describe(prefer), contributions)


@dataclass(frozen=True)
class BucketStrategy:
    """Sum of |balance| over two-level classification buckets."""

    keys: Tuple[str, ...]
    name: str = "bucket"

    def describe(self, prefer: Preference) -> str:
        return f"sum of balances of buckets {', '.join(self.keys)}"

    def evaluate(self, figure: str, rows: List[NormalizedRow], prefer: Preference) -> FigureResult:
        contributions = []
        for row in rows:
            if bucket_key(row.classification) not in self.keys:
                continue
            value, column = balance_value(row)
            if value:
                contributions.append(Contribution(row=row, column=column, value=abs(value)))
        return _summed(figure, self.name, self.describe(prefer), contributions)


def _has_matched_ancestor(row: NormalizedRow, matched: List[NormalizedRow]) -> bool:
    cls = (row.classification or "").rstrip(".")
    for other in matched:
        parent = (other.classification or "").rstrip(".")
        if parent and parent != cls and cls.startswith(parent + "."):
            return True
    return False


@dataclass(frozen=True)
class FigureSpec:
    """How one figure is computed: preferred column and strategy cascade."""

    name: str
    prefer: Preference
    strategies: Tuple


def _cascade(name: str, prefer: Preference, excluded: Tuple[str, ...] = ()) -> FigureSpec:
    strategies = []
    if name in PLAN_PREFIXES:
        strategies.append(ClassificationPrefixStrategy(tuple(PLAN_PREFIXES[name])))
    strategies.append(KeywordStrategy(tuple(KEYWORDS[name]), excluded))
    if name in PLAN_PREFIXES:
        strategies.append(BucketStrategy(tuple(PLAN_PREFIXES[name])))
    return FigureSpec(name=name, prefer=prefer, strategies=tuple(strategies))


FIGURES = (
    _cascade(GROSS_REVENUE, Preference.CREDIT),
    _cascade(NET_REVENUE, Preference.CREDIT),
    _cascade(DEDUCTIONS, Preference.DEBIT),
    _cascade(COST_OF_GOODS, Preference.DEBIT),
    _cascade(ADMIN_EXPENSES, Preference.DEBIT),
    _cascade(COMMERCIAL_EXPENSES, Preference.DEBIT),
    _cascade(
        OTHER_EXPENSES,
        Preference.DEBIT,
        excluded=tuple(KEYWORDS[ADMIN_EXPENSES] + KEYWORDS[COMMERCIAL_EXPENSES]),
    ),
)


def evaluate_figure(definition: FigureSpec, rows: List[NormalizedRow]) -> FigureResult:
    """Run a figure's strategies in order; the first non-zero result wins."""
    for strategy in definition.strategies:
        result = strategy.evaluate(definition.name, rows, definition.prefer)
        if result.total:
            return result
    return FigureResult(name=definition.name, rule="no matching accounts")


def percentage(numerator: Optional[Decimal], denominator: Decimal) -> Optional[Decimal]:
    """numerator / denominator x 100, rounded to cents; None on zero denominator."""
    if numerator is None or not denominator:
        return None
    return round_money(numerator / denominator * 100)


# =============================================================================
# Aggregator
# =============================================================================

class KpiAggregator:
    """
    Aggregator for income-statement KPIs per period.

    Figures are withheld (zero/None) for any period that lacks both a
    revenue figure and at least one cost or expense figure; one note is
    recorded for each such period.
    """

    def __init__(self, figures: Sequence[FigureSpec] = FIGURES):
        self.figures = tuple(figures)

    def is_relevant(self, row: NormalizedRow) -> bool:
        """Income-statement rows: DRE group or classification root 3."""
        return row.group is AccountGroup.INCOME_STATEMENT or classification_root(row.classification) == "3"

    def compute(self, rows: Iterable[NormalizedRow]) -> KpiResult:
        """
        Compute KPIs for every period that has income-statement rows.

        Args:
            rows: The full normalized row set.

        Returns:
            KpiResult with one PeriodKpis per period, in first-appearance order.
        """
        result = KpiResult()
        relevant = [r for r in rows if self.is_relevant(r)]

        for period, period_rows in group_rows_by_period(relevant).items():
            kpis = self.compute_period(period, period_rows)
            if not kpis.confident:
                result.notes.append(
                    f"Period {period}: income-statement KPIs lack sufficient validation "
                    f"in the ledger; figures withheld."
                )
            result.by_period.append(kpis)

        if not result.by_period:
            result.notes.append(
                "No income-statement rows (class 3) were detected; revenue and income "
                "KPIs are unavailable."
            )

        logger.info(
            "Income-statement KPIs computed",
            periods=len(result.by_period),
            withheld=sum(1 for k in result.by_period if not k.confident),
        )
        return result

    def compute_period(self, period: str, rows: List[NormalizedRow]) -> PeriodKpis:
        """KPIs of one period from its income-statement rows."""
        year = next((r.year for r in rows if r.year is not None), None)
        figures: Dict[str, FigureResult] = {
            definition.name: evaluate_figure(definition, rows) for definition in self.figures
        }

        def total(name: str) -> Decimal:
            figure = figures.get(name)
            return figure.total if figure else ZERO

        gross = total(GROSS_REVENUE)
        deductions = total(DEDUCTIONS)
        net = total(NET_REVENUE)
        if not net and gross:
            net = round_money(gross - deductions)
            figures[NET_REVENUE] = FigureResult(
                name=NET_REVENUE,
                total=net,
                strategy="derived",
                rule="gross revenue minus deductions",
            )

        cost = total(COST_OF_GOODS)
        admin = total(ADMIN_EXPENSES)
        commercial = total(COMMERCIAL_EXPENSES)
        other = total(OTHER_EXPENSES)

        gross_profit = round_money(net - cost) if net else None
        operating = (
            round_money(gross_profit - admin - commercial - other)
            if gross_profit is not None
            else None
        )

        confident = (gross > 0 or net > 0) and (cost > 0 or admin > 0 or commercial > 0 or other > 0)
        buckets = self.buckets(rows)

        if not confident:
            logger.debug("Withholding unvalidated KPIs", period=period)
            return PeriodKpis(
                period=period,
                year=year,
                confident=False,
                buckets=buckets,
                figures={
                    name: FigureResult(name=name, rule="withheld: insufficient validation")
                    for name in figures
                },
            )

        return PeriodKpis(
            period=period,
            year=year,
            net_revenue=net,
            gross_revenue=gross,
            deductions=deductions,
            cost_of_goods=cost,
            admin_expenses=admin,
            commercial_expenses=commercial,
            other_expenses=other,
            gross_profit=gross_profit,
            operating_result=operating,
            net_income=operating,
            gross_margin_pct=percentage(gross_profit, net),
            net_margin_pct=percentage(operating, net),
            confident=True,
            buckets=buckets,
            figures=figures,
        )

    def buckets(self, rows: List[NormalizedRow]) -> List[BucketTotal]:
        """Two-level bucket totals sorted by absolute total, descending."""
        totals: Dict[str, Decimal] = {}
        counts: Dict[str, int] = {}
        for row in rows:
            key = bucket_key(row.classification)
            if key is None:
                continue
            value, _ = balance_value(row)
            totals[key] = totals.get(key, ZERO) + value
            counts[key] = counts.get(key, 0) + 1

        buckets = [
            BucketTotal(key=key, total=round_money(value), line_count=counts[key])
            for key, value in totals.items()
        ]
        return sorted(buckets, key=lambda b: abs(b.total), reverse=True)


def get_kpi_aggregator() -> KpiAggregator:
    """Get KpiAggregator instance."""
    return KpiAggregator()
