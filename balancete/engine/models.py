"""
Data model for the balancete engine.

Row records are immutable: normalization produces a new NormalizedRow that
keeps a reference to the RawAccountRow it came from, so the parsed source
stays available for audit. Every monetary field is Optional so that an absent
column is always distinguishable from a zero balance.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class AccountGroup(str, Enum):
    """Macro-group of an account row."""
    ASSET = "asset"
    LIABILITY = "liability"
    INCOME_STATEMENT = "income_statement"
    OTHER = "other"

    @property
    def title(self) -> str:
        """Section title as printed in the ledgers."""
        return _GROUP_TITLES[self]

    @property
    def root(self) -> Optional[str]:
        """Plan-of-accounts root digit for this group."""
        return _GROUP_ROOTS.get(self)


_GROUP_TITLES = {
    AccountGroup.ASSET: "ATIVO",
    AccountGroup.LIABILITY: "PASSIVO",
    AccountGroup.INCOME_STATEMENT: "DRE",
    AccountGroup.OTHER: "OUTROS",
}

_GROUP_ROOTS = {
    AccountGroup.ASSET: "1",
    AccountGroup.LIABILITY: "2",
    AccountGroup.INCOME_STATEMENT: "3",
}


class ColumnOrder(str, Enum):
    """Left-to-right layout of the four monetary columns."""
    CURRENT_PRIOR_DEBIT_CREDIT = "current_prior_debit_credit"
    PRIOR_DEBIT_CREDIT_CURRENT = "prior_debit_credit_current"


class MoneyColumn(str, Enum):
    """Monetary column a value was read from."""
    CURRENT_BALANCE = "current_balance"
    PRIOR_BALANCE = "prior_balance"
    DEBIT = "debit"
    CREDIT = "credit"
    NET_MOVEMENT = "debit_minus_credit"


class AlertLevel(str, Enum):
    """Alert severity."""
    INFO = "info"
    WARNING = "warning"


# =============================================================================
# Rows
# =============================================================================

@dataclass(frozen=True)
class MoneyValue:
    """A monetary token and its signed value."""
    raw_text: str
    value: Decimal


@dataclass(frozen=True)
class RawAccountRow:
    """One data line of one document, as parsed."""
    raw_line: str
    group: AccountGroup = AccountGroup.OTHER
    code: Optional[str] = None
    classification: Optional[str] = None
    description: Optional[str] = None
    current_balance: Optional[MoneyValue] = None
    prior_balance: Optional[MoneyValue] = None
    debit: Optional[MoneyValue] = None
    credit: Optional[MoneyValue] = None


@dataclass(frozen=True)
class NormalizedRow:
    """A RawAccountRow with its period context and canonical classification."""
    period: str
    raw_line: str
    group: AccountGroup
    year: Optional[int] = None
    code: Optional[str] = None
    classification: Optional[str] = None
    description: Optional[str] = None
    current_balance: Optional[MoneyValue] = None
    prior_balance: Optional[MoneyValue] = None
    debit: Optional[MoneyValue] = None
    credit: Optional[MoneyValue] = None
    source: Optional[RawAccountRow] = field(default=None, compare=False, repr=False)

    def amount(self, column: MoneyColumn) -> Decimal:
        """Value of one column, zero when absent."""
        if column is MoneyColumn.NET_MOVEMENT:
            return self.amount(MoneyColumn.DEBIT) - self.amount(MoneyColumn.CREDIT)
        money = getattr(self, column.value)
        return money.value if money is not None else Decimal(0)


# =============================================================================
# Per-period results
# =============================================================================

@dataclass
class BalanceTotals:
    """Reconciled balance-sheet totals; zero means not found."""
    period: str
    year: Optional[int] = None
    assets_total: Decimal = Decimal(0)
    liabilities_total: Decimal = Decimal(0)


@dataclass
class BalanceTotalsResult:
    """Totals for every period plus reconciliation notes."""
    by_period: List[BalanceTotals] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def for_period(self, period: str) -> Optional[BalanceTotals]:
        for totals in self.by_period:
            if totals.period == period:
                return totals
        return None


@dataclass(frozen=True)
class Contribution:
    """One row's contribution to a KPI figure."""
    row: NormalizedRow
    column: MoneyColumn
    value: Decimal


@dataclass
class FigureResult:
    """A KPI figure and how it was obtained."""
    name: str
    total: Decimal = Decimal(0)
    strategy: Optional[str] = None
    rule: str = ""
    contributions: List[Contribution] = field(default_factory=list)


@dataclass
class BucketTotal:
    """Total of a two-level classification bucket (e.g. "3.1")."""
    key: str
    total: Decimal
    line_count: int


@dataclass
class PeriodKpis:
    """Income-statement figures of one period."""
    period: str
    year: Optional[int] = None
    net_revenue: Decimal = Decimal(0)
    gross_revenue: Decimal = Decimal(0)
    deductions: Decimal = Decimal(0)
    cost_of_goods: Decimal = Decimal(0)
    admin_expenses: Decimal = Decimal(0)
    commercial_expenses: Decimal = Decimal(0)
    other_expenses: Decimal = Decimal(0)
    gross_profit: Optional[Decimal] = None
    operating_result: Optional[Decimal] = None
    net_income: Optional[Decimal] = None
    gross_margin_pct: Optional[Decimal] = None
    net_margin_pct: Optional[Decimal] = None
    confident: bool = False
    buckets: List[BucketTotal] = field(default_factory=list)
    figures: Dict[str, FigureResult] = field(default_factory=dict, repr=False)


@dataclass
class KpiResult:
    """Income-statement KPIs for every period plus notes."""
    by_period: List[PeriodKpis] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def for_period(self, period: str) -> Optional[PeriodKpis]:
        for kpis in self.by_period:
            if kpis.period == period:
                return kpis
        return None


# =============================================================================
# Cross-period results
# =============================================================================

@dataclass
class PeriodTotals:
    """Headline totals of one period."""
    period: str
    assets_total: Decimal
    liabilities_total: Decimal
    income_statement_total: Decimal
    rows_detected: int


@dataclass
class SeriesPoint:
    period: str
    value: Decimal


@dataclass
class BalanceRanking:
    code: Optional[str]
    description: Optional[str]
    value: Decimal
    period: str


@dataclass
class Variance:
    key: str
    code: Optional[str]
    description: Optional[str]
    from_period: str
    to_period: str
    delta: Decimal
    delta_pct: Optional[Decimal]


@dataclass
class Rankings:
    top_assets: List[BalanceRanking] = field(default_factory=list)
    top_liabilities: List[BalanceRanking] = field(default_factory=list)
    top_variances: List[Variance] = field(default_factory=list)


@dataclass
class ParetoItem:
    label: str
    value: Decimal


@dataclass(frozen=True)
class EvidenceLine:
    """One row's contribution to one KPI, for audit display only."""
    period: str
    classification: Optional[str]
    code: Optional[str]
    description: Optional[str]
    source_column: MoneyColumn
    value: Decimal


@dataclass
class KpiEvidence:
    indicator: str
    rule: str
    lines: List[EvidenceLine] = field(default_factory=list)


@dataclass
class Alert:
    level: AlertLevel
    message: str


@dataclass
class InputSummary:
    file_count: int
    years_detected: List[int]
    row_count: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class FileSample:
    file_name: str
    period: str
    detected_year: Optional[int]
    sample: str


@dataclass
class SourceDocument:
    """Input contract: one document's file name and extracted text."""
    file_name: str
    text: str
    detected_year: Optional[int] = None


@dataclass
class AnalysisResult:
    """Final result of one analysis request."""
    run_id: str
    granularity: str
    summary: InputSummary
    files: List[FileSample]
    rows: List[NormalizedRow]
    kpis: KpiResult
    periods: List[str]
    period_totals: List[PeriodTotals]
    series: Dict[str, List[SeriesPoint]]
    rankings: Rankings
    pareto: List[ParetoItem]
    kpis_by_period: Dict[str, Dict[str, Decimal]]
    group_distribution: Dict[str, Decimal]
    alerts: List[Alert]
    evidence: List[KpiEvidence]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-compatible primitives."""
        return _jsonable(self)


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, NormalizedRow):
        data = {f.name: _jsonable(getattr(obj, f.name)) for f in fields(obj) if f.name != "source"}
        return data
    if isinstance(obj, PeriodKpis):
        return {
            f.name: _jsonable(getattr(obj, f.name))
            for f in fields(obj)
            if f.name != "figures"
        }
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, dict):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return obj
