"""
Cross-file aggregator.

Runs one analysis request end to end: per-document period detection,
parsing and normalization (fanned out across a thread pool), then a single
sequential pass over the merged rows for totals, KPIs, rankings, Pareto and
evidence. Nothing is shared between requests.
"""
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

import structlog

from balancete.config import Settings, get_settings
from balancete.engine.extraction import get_ledger_parser
from balancete.engine.kpis import get_kpi_aggregator
from balancete.engine.models import (
    AccountGroup,
    Alert,
    AlertLevel,
    AnalysisResult,
    BalanceTotalsResult,
    FileSample,
    InputSummary,
    MoneyColumn,
    NormalizedRow,
    PeriodTotals,
    Rankings,
    SeriesPoint,
    SourceDocument,
)
from balancete.engine.normalization import classification_root, get_classification_normalizer
from balancete.engine.rankings import get_ranking_builder
from balancete.engine.reconciliation import get_total_reconciliator, group_rows_by_period
from balancete.services.numeric_parser import round_money
from balancete.services.period_normalizer import Granularity, get_period_normalizer

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)
EMPTY_SAMPLE = "(no text extracted)"


@dataclass
class DocumentOutcome:
    """Per-document result of the fan-out stage."""

    file_name: str
    period: str
    year: Optional[int]
    rows: List[NormalizedRow] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def income_statement_total(rows: Sequence[NormalizedRow]) -> Decimal:
    """Sum of |debit| (else |credit|, else |current balance|) over class-3 rows."""
    total = ZERO
    for row in rows:
        if classification_root(row.classification) != "3":
            continue
        debit = abs(row.amount(MoneyColumn.DEBIT))
        credit = abs(row.amount(MoneyColumn.CREDIT))
        value = debit or credit or abs(row.amount(MoneyColumn.CURRENT_BALANCE))
        if value < Decimal("0.01"):
            continue
        total += value
    return round_money(total)


class AnalysisOrchestrator:
    """
    Orchestrator for a balancete analysis.

    Args:
        settings: Application settings; defaults to get_settings().
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._periods = get_period_normalizer()
        self._normalizer = get_classification_normalizer()
        self._reconciliator = get_total_reconciliator(self.settings.heuristics)
        self._kpis = get_kpi_aggregator()
        self._rankings = get_ranking_builder(self.settings.heuristics)

    def process_document(self, document: SourceDocument, granularity: Granularity) -> DocumentOutcome:
        """Detect the period of one document and parse it into normalized rows."""
        text = document.text or ""
        year = (
            document.detected_year
            or self._periods.detect_year(text)
            or self._periods.detect_year(document.file_name)
        )
        period = self._periods.detect_label(document.file_name, text, granularity, year)

        parsed = get_ledger_parser().parse(text)
        rows = self._normalizer.normalize_rows(parsed.rows, period, year)

        logger.debug(
            "Document processed",
            file_name=document.file_name,
            period=period,
            rows=len(rows),
        )
        return DocumentOutcome(
            file_name=document.file_name,
            period=period,
            year=year,
            rows=rows,
            warnings=parsed.warnings,
        )

    def run(
        self,
        documents: Sequence[SourceDocument],
        granularity: Union[str, Granularity, None] = None,
        max_workers: Optional[int] = None,
    ) -> AnalysisResult:
        """
        Analyze a set of balancete documents.

        Args:
            documents: File name and extracted text per document.
            granularity: monthly, quarterly or annual (Portuguese aliases accepted).
            max_workers: Per-document fan-out width; 1 parses sequentially.

        Returns:
            AnalysisResult. Data problems are reported as warnings and alerts,
            never raised.
        """
        run_id = uuid.uuid4().hex[:12]
        log = logger.bind(run_id=run_id)
        mode = Granularity.parse(granularity or self.settings.default_granularity)
        workers = max(1, max_workers or self.settings.max_workers)

        log.info("Analysis started", files=len(documents), granularity=mode.value, workers=workers)

        outcomes = self._fan_out(documents, mode, workers)

        warnings = [
            f"[{outcome.file_name}] {warning}"
            for outcome in outcomes
            for warning in outcome.warnings
        ]
        base = [row for outcome in outcomes for row in outcome.rows]
        log.info("Documents parsed", rows=len(base), warnings=len(warnings))

        alerts: List[Alert] = []

        periods = self._periods.sort_labels(outcome.period for outcome in outcomes)

        totals = self._reconciliator.reconcile(base, periods)
        alerts.extend(Alert(AlertLevel.INFO, note) for note in totals.notes)
        kpis = self._kpis.compute(base)

        if len(periods) < 2:
            alerts.append(Alert(AlertLevel.WARNING, "Submit at least 2 periods for comparison."))
        alerts.extend(Alert(AlertLevel.WARNING, warning) for warning in totals.warnings)

        rows_by_period = group_rows_by_period(base)
        period_totals = self._period_totals(periods, rows_by_period, totals)

        rankings = self._rankings.build_rankings(rows_by_period, periods, totals)
        alerts.extend(self._variance_alerts(rankings))
        alerts.extend(Alert(AlertLevel.INFO, note) for note in kpis.notes)

        last = periods[-1] if periods else None
        last_totals = period_totals[-1] if period_totals else None
        last_assets = last_totals.assets_total if last_totals else ZERO

        result = AnalysisResult(
            run_id=run_id,
            granularity=mode.value,
            summary=InputSummary(
                file_count=len(documents),
                years_detected=sorted({o.year for o in outcomes if o.year is not None}),
                row_count=len(base),
                warnings=warnings,
            ),
            files=[self._sample(document, outcome) for document, outcome in zip(documents, outcomes)],
            rows=base,
            kpis=kpis,
            periods=periods,
            period_totals=period_totals,
            series={
                "assets_total": [SeriesPoint(t.period, t.assets_total) for t in period_totals],
                "liabilities_total": [SeriesPoint(t.period, t.liabilities_total) for t in period_totals],
                "income_statement_total": [
                    SeriesPoint(t.period, t.income_statement_total) for t in period_totals
                ],
            },
            rankings=rankings,
            pareto=self._rankings.pareto(rows_by_period.get(last, []), last_assets) if last else [],
            kpis_by_period={
                k.period: {
                    "net_revenue": k.net_revenue,
                    "admin_expenses": k.admin_expenses,
                    "net_income": k.net_income if k.net_income is not None else ZERO,
                }
                for k in kpis.by_period
            },
            group_distribution={
                AccountGroup.ASSET.value: last_totals.assets_total if last_totals else ZERO,
                AccountGroup.LIABILITY.value: last_totals.liabilities_total if last_totals else ZERO,
                AccountGroup.INCOME_STATEMENT.value: (
                    last_totals.income_statement_total if last_totals else ZERO
                ),
            },
            alerts=alerts,
            evidence=self._rankings.evidence(kpis, last),
        )

        log.info(
            "Analysis complete",
            periods=len(periods),
            alerts=len(alerts),
            pareto=len(result.pareto),
        )
        return result

    def _fan_out(
        self,
        documents: Sequence[SourceDocument],
        mode: Granularity,
        workers: int,
    ) -> List[DocumentOutcome]:
        if workers == 1 or len(documents) < 2:
            return [self.process_document(document, mode) for document in documents]

        # Join barrier: every document is parsed before any period pass runs
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(lambda d: self.process_document(d, mode), documents))

    def _period_totals(
        self,
        periods: Sequence[str],
        rows_by_period: Dict[str, List[NormalizedRow]],
        totals: BalanceTotalsResult,
    ) -> List[PeriodTotals]:
        result = []
        for period in periods:
            rows = rows_by_period.get(period, [])
            found = totals.for_period(period)
            result.append(
                PeriodTotals(
                    period=period,
                    assets_total=found.assets_total if found else ZERO,
                    liabilities_total=found.liabilities_total if found else ZERO,
                    income_statement_total=income_statement_total(rows),
                    rows_detected=len(rows),
                )
            )
        return result

    def _variance_alerts(self, rankings: Rankings) -> List[Alert]:
        if not rankings.top_variances:
            return []

        largest = rankings.top_variances[0]
        name = largest.description or largest.code or "Account"
        threshold = self.settings.heuristics.high_variance_pct
        if largest.delta_pct is not None and abs(largest.delta_pct) >= threshold:
            return [
                Alert(
                    AlertLevel.WARNING,
                    f"High variance detected: {name} changed {largest.delta_pct}% "
                    f"({largest.from_period} -> {largest.to_period}).",
                )
            ]
        return [
            Alert(
                AlertLevel.INFO,
                f"Largest variance in the period: {name} "
                f"({largest.from_period} -> {largest.to_period}).",
            )
        ]

    def _sample(self, document: SourceDocument, outcome: DocumentOutcome) -> FileSample:
        text = document.text or ""
        return FileSample(
            file_name=document.file_name,
            period=outcome.period,
            detected_year=outcome.year,
            sample=text[: self.settings.sample_chars] or EMPTY_SAMPLE,
        )


def run_analysis(
    documents: Sequence[SourceDocument],
    granularity: Union[str, Granularity, None] = None,
    settings: Optional[Settings] = None,
    max_workers: Optional[int] = None,
) -> AnalysisResult:
    """Run one analysis with a fresh orchestrator."""
    return AnalysisOrchestrator(settings).run(documents, granularity, max_workers)
