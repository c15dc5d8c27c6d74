"""
Balancete Engine - extraction and reconciliation of trial-balance ledgers.

Pipeline, strictly downstream:
1. Ledger line parser - text to raw account rows
2. Classification normalizer - raw rows to normalized rows
3. Total reconciliator - assets/liabilities totals per period
4. KPI aggregator - income-statement figures per period
5. Rankings - top balances, variances, Pareto and evidence

Never invents a number: when confidence is insufficient a figure is zero or
null and a note explains why.
"""

from balancete.engine.orchestrator import AnalysisOrchestrator, run_analysis
from balancete.engine.models import (
    AccountGroup,
    AnalysisResult,
    NormalizedRow,
    RawAccountRow,
    SourceDocument,
)

__all__ = [
    "run_analysis",
    "AnalysisOrchestrator",
    "AnalysisResult",
    "AccountGroup",
    "NormalizedRow",
    "RawAccountRow",
    "SourceDocument",
]
