"""
Balancete analyzer.

Recovers a reconciled, period-indexed financial dataset from the extracted
text of Brazilian trial-balance ledgers (balancetes).
"""

__version__ = "1.0.0"
