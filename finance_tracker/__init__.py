"""
Business Finance Tracker - Source Package

Records income and expense transactions for a small German business,
computes VAT under the 19% rule and rolls transactions up into the
dashboard and report summaries.

DESIGN PRINCIPLES:
1. Amounts are derived, never typed twice (total = net + VAT)
2. Fail early, fail visibly
3. Nothing is applied in memory before storage confirms it
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
