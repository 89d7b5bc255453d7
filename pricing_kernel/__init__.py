"""
Pricing Kernel

Computes the cost of multi-jurisdiction VAT filings:
- Restricted arithmetic rule expressions over named parameters
- Country rule selection by activity, date window and conditions
- Priority-ordered, composable rule application
- Currency-safe Money and the Calculation aggregate
"""

__version__ = "0.1.0"
