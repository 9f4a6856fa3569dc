"""
Backoffice Kernel

Multi-tenant core for a small-business back office:
- Hierarchical cost/revenue centers with propagated forecast and actual totals
- Append-only cash-flow ledger with a recomputable running balance
- Bill registry (payables/receivables, installments, recurring series)
"""

__version__ = "0.1.0"
