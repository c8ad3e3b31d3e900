"""
Budgetly - goal ledger and recurring transaction engine
"""

__version__ = "0.1.0"
