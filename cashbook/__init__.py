"""
Shared Cashbook - Source Package

A cashbook for individuals and small teams: books of cash-in/cash-out
entries, shared with collaborators, with CSV import/export.

DESIGN PRINCIPLES:
1. Hosted services own persistence, auth and files
2. Balances are always derived, never stored
3. Imports are all-or-nothing
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Shared Cashbook Team"
