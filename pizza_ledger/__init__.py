"""
Pizza Ledger - Source Package

A lateness ledger for recurring meetings: arriving late costs pizza
slices, six slices make a pizza, and admins keep the books honest.

DESIGN PRINCIPLES:
1. The formula is pure and deterministic
2. A balance and the record that changed it are written together
3. Only the admin e-mail list authorizes mutations
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pizza Ledger Team"
