"""
Cash Flow Bot - Source Package

A conversational front end for a company's cash-flow ledger kept in a
Google Sheets spreadsheet. Authorized staff record expenses, income and
(admins only) transfers between wallets one field at a time.

DESIGN PRINCIPLES:
1. Only validated, complete records reach the ledger
2. The directory is the single source of truth for who may write
3. A failed step never corrupts the conversation
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Cash Flow Bot Team"
