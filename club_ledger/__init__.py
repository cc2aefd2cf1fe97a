"""
Club Ledger

Ledger for a member savings-and-loan club: member contributions, member
loans and an append-only transaction ledger kept consistent with the cached
balances, with Decimal money and a hash-chained audit trail.
"""

__version__ = "1.0.0"
