"""
Debt Escrow Ledger

A deterministic ledger for interest-bearing debts between a payee and a
payer, with escrowed principal and interest, Decimal-precise accrual and a
hash-chained event log.
"""

__version__ = "1.0.0"
