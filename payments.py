"""Mint fee settlement.

Collecting money happens outside the ledger. The ledger only needs to know
whether the amount handed over settles the fee, and that check lives here so
minting itself stays a pure state change.
"""
from errors import InvalidPayment

def ensure_exact_fee(paid_amount: int, fee: int) -> int:
    """Return ``paid_amount`` if it equals ``fee``; overpaying is rejected too."""
    if paid_amount != fee:
        raise InvalidPayment(f"mint fee is {fee}, got {paid_amount}")
    return paid_amount
