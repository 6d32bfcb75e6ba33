"""Ledger error kinds.

Every operation either completes or raises one of these with the ledger left
unchanged. The HTTP layer maps them to status codes in ``app.py``.
"""


class LedgerError(Exception):
    @property
    def kind(self) -> str:
        return type(self).__name__


class Unauthorized(LedgerError):
    """Caller lacks the role or ownership the operation requires."""


class InvalidPayment(LedgerError):
    """Paid amount does not match the mint fee."""


class NotFound(LedgerError):
    """Token id was never minted."""


class OwnerMismatch(LedgerError):
    """``from`` of a transfer is not the current owner."""
