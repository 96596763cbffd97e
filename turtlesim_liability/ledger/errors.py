"""
Ledger errors.

Every failed ledger call raises a LiabilityError subclass and leaves
storage untouched.
"""


class LiabilityError(Exception):
    """Base class for ledger failures."""


class InvalidParameter(LiabilityError):
    """Technical or economical parameter rejected by its validator."""


class BadProof(LiabilityError):
    """A promisee, promisor or report signature did not verify."""


class AlreadyFinalized(LiabilityError):
    """Finalize called twice for the same liability."""

    def __init__(self, index: int):
        super().__init__("already finalized")
        self.index = index


class DecodeError(LiabilityError):
    """Stored liability parameters are missing or corrupt."""

    def __init__(self, index: int):
        super().__init__("unable decode liability params")
        self.index = index


class EconomicsError(LiabilityError):
    """Economical processing (escrow, payout) failed."""
