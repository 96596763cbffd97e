"""
Economical aspects of a liability: what it costs and who gets paid.

Two models are provided:

- Communism: nothing moves, every liability is free to settle
- TokenEscrow: the cost is locked from the promisee when the liability
  is created and released when it is finalized
"""

import logging
from threading import Lock
from typing import Dict, Optional

from .errors import EconomicsError, InvalidParameter

logger = logging.getLogger(__name__)


class Economical:
    """Interface for economical processing of a liability."""

    name = "economical"

    def validate_parameter(self, parameter) -> None:
        if isinstance(parameter, bool) or not isinstance(parameter, int):
            raise InvalidParameter(f"cost must be an integer, got {parameter!r}")
        if parameter < 0:
            raise InvalidParameter(f"cost must be non-negative, got {parameter}")

    def on_start(self, liability) -> None:
        raise NotImplementedError

    def on_finish(self, liability, success: bool) -> None:
        raise NotImplementedError


class Communism(Economical):
    """No payments at all."""

    name = "communism"

    def on_start(self, liability) -> None:
        pass

    def on_finish(self, liability, success: bool) -> None:
        pass


class TokenEscrow(Economical):
    """
    Token balances with escrow.

    on_start:  promisee --cost--> escrow   (fails on insufficient balance)
    on_finish: escrow --cost--> promisor   (success)
               escrow --cost--> promisee   (failure, refund)
    """

    name = "tokens"

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._escrow: Dict[bytes, int] = {}
        self._lock = Lock()

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def deposit(self, account: str, amount: int) -> None:
        if amount < 0:
            raise EconomicsError(f"cannot deposit negative amount {amount}")
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount

    @property
    def escrowed(self) -> int:
        with self._lock:
            return sum(self._escrow.values())

    def on_start(self, liability) -> None:
        cost = liability.economics
        key = liability.encode()
        with self._lock:
            balance = self._balances.get(liability.promisee, 0)
            if balance < cost:
                raise EconomicsError("insufficient balance")
            self._balances[liability.promisee] = balance - cost
            self._escrow[key] = self._escrow.get(key, 0) + cost
        logger.debug("Escrowed %d from %s...", cost, liability.promisee[:16])

    def on_finish(self, liability, success: bool) -> None:
        cost = liability.economics
        key = liability.encode()
        with self._lock:
            locked = self._escrow.get(key, 0)
            if locked < cost:
                raise EconomicsError("no escrow for liability")
            if locked == cost:
                del self._escrow[key]
            else:
                self._escrow[key] = locked - cost
            payee = liability.promisor if success else liability.promisee
            self._balances[payee] = self._balances.get(payee, 0) + cost
        logger.debug(
            "Released %d to %s (%s)",
            cost,
            "promisor" if success else "promisee",
            payee[:16],
        )


def create_economics(name: str, balances: Optional[Dict[str, int]] = None) -> Economical:
    """Build an economics model from its config name."""
    if name == Communism.name:
        return Communism()
    if name == TokenEscrow.name:
        return TokenEscrow(balances)
    raise ValueError(f"Unknown economics: {name}")
