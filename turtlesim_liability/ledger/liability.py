"""
Liability Ledger
================

Stores agreements between traders and workers and settles them.

Storage layout:

    latest_index   -> int                 (0 until the first liability)
    liability_of   -> index -> bytes      (encoded SignedLiability)
    report_of      -> index -> bytes      (encoded report)
    is_finalized   -> index -> bool

Lifecycle:

    create(...)    verify both proofs -> economics.on_start -> store
                   -> emit NewLiability(index)

    finalize(...)  not finalized? -> decode -> verify report proof
                   -> economics.on_finish -> store report -> emit NewReport(index)

Every check happens BEFORE any write, so a failed call leaves the
ledger exactly as it was.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional

from ..context.store import canonical_json
from .economics import Communism, Economical
from .errors import AlreadyFinalized, DecodeError, InvalidParameter
from .signed import ProofTarget, SignedLiability
from .technics import PureIPFS, Technical

logger = logging.getLogger(__name__)


class EventKind(Enum):
    NEW_LIABILITY = "new_liability"
    NEW_REPORT = "new_report"


@dataclass
class LiabilityEvent:
    """Ledger event: a liability was created or reported."""
    kind: EventKind
    index: int
    timestamp: datetime = field(default_factory=datetime.utcnow)


class LiabilityLedger:
    """
    In-memory liability ledger.

    Example:
        ledger = LiabilityLedger()
        index = ledger.create(objective, 20, trader_id, demand_sig, worker_id, offer_sig)
        ledger.finalize(index, result_hash, report_sig)
        assert ledger.is_finalized(index)
    """

    def __init__(
        self,
        technics: Optional[Technical] = None,
        economics: Optional[Economical] = None,
    ):
        self.technics = technics or PureIPFS()
        self.economics = economics or Communism()
        self._latest_index = 0
        self._liability_of: Dict[int, bytes] = {}
        self._report_of: Dict[int, bytes] = {}
        self._is_finalized: Dict[int, bool] = {}
        self._events: List[LiabilityEvent] = []
        self._subscribers: List[Callable[[LiabilityEvent], None]] = []
        self._lock = Lock()

    # ========================================================================
    # Calls
    # ========================================================================

    def create(
        self,
        technics: str,
        economics: int,
        promisee: str,
        promisee_proof: str,
        promisor: str,
        promisor_proof: str,
    ) -> int:
        """
        Create an agreement between two parties.

        Returns:
            Index of the new liability

        Raises:
            InvalidParameter: Technics or economics rejected
            BadProof: Promisee or promisor signature invalid
            EconomicsError: Escrow could not be started
        """
        self.technics.validate_parameter(technics)
        self.economics.validate_parameter(economics)
        if promisee == promisor:
            raise InvalidParameter("promisee and promisor must differ")

        liability = SignedLiability(
            technics=technics,
            economics=economics,
            promisee=promisee,
            promisor=promisor,
        )

        liability.verify(ProofTarget.PROMISEE, promisee_proof)
        liability.verify(ProofTarget.PROMISOR, promisor_proof)

        with self._lock:
            self.economics.on_start(liability)
            index = self._latest_index + 1
            self._liability_of[index] = liability.encode()
            self._latest_index = index
            event = LiabilityEvent(kind=EventKind.NEW_LIABILITY, index=index)
            self._events.append(event)

        logger.info(
            "Liability #%d created: cost=%d promisee=%s... promisor=%s...",
            index, economics, promisee[:16], promisor[:16],
        )
        self._notify(event)
        return index

    def finalize(self, index: int, report: str, proof: str, success: bool = True) -> None:
        """
        Publish the technical report of completed work.

        Raises:
            AlreadyFinalized: Liability was finalized before
            DecodeError: No (valid) liability stored under index
            InvalidParameter: Report rejected by technics
            BadProof: Report not signed by the promisor
            EconomicsError: Payout failed
        """
        with self._lock:
            if self._is_finalized.get(index, False):
                raise AlreadyFinalized(index)
            encoded = self._liability_of.get(index)

        if encoded is None:
            raise DecodeError(index)
        try:
            liability = SignedLiability.decode(encoded)
        except ValueError as e:
            raise DecodeError(index) from e

        self.technics.validate_report(report)
        liability.verify(ProofTarget.REPORT, proof, report=report, index=index)

        with self._lock:
            # Re-check under the lock: two reports may race for one index
            if self._is_finalized.get(index, False):
                raise AlreadyFinalized(index)
            self.economics.on_finish(liability, success)
            self._report_of[index] = canonical_json({"report": report, "success": success})
            self._is_finalized[index] = True
            event = LiabilityEvent(kind=EventKind.NEW_REPORT, index=index)
            self._events.append(event)

        logger.info("Liability #%d finalized (success=%s)", index, success)
        self._notify(event)

    # ========================================================================
    # Queries
    # ========================================================================

    @property
    def latest_index(self) -> int:
        with self._lock:
            return self._latest_index

    def liability_of(self, index: int) -> bytes:
        """Encoded liability parameters (empty if unknown)."""
        with self._lock:
            return self._liability_of.get(index, b"")

    def report_of(self, index: int) -> bytes:
        """Encoded report (empty if not reported)."""
        with self._lock:
            return self._report_of.get(index, b"")

    def is_finalized(self, index: int) -> bool:
        with self._lock:
            return self._is_finalized.get(index, False)

    def get_liability(self, index: int) -> Optional[SignedLiability]:
        encoded = self.liability_of(index)
        if not encoded:
            return None
        return SignedLiability.decode(encoded)

    def get_report(self, index: int) -> Optional[Dict]:
        encoded = self.report_of(index)
        if not encoded:
            return None
        return json.loads(encoded.decode("utf-8"))

    def events(self, index: Optional[int] = None) -> List[LiabilityEvent]:
        with self._lock:
            events = list(self._events)
        if index is not None:
            events = [e for e in events if e.index == index]
        return events

    # ========================================================================
    # Event subscription
    # ========================================================================

    def subscribe(self, callback: Callable[[LiabilityEvent], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def _notify(self, event: LiabilityEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Ledger subscriber failed on %s #%d", event.kind.value, event.index)
