"""
Liability State Machine
=======================

Provides termination guarantees through explicit states.

State Diagram:

    ┌─────────┐
    │  IDLE   │ ─── start() ───► NEGOTIATING ◄──┐
    └─────────┘                      │          │ process_turn()
                                     ├──────────┘
                                     │ contract()
                                     ▼
                                CONTRACTED ── begin_execution() ──► EXECUTING
                                                                        │
                                                                   report()
                                                                        ▼
                                FINALIZED ◄──── finalize() ──────── REPORTED

    Any non-terminal state ── fail() ──► FAILED

TERMINATION GUARANTEE:
- FINALIZED and FAILED have NO outgoing transitions
- NEGOTIATING is the only state with a self-loop
- Every self-loop increments the turn count, bounded by max_turns
- Every other transition moves strictly forward
- Therefore: the FSM always halts
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional


class LiabilityState(Enum):
    """The finite set of states."""
    IDLE = auto()         # Not yet started
    NEGOTIATING = auto()  # Demands and offers being exchanged
    CONTRACTED = auto()   # Liability stored in the ledger
    EXECUTING = auto()    # Worker running the task
    REPORTED = auto()     # Report published, awaiting ledger
    FINALIZED = auto()    # Terminal: report accepted
    FAILED = auto()       # Terminal: no liability or no result


class FailureReason(Enum):
    """Why a liability failed."""
    MAX_TURNS_EXCEEDED = auto()
    REJECTED_BY_TRADER = auto()
    REJECTED_BY_WORKER = auto()
    POLICY_VIOLATION = auto()
    LEDGER_ERROR = auto()
    EXECUTION_FAILED = auto()
    TIMEOUT = auto()


@dataclass
class FSMContext:
    """Context tracked by the FSM."""
    turn_count: int = 0
    max_turns: int = 10
    last_bid: Optional[int] = None
    last_ask: Optional[int] = None
    agreed_cost: Optional[int] = None
    liability_index: Optional[int] = None
    result: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    failure_detail: str = ""
    history: List[LiabilityState] = field(default_factory=list)


class LiabilityFSM:
    """
    Finite State Machine for a single liability.

    All transition methods return False instead of raising when the
    transition is not allowed from the current state.
    """

    TRANSITIONS = {
        LiabilityState.IDLE: {LiabilityState.NEGOTIATING, LiabilityState.FAILED},
        LiabilityState.NEGOTIATING: {LiabilityState.NEGOTIATING, LiabilityState.CONTRACTED, LiabilityState.FAILED},
        LiabilityState.CONTRACTED: {LiabilityState.EXECUTING, LiabilityState.FAILED},
        LiabilityState.EXECUTING: {LiabilityState.REPORTED, LiabilityState.FAILED},
        LiabilityState.REPORTED: {LiabilityState.FINALIZED, LiabilityState.FAILED},
        LiabilityState.FINALIZED: set(),  # Terminal
        LiabilityState.FAILED: set(),     # Terminal
    }

    TERMINAL = {LiabilityState.FINALIZED, LiabilityState.FAILED}

    def __init__(self, max_turns: int = 10):
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")
        self.state = LiabilityState.IDLE
        self.context = FSMContext(max_turns=max_turns)
        self.context.history.append(self.state)

    def get_state(self) -> LiabilityState:
        return self.state

    @property
    def is_negotiating(self) -> bool:
        return self.state == LiabilityState.NEGOTIATING

    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL

    def can_transition(self, to_state: LiabilityState) -> bool:
        return to_state in self.TRANSITIONS[self.state]

    def _move(self, to_state: LiabilityState) -> bool:
        if not self.can_transition(to_state):
            return False
        self.state = to_state
        self.context.history.append(to_state)
        return True

    def start(self) -> bool:
        """
        Open the market for this liability.

        Only from IDLE: the NEGOTIATING self-loop belongs to process_turn().
        """
        if self.state != LiabilityState.IDLE:
            return False
        return self._move(LiabilityState.NEGOTIATING)

    def record_bid(self, cost: int) -> None:
        self.context.last_bid = cost

    def record_ask(self, cost: int) -> None:
        self.context.last_ask = cost

    def process_turn(self) -> bool:
        """
        Count a negotiation turn. Returns False if max turns exceeded.

        Every turn increments, bounded by max_turns.
        """
        if not self.is_negotiating:
            return False

        self.context.turn_count += 1

        if self.context.turn_count >= self.context.max_turns:
            self.fail(FailureReason.MAX_TURNS_EXCEEDED)
            return False

        return True

    def contract(self, index: int, cost: int) -> bool:
        """Liability `index` was created in the ledger at `cost`."""
        if not self._move(LiabilityState.CONTRACTED):
            return False
        self.context.liability_index = index
        self.context.agreed_cost = cost
        return True

    def begin_execution(self) -> bool:
        return self._move(LiabilityState.EXECUTING)

    def report(self, result: str) -> bool:
        if not self._move(LiabilityState.REPORTED):
            return False
        self.context.result = result
        return True

    def finalize(self) -> bool:
        return self._move(LiabilityState.FINALIZED)

    def fail(self, reason: FailureReason, detail: str = "") -> bool:
        """Move to FAILED from any non-terminal state."""
        if not self._move(LiabilityState.FAILED):
            return False
        self.context.failure_reason = reason
        self.context.failure_detail = detail
        return True

    def reject(self, by_trader: bool = True, detail: str = "") -> bool:
        """A party walked away during negotiation."""
        if not self.is_negotiating:
            return False
        return self.fail(
            FailureReason.REJECTED_BY_TRADER if by_trader
            else FailureReason.REJECTED_BY_WORKER,
            detail,
        )

    def check_invariants(self) -> bool:
        """
        Check that FSM invariants hold.

        These should NEVER be violated.
        """
        assert 0 <= self.context.turn_count <= self.context.max_turns

        if self.state in {
            LiabilityState.CONTRACTED,
            LiabilityState.EXECUTING,
            LiabilityState.REPORTED,
            LiabilityState.FINALIZED,
        }:
            assert self.context.liability_index is not None
            assert self.context.agreed_cost is not None

        if self.state in {LiabilityState.REPORTED, LiabilityState.FINALIZED}:
            assert self.context.result is not None

        if self.state == LiabilityState.FAILED:
            assert self.context.failure_reason is not None

        return True
