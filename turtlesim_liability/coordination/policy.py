"""
Matching Policy
===============

Explicit governance code that defines what market actions are allowed.

This is NOT orchestration (who runs when).
This is NOT the FSM (termination).
This is NOT protocol (message validation).

This IS:
- Market rules (bids rise, asks fall, both stay in bounds)
- The matching rule (a demand and an offer become a liability)
- Explicit, testable code, separate from execution flow
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..protocol.messages import Demand, Offer, verify_message


class PolicyViolation(Enum):
    """Types of policy violations."""
    WRONG_TURN = auto()           # Not this node's turn
    INVALID_MESSAGE_TYPE = auto() # Node can't send this message type
    COST_INCREASED = auto()       # Worker raised its ask
    COST_DECREASED = auto()       # Trader lowered its bid
    BELOW_MINIMUM = auto()        # Ask below worker's minimum
    ABOVE_BUDGET = auto()         # Bid above trader's budget
    NEGOTIATION_ENDED = auto()    # Acting after terminal
    MODEL_MISMATCH = auto()       # Demand and offer for different models
    OBJECTIVE_MISMATCH = auto()   # Demand and offer for different tasks
    COST_MISMATCH = auto()        # Demand and offer at different costs
    DEADLINE_PASSED = auto()      # Order expired
    SAME_PARTY = auto()           # Trader and worker are one account
    BAD_SIGNATURE = auto()        # Order not signed by its sender


@dataclass
class PolicyResult:
    """Result of a policy check."""
    allowed: bool
    violation: Optional[PolicyViolation] = None
    reason: str = ""


class MatchingPolicy:
    """
    Coordination policy for the liability market.

    Rules:
    ------
    1. Turn-taking: Only the expected node can act
    2. Message types: trader sends demands, worker sends offers
    3. Cost direction: Costs must move toward agreement
    4. Bounds: Costs must stay within limits
    5. Matching: Equal model, objective and cost, valid and unexpired
    """

    MESSAGE_TYPES = {
        "trader": {"demand", "reject"},
        "worker": {"offer", "reject", "report"},
    }

    def __init__(
        self,
        trader_budget: int = 30,
        worker_min_cost: int = 15,
        require_cost_progress: bool = True,
        require_signatures: bool = True,
    ):
        self.trader_budget = trader_budget
        self.worker_min_cost = worker_min_cost
        self.require_cost_progress = require_cost_progress
        self.require_signatures = require_signatures

    def validate_turn(
        self,
        actor: str,
        expected_actor: str,
        is_terminal: bool = False,
    ) -> PolicyResult:
        """Rule 1: Only the expected node can act."""
        if is_terminal:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NEGOTIATION_ENDED,
                reason="Negotiation has ended"
            )

        if actor != expected_actor:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.WRONG_TURN,
                reason=f"Expected {expected_actor}, got {actor}"
            )

        return PolicyResult(allowed=True)

    def validate_message_type(self, actor: str, message_type: str) -> PolicyResult:
        """Rule 2: Nodes only send the message types of their role."""
        if message_type not in self.MESSAGE_TYPES.get(actor, set()):
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.INVALID_MESSAGE_TYPE,
                reason=f"{actor} cannot send {message_type}"
            )
        return PolicyResult(allowed=True)

    def validate_bid(
        self,
        cost: int,
        previous_bid: Optional[int] = None,
    ) -> PolicyResult:
        """
        Rule 3a: Trader bids must not decrease.
        Rule 4a: Trader cannot exceed budget.
        """
        if cost > self.trader_budget:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.ABOVE_BUDGET,
                reason=f"Demand {cost} exceeds trader budget {self.trader_budget}"
            )

        if self.require_cost_progress and previous_bid is not None:
            if cost < previous_bid:
                return PolicyResult(
                    allowed=False,
                    violation=PolicyViolation.COST_DECREASED,
                    reason=f"Trader demand decreased: {previous_bid} → {cost}"
                )

        return PolicyResult(allowed=True)

    def validate_ask(
        self,
        cost: int,
        previous_ask: Optional[int] = None,
    ) -> PolicyResult:
        """
        Rule 3b: Worker asks must not increase.
        Rule 4b: Worker cannot go below minimum.
        """
        if cost < self.worker_min_cost:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.BELOW_MINIMUM,
                reason=f"Offer {cost} below worker minimum {self.worker_min_cost}"
            )

        if self.require_cost_progress and previous_ask is not None:
            if cost > previous_ask:
                return PolicyResult(
                    allowed=False,
                    violation=PolicyViolation.COST_INCREASED,
                    reason=f"Worker offer increased: {previous_ask} → {cost}"
                )

        return PolicyResult(allowed=True)

    def validate_match(self, demand: Demand, offer: Offer, now: int = 0) -> PolicyResult:
        """
        Rule 5: A demand and an offer can become a liability.

        `now` is the current market tick; a deadline of 0 never expires.
        """
        if demand.model != offer.model:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.MODEL_MISMATCH,
                reason=f"Model {demand.model} != {offer.model}"
            )

        if demand.objective != offer.objective:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.OBJECTIVE_MISMATCH,
                reason="Objectives differ"
            )

        if demand.cost != offer.cost:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.COST_MISMATCH,
                reason=f"Cost {demand.cost} != {offer.cost}"
            )

        for order in (demand, offer):
            if order.deadline and now > order.deadline:
                return PolicyResult(
                    allowed=False,
                    violation=PolicyViolation.DEADLINE_PASSED,
                    reason=f"{order.type} expired at {order.deadline}, now {now}"
                )

        if demand.sender and demand.sender == offer.sender:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.SAME_PARTY,
                reason="Trader and worker share an account"
            )

        if self.require_signatures:
            for order in (demand, offer):
                if not verify_message(order):
                    return PolicyResult(
                        allowed=False,
                        violation=PolicyViolation.BAD_SIGNATURE,
                        reason=f"{order.type} signature invalid"
                    )

        return PolicyResult(allowed=True)

    def validate_action(
        self,
        actor: str,
        expected_actor: str,
        message_type: str,
        cost: Optional[int] = None,
        previous_bid: Optional[int] = None,
        previous_ask: Optional[int] = None,
        is_terminal: bool = False,
    ) -> PolicyResult:
        """
        Validate a complete action against all rules.

        This is the main entry point for policy validation.
        """
        result = self.validate_turn(actor, expected_actor, is_terminal)
        if not result.allowed:
            return result

        result = self.validate_message_type(actor, message_type)
        if not result.allowed:
            return result

        if message_type == "demand" and cost is not None:
            return self.validate_bid(cost, previous_bid)

        if message_type == "offer" and cost is not None:
            return self.validate_ask(cost, previous_ask)

        return PolicyResult(allowed=True)
