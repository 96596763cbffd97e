"""
Trader Strategy
===============

Pure decision logic for the trader (promisee).

This is STRATEGY only - no orchestration, no transport.
"""

import math
from typing import Any, Dict, Optional


def trader_strategy(
    ask_cost: Optional[int],
    budget: int,
    turn: int,
    max_turns: int,
    previous_bid: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Trader's decision strategy.

    Args:
        ask_cost: Worker's current asking cost (None before any offer)
        budget: Most the trader will pay
        turn: Current turn (0-indexed)
        max_turns: Maximum turns allowed
        previous_bid: Trader's previous demand cost (if any)

    Returns:
        Dict with "type" (demand/reject) and other fields

    Strategy:
        1. Match the worker's ask if it is within budget
        2. Start at 60% of budget
        3. Raise by 8% each turn (at least one token)
        4. Bid the full budget on the last turn
        5. Reject if already at budget and the worker still asks more
    """

    # Worker's ask is acceptable: demand exactly that cost to match
    if ask_cost is not None and ask_cost <= budget:
        return {
            "type": "demand",
            "cost": ask_cost,
            "message": "Matching worker's offer",
        }

    if previous_bid is not None and previous_bid >= budget:
        return {
            "type": "reject",
            "reason": "Worker's cost exceeds budget",
            "final_cost": budget,
        }

    if previous_bid is None:
        new_bid = int(budget * 0.60)
    else:
        new_bid = max(math.ceil(previous_bid * 1.08), previous_bid + 1)

    if turn >= max_turns - 1:
        return {
            "type": "demand",
            "cost": budget,
            "message": "Final demand at full budget",
        }

    return {
        "type": "demand",
        "cost": min(new_bid, budget),
        "message": f"Demand #{turn + 1}",
    }


class TraderStrategy:
    """
    Object-oriented wrapper for trader strategy.

    Provides stateful tracking of negotiation progress.
    """

    def __init__(self, budget: int):
        if budget < 0:
            raise ValueError(f"Budget must be non-negative, got {budget}")
        self.budget = budget
        self.previous_bid: Optional[int] = None
        self.turn = 0

    def decide(self, ask_cost: Optional[int], max_turns: int = 10) -> Dict[str, Any]:
        """Make a decision based on the worker's ask."""
        result = trader_strategy(
            ask_cost=ask_cost,
            budget=self.budget,
            turn=self.turn,
            max_turns=max_turns,
            previous_bid=self.previous_bid,
        )

        if result["type"] == "demand":
            self.previous_bid = result["cost"]
            self.turn += 1

        return result

    def reset(self):
        self.previous_bid = None
        self.turn = 0
