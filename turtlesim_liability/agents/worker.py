"""
Worker Strategy
===============

Pure decision logic for the worker (promisor).

This is STRATEGY only - no orchestration, no transport.

Key architectural rule:
The worker SHOULD query the model catalog for its cost floor before
deciding. Hardcoded floors drift from what the market actually charges.
"""

import math
from typing import Any, Dict, Optional

from ..context.store import ModelCatalog


def worker_strategy(
    bid_cost: int,
    min_cost: int,
    asking_cost: int,
    turn: int,
    max_turns: int,
    previous_ask: Optional[int] = None,
    catalog: Optional[ModelCatalog] = None,
    model: str = "turtlesim",
) -> Dict[str, Any]:
    """
    Worker's decision strategy.

    Args:
        bid_cost: Trader's current demand cost
        min_cost: Worker's minimum acceptable cost
        asking_cost: Worker's starting cost
        turn: Current turn (0-indexed)
        max_turns: Maximum turns allowed
        previous_ask: Worker's previous offer cost (if any)
        catalog: Optional model catalog for the cost floor
        model: Robot model being negotiated

    Returns:
        Dict with "type" (offer/reject) and other fields

    Strategy:
        1. Offer exactly the bid if it meets the floor (a match)
        2. Otherwise ask, conceding 30% of the gap each turn
        3. Reject near the end if the bid is far below the floor
    """

    effective_min = min_cost
    if catalog is not None:
        entry = catalog.find(model)
        if entry is not None:
            effective_min = max(min_cost, entry["min_cost"])

    if bid_cost >= effective_min:
        return {
            "type": "offer",
            "cost": bid_cost,
            "message": "Accepted trader's demand",
        }

    if previous_ask is None:
        new_ask = asking_cost
    else:
        gap = previous_ask - bid_cost
        new_ask = previous_ask - math.ceil(gap * 0.3)

    new_ask = max(new_ask, effective_min)

    if turn >= max_turns - 2 and bid_cost < effective_min * 0.8:
        return {
            "type": "reject",
            "reason": "Demand too far below acceptable cost",
            "final_cost": new_ask,
        }

    return {
        "type": "offer",
        "cost": new_ask,
        "message": f"Offer #{turn + 1}",
    }


class WorkerStrategy:
    """
    Object-oriented wrapper for worker strategy.

    Provides stateful tracking of negotiation progress.
    """

    def __init__(
        self,
        min_cost: int,
        asking_cost: Optional[int] = None,
        catalog: Optional[ModelCatalog] = None,
        model: str = "turtlesim",
    ):
        self.min_cost = min_cost
        self.asking_cost = asking_cost if asking_cost is not None else math.ceil(min_cost * 1.4)
        self.catalog = catalog
        self.model = model
        self.previous_ask: Optional[int] = None
        self.turn = 0

    def decide(self, bid_cost: int, max_turns: int = 10) -> Dict[str, Any]:
        """Make a decision based on the trader's demand."""
        result = worker_strategy(
            bid_cost=bid_cost,
            min_cost=self.min_cost,
            asking_cost=self.asking_cost,
            turn=self.turn,
            max_turns=max_turns,
            previous_ask=self.previous_ask,
            catalog=self.catalog,
            model=self.model,
        )

        if result["type"] == "offer":
            self.previous_ask = result["cost"]
            self.turn += 1

        return result

    def reset(self):
        self.previous_ask = None
        self.turn = 0
