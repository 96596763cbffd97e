"""
Tests for Agents Layer
======================
"""

import pytest

from turtlesim_liability.agents import TraderStrategy, WorkerStrategy, trader_strategy, worker_strategy
from turtlesim_liability.context import ModelCatalog


class TestTraderStrategyFunction:
    """Test trader strategy pure function."""

    def test_opening_bid(self):
        """Trader opens at 60% of budget."""
        result = trader_strategy(ask_cost=None, budget=30, turn=0, max_turns=10)
        assert result == {"type": "demand", "cost": 18, "message": "Demand #1"}

    def test_matches_affordable_ask(self):
        """Trader matches an ask within budget exactly."""
        result = trader_strategy(ask_cost=25, budget=30, turn=1, max_turns=10, previous_bid=18)
        assert result["type"] == "demand"
        assert result["cost"] == 25

    def test_raises_bid(self):
        """Bids rise by 8%, at least one token."""
        result = trader_strategy(ask_cost=40, budget=30, turn=1, max_turns=10, previous_bid=18)
        assert result["cost"] == 20

        result = trader_strategy(ask_cost=40, budget=30, turn=1, max_turns=10, previous_bid=5)
        assert result["cost"] == 6

    def test_final_turn_bids_budget(self):
        result = trader_strategy(ask_cost=40, budget=30, turn=9, max_turns=10, previous_bid=22)
        assert result["cost"] == 30

    def test_bid_capped_at_budget(self):
        result = trader_strategy(ask_cost=40, budget=30, turn=3, max_turns=10, previous_bid=29)
        assert result["cost"] == 30

    def test_rejects_at_budget(self):
        """Already at budget and the ask is still higher."""
        result = trader_strategy(ask_cost=35, budget=30, turn=4, max_turns=10, previous_bid=30)
        assert result["type"] == "reject"
        assert result["final_cost"] == 30


class TestWorkerStrategyFunction:
    """Test worker strategy pure function."""

    def test_matches_good_bid(self):
        result = worker_strategy(bid_cost=18, min_cost=15, asking_cost=40, turn=0, max_turns=10)
        assert result["type"] == "offer"
        assert result["cost"] == 18

    def test_opening_ask(self):
        result = worker_strategy(bid_cost=10, min_cost=15, asking_cost=40, turn=0, max_turns=10)
        assert result["cost"] == 40

    def test_concedes_thirty_percent_of_gap(self):
        result = worker_strategy(bid_cost=12, min_cost=15, asking_cost=40, turn=1, max_turns=10, previous_ask=40)
        assert result["cost"] == 31

    def test_never_below_minimum(self):
        result = worker_strategy(bid_cost=14, min_cost=15, asking_cost=40, turn=2, max_turns=10, previous_ask=16)
        assert result["cost"] == 15

    def test_rejects_lowball_near_end(self):
        result = worker_strategy(bid_cost=10, min_cost=15, asking_cost=40, turn=8, max_turns=10, previous_ask=20)
        assert result["type"] == "reject"

    def test_catalog_raises_floor(self):
        """The model catalog's minimum overrides a lower configured one."""
        catalog = ModelCatalog()
        result = worker_strategy(bid_cost=8, min_cost=5, asking_cost=7, turn=0, max_turns=10, catalog=catalog)
        assert result["type"] == "offer"
        assert result["cost"] == 10

    def test_unknown_model_uses_configured_floor(self):
        catalog = ModelCatalog()
        result = worker_strategy(
            bid_cost=8, min_cost=5, asking_cost=7, turn=0, max_turns=10,
            catalog=catalog, model="drone",
        )
        assert result["cost"] == 8


class TestStrategyWrappers:
    """Test the stateful wrappers."""

    def test_trader_tracks_turns(self):
        trader = TraderStrategy(budget=30)
        assert trader.decide(None)["cost"] == 18
        assert trader.decide(40)["cost"] == 20
        assert trader.turn == 2
        assert trader.previous_bid == 20

        trader.reset()
        assert trader.turn == 0
        assert trader.previous_bid is None

    def test_trader_negative_budget(self):
        with pytest.raises(ValueError):
            TraderStrategy(budget=-1)

    def test_worker_default_asking_cost(self):
        assert WorkerStrategy(min_cost=15).asking_cost == 21

    def test_worker_tracks_asks(self):
        worker = WorkerStrategy(min_cost=15, asking_cost=40)
        assert worker.decide(10)["cost"] == 40
        assert worker.decide(12)["cost"] == 31
        assert worker.previous_ask == 31

    def test_negotiation_converges(self):
        """With overlapping ranges the two strategies meet within max turns."""
        trader = TraderStrategy(budget=30)
        worker = WorkerStrategy(min_cost=25, asking_cost=40)

        bid = trader.decide(None)["cost"]
        for _ in range(10):
            offer = worker.decide(bid)
            if offer["cost"] == bid:
                break
            demand = trader.decide(offer["cost"])
            bid = demand["cost"]
            if bid == offer["cost"]:
                break

        assert 25 <= bid <= 30


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
