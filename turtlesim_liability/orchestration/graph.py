"""
Orchestration Graph
===================

LangGraph-based orchestration of one liability.

The graph structure:

    ┌─────────┐
    │  START  │
    └────┬────┘
         ▼
    ┌─────────┐     ┌────────────┐
    │ trader  │────►│ negotiate  │──► END (rejected / out of turns)
    └─────────┘     │  router    │
         ▲          └─────┬──────┘
         │                │ matched
    ┌────┴────┐           ▼
    │ worker  │◄───   ┌──────────┐     ┌─────────┐     ┌──────────┐
    └─────────┘       │ contract │────►│ execute │────►│ finalize │──► END
                      └──────────┘     └─────────┘     └──────────┘

Any node may set `failure_reason`, which routes straight to END.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from ..agents import trader_strategy, worker_strategy
from ..context import ContentStore, ModelCatalog
from ..coordination import MatchingPolicy
from ..evaluation import LiabilityTracer, traceable
from ..ledger import Keypair, LiabilityError, LiabilityLedger
from ..protocol import Demand, Offer, Report, is_match, parse_message, sign_message, to_dict
from ..turtlesim import ControllerConfig, Task, TurtleSim, execute_task

logger = logging.getLogger(__name__)


# ============================================================================
# Graph State
# ============================================================================

class LiabilityGraphState(TypedDict):
    """State managed by the graph."""
    # Configuration
    model: str
    objective: str
    budget: int
    min_cost: int
    asking_cost: int
    max_turns: int

    # Negotiation
    current_turn: int
    whose_turn: Literal["trader", "worker"]
    last_demand: Optional[Dict[str, Any]]
    last_offer: Optional[Dict[str, Any]]
    matched: bool

    # Liability
    liability_index: Optional[int]
    agreed_cost: Optional[int]
    result: Optional[str]
    success: bool
    finalized: bool
    failure_reason: Optional[str]

    # Message log
    messages: List[Dict[str, Any]]


@dataclass
class LiabilityMarket:
    """Everything the graph nodes act on."""
    ledger: LiabilityLedger = field(default_factory=LiabilityLedger)
    store: ContentStore = field(default_factory=ContentStore)
    sim: TurtleSim = field(default_factory=TurtleSim)
    catalog: ModelCatalog = field(default_factory=ModelCatalog)
    trader_key: Keypair = field(default_factory=lambda: Keypair.from_name("trader"))
    worker_key: Keypair = field(default_factory=lambda: Keypair.from_name("worker"))
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    turtle: str = "turtle1"


# ============================================================================
# Graph Builder
# ============================================================================

def create_liability_graph(market: LiabilityMarket, policy: MatchingPolicy):
    """Create the LangGraph liability graph bound to a market."""

    def trader_node(state: LiabilityGraphState) -> Dict[str, Any]:
        """
        Execute the trader's turn.

        Reads the worker's last ask, asks the strategy for a decision and
        signs the resulting demand. Does NOT decide what runs next.
        """
        last_offer = state.get("last_offer")
        last_demand = state.get("last_demand")
        previous_bid = last_demand["cost"] if last_demand else None

        decision = trader_strategy(
            ask_cost=last_offer["cost"] if last_offer else None,
            budget=state["budget"],
            turn=state["current_turn"],
            max_turns=state["max_turns"],
            previous_bid=previous_bid,
        )
        record = {"turn": state["current_turn"], "agent": "trader", "message": decision}
        updates: Dict[str, Any] = {
            "messages": state["messages"] + [record],
            "whose_turn": "worker",
        }

        if decision["type"] == "reject":
            updates["failure_reason"] = f"Trader rejected: {decision['reason']}"
            return updates

        check = policy.validate_bid(decision["cost"], previous_bid)
        if not check.allowed:
            updates["failure_reason"] = f"Policy violation: {check.reason}"
            return updates

        demand = sign_message(
            Demand(
                model=state["model"],
                objective=state["objective"],
                cost=decision["cost"],
                nonce=state["current_turn"],
                message=decision.get("message", ""),
            ),
            market.trader_key,
        )
        updates["last_demand"] = to_dict(demand)

        if last_offer and is_match(demand, parse_message(last_offer)):
            updates["matched"] = True
        return updates

    def worker_node(state: LiabilityGraphState) -> Dict[str, Any]:
        """Execute the worker's turn."""
        last_demand = state["last_demand"]
        last_offer = state.get("last_offer")
        previous_ask = last_offer["cost"] if last_offer else None

        decision = worker_strategy(
            bid_cost=last_demand["cost"],
            min_cost=state["min_cost"],
            asking_cost=state["asking_cost"],
            turn=state["current_turn"],
            max_turns=state["max_turns"],
            previous_ask=previous_ask,
            catalog=market.catalog,
            model=state["model"],
        )
        record = {"turn": state["current_turn"], "agent": "worker", "message": decision}
        next_turn = state["current_turn"] + 1
        updates: Dict[str, Any] = {
            "messages": state["messages"] + [record],
            "whose_turn": "trader",
            "current_turn": next_turn,
        }

        if decision["type"] == "reject":
            updates["failure_reason"] = f"Worker rejected: {decision['reason']}"
            return updates

        check = policy.validate_ask(decision["cost"], previous_ask)
        if not check.allowed:
            updates["failure_reason"] = f"Policy violation: {check.reason}"
            return updates

        offer = sign_message(
            Offer(
                model=state["model"],
                objective=state["objective"],
                cost=decision["cost"],
                nonce=state["current_turn"],
                message=decision.get("message", ""),
            ),
            market.worker_key,
        )
        updates["last_offer"] = to_dict(offer)

        if is_match(parse_message(last_demand), offer):
            updates["matched"] = True
        elif next_turn >= state["max_turns"]:
            updates["failure_reason"] = "Max turns exceeded"
        return updates

    def contract_node(state: LiabilityGraphState) -> Dict[str, Any]:
        """Submit the matched pair to the ledger."""
        demand = parse_message(state["last_demand"])
        offer = parse_message(state["last_offer"])

        check = policy.validate_match(demand, offer, now=state["current_turn"])
        if not check.allowed:
            return {"failure_reason": f"Policy violation: {check.reason}"}

        try:
            index = market.ledger.create(
                technics=demand.objective,
                economics=demand.cost,
                promisee=demand.sender,
                promisee_proof=demand.proof,
                promisor=offer.sender,
                promisor_proof=offer.proof,
            )
        except LiabilityError as e:
            return {"failure_reason": f"Ledger rejected liability: {e}"}

        return {"liability_index": index, "agreed_cost": demand.cost}

    def execute_node(state: LiabilityGraphState) -> Dict[str, Any]:
        """Run the objective in turtlesim and store the trajectory."""
        try:
            task = Task.from_dict(market.store.get_json(state["objective"]))
        except (KeyError, ValueError) as e:
            return {"failure_reason": f"Execution failed: {e}"}

        if market.turtle not in market.sim.list_turtles():
            market.sim.spawn(market.turtle)

        trajectory = execute_task(market.sim, market.turtle, task, market.controller)
        result = market.store.put_json(trajectory.to_dict())
        logger.info(
            "Liability #%d executed: %d/%d waypoints in %d steps",
            state["liability_index"], trajectory.reached, trajectory.total, trajectory.steps,
        )
        return {"result": result, "success": trajectory.success}

    def finalize_node(state: LiabilityGraphState) -> Dict[str, Any]:
        """Publish the signed report to the ledger."""
        report = sign_message(
            Report(index=state["liability_index"], result=state["result"], success=state["success"]),
            market.worker_key,
        )
        try:
            market.ledger.finalize(report.index, report.result, report.signature, report.success)
        except LiabilityError as e:
            return {"failure_reason": f"Ledger rejected report: {e}"}
        return {"finalized": True}

    def negotiate_router(state: LiabilityGraphState) -> str:
        """
        Determine next node during negotiation.

        This is pure ROUTING logic - separate from business logic.
        """
        if state.get("failure_reason"):
            return "end"
        if state.get("matched"):
            return "contract"
        if state["current_turn"] >= state["max_turns"]:
            return "end"
        return state["whose_turn"]

    def step_router(next_node: str):
        def route(state: LiabilityGraphState) -> str:
            return "end" if state.get("failure_reason") else next_node
        return route

    graph = StateGraph(LiabilityGraphState)

    graph.add_node("trader", trader_node)
    graph.add_node("worker", worker_node)
    graph.add_node("contract", contract_node)
    graph.add_node("execute", execute_node)
    graph.add_node("finalize", finalize_node)

    graph.set_entry_point("trader")

    negotiation_edges = {
        "trader": "trader",
        "worker": "worker",
        "contract": "contract",
        "end": END,
    }
    graph.add_conditional_edges("trader", negotiate_router, negotiation_edges)
    graph.add_conditional_edges("worker", negotiate_router, negotiation_edges)
    graph.add_conditional_edges("contract", step_router("execute"), {"execute": "execute", "end": END})
    graph.add_conditional_edges("execute", step_router("finalize"), {"finalize": "finalize", "end": END})
    graph.add_edge("finalize", END)

    return graph.compile()


# ============================================================================
# Main Entry Point (called by Runtime)
# ============================================================================

@traceable(name="run_liability", run_type="chain")
def run_liability(
    task: Task,
    market: Optional[LiabilityMarket] = None,
    model: str = "turtlesim",
    budget: int = 30,
    min_cost: int = 15,
    asking_cost: int = 40,
    max_turns: int = 10,
    verbose: bool = False,
    tracer: Optional[LiabilityTracer] = None,
    session_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run one liability from first demand to finalized report.

    The task is stored in the market's content store; its hash becomes
    the liability objective.
    """
    market = market or LiabilityMarket()
    policy = MatchingPolicy(trader_budget=budget, worker_min_cost=min_cost)
    objective = market.store.put_json(task.to_dict())

    initial_state: LiabilityGraphState = {
        "model": model,
        "objective": objective,
        "budget": budget,
        "min_cost": min_cost,
        "asking_cost": asking_cost,
        "max_turns": max_turns,
        "current_turn": 0,
        "whose_turn": "trader",
        "last_demand": None,
        "last_offer": None,
        "matched": False,
        "liability_index": None,
        "agreed_cost": None,
        "result": None,
        "success": False,
        "finalized": False,
        "failure_reason": None,
        "messages": [],
    }

    graph = create_liability_graph(market, policy)
    # trader + worker per turn, plus contract/execute/finalize
    final_state = graph.invoke(initial_state, config={"recursion_limit": 2 * max_turns + 10})

    if tracer is not None and session_id is not None:
        for msg in final_state["messages"]:
            decision = msg["message"]
            tracer.log_turn(session_id, msg["turn"], msg["agent"], decision["type"], decision.get("cost"))
        if final_state["liability_index"] is not None:
            tracer.log_liability(session_id, final_state["liability_index"], final_state["agreed_cost"])
        tracer.log_outcome(
            session_id,
            finalized=final_state["finalized"],
            cost=final_state["agreed_cost"],
            turns=final_state["current_turn"],
            reason=final_state["failure_reason"],
        )

    if verbose:
        for msg in final_state["messages"]:
            print(f"[Turn {msg['turn'] + 1}] {msg['agent'].capitalize()}: {msg['message']}")
        print()
        if final_state["finalized"]:
            print(
                f"[Result] Liability #{final_state['liability_index']} finalized "
                f"at cost {final_state['agreed_cost']}"
            )
        else:
            reason = final_state.get("failure_reason") or "Max turns reached"
            print(f"[Result] No liability ({reason})")

    return {
        "finalized": final_state["finalized"],
        "liability_index": final_state["liability_index"],
        "cost": final_state["agreed_cost"],
        "turns": final_state["current_turn"],
        "objective": objective,
        "result": final_state["result"],
        "success": final_state["success"],
        "failure_reason": final_state["failure_reason"],
        "messages": final_state["messages"],
    }
